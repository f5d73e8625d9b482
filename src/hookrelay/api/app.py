"""FastAPI application for HookRelay."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hookrelay import __version__
from hookrelay.config import Settings
from hookrelay.exceptions import HookRelayError, NotFoundError, ValidationError
from hookrelay.logging import configure_logging, get_logger
from hookrelay.service import WebhookService

from .admin_router import admin_router
from .router import router, set_service

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, service: WebhookService | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.
        service: Optional prebuilt service (tests inject one backed by
            in-memory storage). Built from settings if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from hookrelay.api import create_app

        app = create_app()
        # Run with: uvicorn hookrelay.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Initialize the service and scheduler on startup, stop them on shutdown."""
        configure_logging(level=settings.log_level, format=settings.log_format)
        logger.info(
            "Starting HookRelay API",
            env=settings.env,
            log_level=settings.log_level,
            webhook_enabled=settings.webhook_enabled,
        )

        active = service or WebhookService.create(settings)
        await active.initialize()
        set_service(active)
        running = await active.start_scheduler()
        logger.info("Webhook scheduler state", running=running)

        yield

        await active.close()
        set_service(None)
        logger.info("HookRelay API stopped")

    app = FastAPI(
        title="HookRelay",
        description="Signed, retried webhook delivery for application events.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(HookRelayError)
    async def hookrelay_error_handler(request: Request, exc: HookRelayError) -> JSONResponse:
        """Handle all other HookRelay errors with 500 status."""
        logger.error("HookRelay error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
