"""FastAPI router for owner-facing webhook endpoints.

Authentication is handled upstream; the caller's identity arrives as
``user_id`` and every per-resource route checks ownership with it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hookrelay import __version__
from hookrelay.logging import get_logger
from hookrelay.models import (
    CreatedEndpoint,
    DeliveryFilters,
    DeliveryPage,
    DeliveryStatus,
    EndpointStats,
    EndpointView,
    EventType,
    EventTypeInfo,
    SecretRotation,
    WebhookDelivery,
)
from hookrelay.service import WebhookService

from .schemas import (
    CreateEndpointRequest,
    DeliveryActionResponse,
    HealthResponse,
    UpdateEndpointRequest,
)

logger = get_logger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]
UserIdQuery = Annotated[str, Query(min_length=1, description="Caller's user ID")]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(
            status="unhealthy",
            version=__version__,
            storage_connected=False,
            scheduler_running=False,
        )
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        scheduler_running=_service.scheduler.is_running,
    )


@router.get("/webhooks/events", response_model=list[EventTypeInfo], tags=["webhooks"])
async def list_events(service: ServiceDep) -> list[EventTypeInfo]:
    """List the event types endpoints can subscribe to."""
    return service.registry.available_events()


@router.get("/webhooks/endpoints", response_model=list[EndpointView], tags=["webhooks"])
async def list_endpoints(user_id: UserIdQuery, service: ServiceDep) -> list[EndpointView]:
    """List the caller's endpoints, newest first."""
    return await service.registry.list_endpoints(user_id)


@router.post(
    "/webhooks/endpoints",
    response_model=CreatedEndpoint,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_endpoint(request: CreateEndpointRequest, service: ServiceDep) -> CreatedEndpoint:
    """Register an endpoint.

    The response carries the plaintext secret. It is shown only here.
    """
    created = await service.registry.create_endpoint(
        owner_id=request.user_id,
        name=request.name,
        url=request.url,
        events=list(request.events),
        secret=request.secret,
    )
    logger.info("Endpoint created", endpoint_id=created.id, user_id=request.user_id)
    return created


@router.get(
    "/webhooks/endpoints/{endpoint_id}", response_model=EndpointView, tags=["webhooks"]
)
async def get_endpoint(endpoint_id: str, user_id: UserIdQuery, service: ServiceDep) -> EndpointView:
    """Get one of the caller's endpoints."""
    return await service.registry.get_endpoint(endpoint_id, user_id)


@router.put(
    "/webhooks/endpoints/{endpoint_id}", response_model=EndpointView, tags=["webhooks"]
)
async def update_endpoint(
    endpoint_id: str, request: UpdateEndpointRequest, service: ServiceDep
) -> EndpointView:
    """Change an endpoint's name, URL, events or active flag."""
    return await service.registry.update_endpoint(
        endpoint_id,
        request.user_id,
        name=request.name,
        url=request.url,
        events=list(request.events) if request.events is not None else None,
        is_active=request.is_active,
    )


@router.delete(
    "/webhooks/endpoints/{endpoint_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_endpoint(endpoint_id: str, user_id: UserIdQuery, service: ServiceDep) -> None:
    """Delete an endpoint and its delivery history."""
    await service.registry.delete_endpoint(endpoint_id, user_id)


@router.post(
    "/webhooks/endpoints/{endpoint_id}/test",
    response_model=WebhookDelivery,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["webhooks"],
)
async def test_endpoint(
    endpoint_id: str, user_id: UserIdQuery, service: ServiceDep
) -> WebhookDelivery:
    """Queue a test delivery to an endpoint."""
    return await service.registry.test_endpoint(endpoint_id, user_id)


@router.post(
    "/webhooks/endpoints/{endpoint_id}/rotate-secret",
    response_model=SecretRotation,
    tags=["webhooks"],
)
async def rotate_secret(
    endpoint_id: str, user_id: UserIdQuery, service: ServiceDep
) -> SecretRotation:
    """Issue a new secret. The old one stops working immediately."""
    rotation = await service.registry.rotate_secret(endpoint_id, user_id)
    logger.info("Secret rotated", endpoint_id=endpoint_id, user_id=user_id)
    return rotation


@router.post(
    "/webhooks/endpoints/{endpoint_id}/enable", response_model=EndpointView, tags=["webhooks"]
)
async def enable_endpoint(
    endpoint_id: str, user_id: UserIdQuery, service: ServiceDep
) -> EndpointView:
    """Reactivate an endpoint and reset its failure counter."""
    return await service.registry.enable_endpoint(endpoint_id, user_id)


@router.post(
    "/webhooks/endpoints/{endpoint_id}/disable", response_model=EndpointView, tags=["webhooks"]
)
async def disable_endpoint(
    endpoint_id: str, user_id: UserIdQuery, service: ServiceDep
) -> EndpointView:
    """Stop deliveries to an endpoint."""
    return await service.registry.disable_endpoint(endpoint_id, user_id)


@router.get(
    "/webhooks/endpoints/{endpoint_id}/stats", response_model=EndpointStats, tags=["webhooks"]
)
async def get_endpoint_stats(
    endpoint_id: str, user_id: UserIdQuery, service: ServiceDep
) -> EndpointStats:
    """Delivery totals and health for an endpoint."""
    return await service.get_endpoint_stats(endpoint_id, user_id)


@router.get(
    "/webhooks/endpoints/{endpoint_id}/deliveries",
    response_model=DeliveryPage,
    tags=["webhooks"],
)
async def list_endpoint_deliveries(
    endpoint_id: str,
    user_id: UserIdQuery,
    service: ServiceDep,
    status_filter: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
    event: EventType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> DeliveryPage:
    """Page through an endpoint's deliveries, newest first."""
    filters = DeliveryFilters(
        status=status_filter,
        event=event,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return await service.list_deliveries(endpoint_id, user_id, filters)


@router.get(
    "/webhooks/deliveries/{delivery_id}", response_model=WebhookDelivery, tags=["webhooks"]
)
async def get_delivery(
    delivery_id: str, user_id: UserIdQuery, service: ServiceDep
) -> WebhookDelivery:
    """Get one delivery, including its last response and error."""
    return await service.get_delivery(delivery_id, user_id)


@router.post(
    "/webhooks/deliveries/{delivery_id}/retry",
    response_model=DeliveryActionResponse,
    tags=["webhooks"],
)
async def retry_delivery(
    delivery_id: str, user_id: UserIdQuery, service: ServiceDep
) -> DeliveryActionResponse:
    """Reset a delivery's attempts and send it now."""
    success = await service.retry_delivery(delivery_id, user_id)
    return DeliveryActionResponse(
        delivery_id=delivery_id,
        action="retry",
        success=success,
        message="Delivery succeeded" if success else "Delivery attempt failed",
    )


@router.post(
    "/webhooks/deliveries/{delivery_id}/cancel",
    response_model=DeliveryActionResponse,
    tags=["webhooks"],
)
async def cancel_delivery(
    delivery_id: str, user_id: UserIdQuery, service: ServiceDep
) -> DeliveryActionResponse:
    """Cancel a PENDING delivery."""
    success = await service.cancel_delivery(delivery_id, user_id)
    return DeliveryActionResponse(
        delivery_id=delivery_id,
        action="cancel",
        success=success,
        message="Delivery cancelled" if success else "Could not cancel delivery (may not be pending)",
    )
