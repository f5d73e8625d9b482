"""Configuration management for HookRelay."""

import logging
import warnings
from typing import Annotated, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS: list[int] = [60, 300, 900, 3600, 86400]


class Settings(BaseSettings):
    """HookRelay configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKRELAY_ prefix. For example:
        HOOKRELAY_QDRANT_URL=http://localhost:6333
        HOOKRELAY_WEBHOOK_RETRY_DELAYS=60,300,900

    Security Notes:
        - In production (HOOKRELAY_ENV=production), webhook URLs must use HTTPS
        - In development, http://localhost and http://127.0.0.1 are also accepted
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookrelay",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description=(
            "Page size for scroll requests. Scans page through every matching "
            "record this many at a time."
        ),
    )

    # Delivery
    webhook_enabled: bool = Field(
        default=True,
        description="Master switch: when false, dispatch is a no-op",
    )
    webhook_timeout_ms: int = Field(
        default=10000,
        ge=100,
        le=120000,
        description="Per-request timeout for outbound deliveries",
    )
    webhook_max_retries: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum delivery attempts, copied onto each delivery at creation",
    )
    webhook_retry_delays: Annotated[list[int], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_DELAYS),
        description=(
            "Ordered retry delays in seconds. Attempt n waits delays[n-1]; "
            "once exhausted, the last value is reused."
        ),
    )
    webhook_secret_length: int = Field(
        default=32,
        ge=16,
        le=128,
        description="Random bytes in a generated endpoint secret",
    )
    webhook_signature_header: str = Field(
        default="X-Webhook-Signature",
        min_length=1,
        description="Header carrying the t=...,v1=... signature",
    )
    webhook_signature_tolerance_seconds: int = Field(
        default=300,
        ge=1,
        description="Allowed clock skew when verifying signatures",
    )
    webhook_user_agent_product: str = Field(
        default="HookRelay",
        min_length=1,
        description="Product name in the User-Agent header (<product>-Webhook/1.0)",
    )

    # Scheduler
    webhook_scheduler_autostart: bool = Field(
        default=True,
        description="Start the scheduler with the API lifespan",
    )
    webhook_queue_interval_ms: int = Field(
        default=30000,
        ge=100,
        description="Interval between queue ticks",
    )
    webhook_retry_interval_ms: int = Field(
        default=300000,
        ge=100,
        description="Interval between retry ticks",
    )
    webhook_queue_batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Deliveries claimed per queue tick",
    )
    webhook_retry_batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Deliveries claimed per retry tick",
    )
    webhook_purge_interval_hours: float = Field(
        default=24.0,
        gt=0.0,
        description="Interval between retention purges",
    )
    webhook_retention_days: int = Field(
        default=30,
        ge=1,
        description="Delivered/failed deliveries older than this are purged",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=False,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )

    model_config = {
        "env_prefix": "HOOKRELAY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @field_validator("webhook_retry_delays", mode="before")
    @classmethod
    def _parse_retry_delays(cls, value: object) -> object:
        """Accept a comma-separated string such as "60,300,900"."""
        if isinstance(value, str):
            return [int(part) for part in value.split(",") if part.strip()]
        return value

    @model_validator(mode="after")
    def validate_retry_policy(self) -> "Settings":
        """Validate the retry-delay table.

        The table must be non-empty with strictly positive delays; a zero delay
        would make the queue tick resend a failing delivery immediately.
        """
        if not self.webhook_retry_delays:
            raise ValueError("webhook_retry_delays must contain at least one delay")
        if any(delay <= 0 for delay in self.webhook_retry_delays):
            raise ValueError(
                f"webhook_retry_delays must be positive, got {self.webhook_retry_delays}"
            )
        if len(self.webhook_retry_delays) < self.webhook_max_retries - 1:
            logger.debug(
                "Retry delay table has %d entries for %d attempts; last delay is reused",
                len(self.webhook_retry_delays),
                self.webhook_max_retries,
            )
        return self

    @model_validator(mode="after")
    def validate_environment(self) -> "Settings":
        """Warn about settings that are unusual in production."""
        if self.env == "production" and not self.webhook_enabled:
            warnings.warn(
                "Webhook delivery is disabled in production. "
                "Set HOOKRELAY_WEBHOOK_ENABLED=true to deliver events.",
                UserWarning,
                stacklevel=2,
            )
            logger.warning("Webhook delivery disabled in production")
        return self

    @property
    def is_development(self) -> bool:
        """Whether plain-HTTP localhost webhook URLs are accepted."""
        return self.env == "development"

    @property
    def timeout_seconds(self) -> float:
        """Per-request timeout in seconds, as httpx expects it."""
        return self.webhook_timeout_ms / 1000

    @property
    def user_agent(self) -> str:
        """User-Agent header value for outbound deliveries."""
        return f"{self.webhook_user_agent_product}-Webhook/1.0"


# Global settings instance
settings = Settings()
