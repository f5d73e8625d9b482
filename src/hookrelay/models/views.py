"""Read models returned by the registry, admin surface and scheduler.

None of these carry a secret hash. The plaintext secret appears only on
CreatedEndpoint and SecretRotation, which are returned once.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .webhook import DeliveryStatus, EventType, WebhookDelivery, WebhookEndpoint


class EndpointView(BaseModel):
    """An endpoint as shown to owners and operators."""

    model_config = ConfigDict(extra="forbid")

    id: str
    owner_id: str
    name: str
    url: str
    events: list[EventType]
    is_active: bool
    failure_count: int
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    delivery_count: int = Field(default=0, ge=0, description="Deliveries recorded for this endpoint")

    @classmethod
    def from_endpoint(cls, endpoint: WebhookEndpoint, delivery_count: int = 0) -> "EndpointView":
        """Project a stored endpoint, dropping the secret hash."""
        data = endpoint.model_dump(exclude={"secret_hash"})
        return cls(**data, delivery_count=delivery_count)


class CreatedEndpoint(EndpointView):
    """Result of endpoint creation. ``secret`` is shown exactly once."""

    secret: str = Field(description="Plaintext secret (store it now, it is not shown again)")


class SecretRotation(BaseModel):
    """Result of a secret rotation. ``secret`` is shown exactly once."""

    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    secret: str
    rotated_at: datetime


class EventTypeInfo(BaseModel):
    """An event type an endpoint can subscribe to."""

    model_config = ConfigDict(extra="forbid")

    type: EventType
    description: str


class SignatureCheck(BaseModel):
    """Outcome of verifying a signature header."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    valid: bool
    error: str | None = None


class Pagination(BaseModel):
    """Page metadata for list responses."""

    model_config = ConfigDict(extra="forbid")

    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    total_pages: int = Field(ge=0)

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=-(-total // limit))


class DeliveryFilters(BaseModel):
    """Filters for delivery listings. All fields are optional."""

    model_config = ConfigDict(extra="forbid")

    status: DeliveryStatus | None = None
    event: EventType | None = None
    endpoint_id: str | None = None
    owner_id: str | None = None
    start_date: datetime | None = Field(default=None, description="Inclusive lower bound on created_at")
    end_date: datetime | None = Field(default=None, description="Inclusive upper bound on created_at")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class DeliveryPage(BaseModel):
    """One page of deliveries, newest first."""

    model_config = ConfigDict(extra="forbid")

    deliveries: list[WebhookDelivery]
    pagination: Pagination


class EndpointPage(BaseModel):
    """One page of endpoints, newest first."""

    model_config = ConfigDict(extra="forbid")

    endpoints: list[EndpointView]
    pagination: Pagination


class DeliveryStats(BaseModel):
    """Delivery totals by status."""

    model_config = ConfigDict(extra="forbid")

    total: int = 0
    pending: int = 0
    sending: int = 0
    delivered: int = 0
    failed: int = 0
    success_rate: float = Field(default=0.0, description="Percent delivered, 2 decimals")

    @classmethod
    def from_counts(cls, counts: dict[DeliveryStatus, int]) -> "DeliveryStats":
        total = sum(counts.values())
        delivered = counts.get(DeliveryStatus.DELIVERED, 0)
        return cls(
            total=total,
            pending=counts.get(DeliveryStatus.PENDING, 0),
            sending=counts.get(DeliveryStatus.SENDING, 0),
            delivered=delivered,
            failed=counts.get(DeliveryStatus.FAILED, 0),
            success_rate=round(delivered / total * 100, 2) if total else 0.0,
        )


class EndpointCounts(BaseModel):
    """Active and inactive endpoint totals."""

    model_config = ConfigDict(extra="forbid")

    active: int = 0
    inactive: int = 0
    total: int = 0


class EndpointHealth(BaseModel):
    """An endpoint with recorded failures, for the admin stats view."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    url: str
    owner_id: str
    is_active: bool
    failure_count: int
    last_failure_at: datetime | None = None


class EndpointStats(BaseModel):
    """Per-endpoint delivery statistics for its owner."""

    model_config = ConfigDict(extra="forbid")

    endpoint_id: str
    is_active: bool
    failure_count: int
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    deliveries: DeliveryStats


class SchedulerStatus(BaseModel):
    """Snapshot of the periodic processor."""

    model_config = ConfigDict(extra="forbid")

    running: bool
    status: Literal["active", "stopped"]
    queue_busy: bool = False
    retry_busy: bool = False
    purge_busy: bool = False
    queue_interval_ms: int
    retry_interval_ms: int
    purge_interval_hours: float
    last_queue_run_at: datetime | None = None
    last_retry_run_at: datetime | None = None
    last_purge_run_at: datetime | None = None


class AdminStats(BaseModel):
    """System-wide webhook statistics."""

    model_config = ConfigDict(extra="forbid")

    deliveries: DeliveryStats
    endpoints: EndpointCounts
    endpoints_with_failures: list[EndpointHealth]
    processor_running: bool


class ProcessResult(BaseModel):
    """Outcome of a manual processing trigger."""

    model_config = ConfigDict(extra="forbid")

    processed: int = Field(description="Deliveries in the batch (0 if the tick was skipped)")
    skipped: bool = Field(default=False, description="True if a tick of this type was already running")
    detail: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "AdminStats",
    "CreatedEndpoint",
    "DeliveryFilters",
    "DeliveryPage",
    "DeliveryStats",
    "EndpointCounts",
    "EndpointHealth",
    "EndpointPage",
    "EndpointStats",
    "EndpointView",
    "EventTypeInfo",
    "Pagination",
    "ProcessResult",
    "SchedulerStatus",
    "SecretRotation",
    "SignatureCheck",
]
