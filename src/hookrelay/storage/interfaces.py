"""Repository interfaces the delivery core depends on.

The registry, dispatcher, worker and admin surface only use these
protocols, so any persistence engine that satisfies them can replace the
Qdrant-backed WebhookStorage.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from hookrelay.models import (
    DeliveryFilters,
    DeliveryStatus,
    WebhookDelivery,
    WebhookEndpoint,
)


@runtime_checkable
class EndpointRepository(Protocol):
    """Persistence for webhook endpoints."""

    async def store_endpoint(self, endpoint: WebhookEndpoint) -> str:
        """Insert or replace an endpoint. Returns its ID."""
        ...

    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None: ...

    async def delete_endpoint(self, endpoint_id: str) -> bool:
        """Delete an endpoint. Returns False if it did not exist."""
        ...

    async def list_endpoints(
        self,
        owner_id: str | None = None,
        is_active: bool | None = None,
    ) -> list[WebhookEndpoint]:
        """List endpoints, newest first."""
        ...

    async def list_subscribed_endpoints(self, event_type: str) -> list[WebhookEndpoint]:
        """Active endpoints whose subscriptions include the event type."""
        ...

    async def count_endpoints(self, is_active: bool | None = None) -> int: ...

    async def list_failing_endpoints(self, limit: int = 10) -> list[WebhookEndpoint]:
        """Endpoints with failure_count > 0, highest count first."""
        ...


@runtime_checkable
class DeliveryRepository(Protocol):
    """Persistence for webhook deliveries."""

    async def store_delivery(self, delivery: WebhookDelivery) -> str:
        """Insert or replace a delivery. Returns its ID."""
        ...

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None: ...

    async def list_deliveries(
        self, filters: DeliveryFilters
    ) -> tuple[list[WebhookDelivery], int]:
        """One page of deliveries matching the filters (newest first) and the total."""
        ...

    async def list_due_deliveries(self, now: datetime, limit: int) -> list[WebhookDelivery]:
        """PENDING deliveries never scheduled or already due, oldest first."""
        ...

    async def list_due_retries(self, now: datetime, limit: int) -> list[WebhookDelivery]:
        """PENDING deliveries with a due retry time and attempts left, by retry time."""
        ...

    async def count_deliveries(self, endpoint_id: str | None = None) -> int: ...

    async def count_deliveries_by_status(
        self, endpoint_id: str | None = None
    ) -> dict[DeliveryStatus, int]: ...

    async def purge_deliveries(self, before: datetime) -> int:
        """Delete DELIVERED/FAILED deliveries created before the cutoff."""
        ...

    async def delete_deliveries_for_endpoint(self, endpoint_id: str) -> int: ...
