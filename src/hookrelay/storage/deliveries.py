"""Delivery storage operations for HookRelay.

Provides methods to store deliveries, page through them, find due work
for the scheduler, and purge old terminal records.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .base import in_range, match, match_any, paginate
from .retry import qdrant_retry

if TYPE_CHECKING:
    from hookrelay.models import DeliveryFilters, DeliveryStatus, WebhookDelivery

# Statuses eligible for retention purges
_PURGEABLE_STATUSES = ["DELIVERED", "FAILED"]


class DeliveryStoreMixin:
    """Mixin providing delivery operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(record_type) -> str
    - _point(record) -> PointStruct
    - _retrieve(record_type, record_id, record_class) -> record | None
    - _scroll(record_type, record_class, conditions) -> list[record]
    - _count(record_type, conditions) -> int
    - list_endpoints(owner_id, is_active) -> list[WebhookEndpoint]
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _point: Any
    _retrieve: Any
    _scroll: Any
    _count: Any
    list_endpoints: Any
    client: Any

    @qdrant_retry
    async def store_delivery(self, delivery: WebhookDelivery) -> str:
        """Insert or replace a delivery.

        Args:
            delivery: Delivery to persist.

        Returns:
            The delivery ID.
        """
        await self.client.upsert(
            collection_name=self._collection_name("deliveries"),
            points=[self._point(delivery)],
        )
        return delivery.id

    @qdrant_retry
    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """Get a delivery by ID, or None if it doesn't exist."""
        from hookrelay.models import WebhookDelivery

        delivery: WebhookDelivery | None = await self._retrieve(
            "deliveries", delivery_id, WebhookDelivery
        )
        return delivery

    @qdrant_retry
    async def list_deliveries(
        self, filters: DeliveryFilters
    ) -> tuple[list[WebhookDelivery], int]:
        """Page through deliveries, newest first.

        An owner filter is resolved to that owner's endpoint IDs; an owner
        with no endpoints has no deliveries.

        Args:
            filters: Status, event, endpoint, owner, date range and page.

        Returns:
            Tuple of (page of deliveries, total matching).
        """
        from hookrelay.models import WebhookDelivery

        conditions: list[models.Condition] = []
        if filters.status is not None:
            conditions.append(match("status", filters.status.value))
        if filters.event is not None:
            conditions.append(match("event", filters.event))
        if filters.endpoint_id is not None:
            conditions.append(match("endpoint_id", filters.endpoint_id))
        if filters.owner_id is not None:
            owned = [e.id for e in await self.list_endpoints(owner_id=filters.owner_id)]
            if not owned:
                return [], 0
            conditions.append(match_any("endpoint_id", owned))
        if filters.start_date is not None or filters.end_date is not None:
            conditions.append(
                in_range(
                    "created_ts",
                    gte=filters.start_date.timestamp() if filters.start_date else None,
                    lte=filters.end_date.timestamp() if filters.end_date else None,
                )
            )

        deliveries: list[WebhookDelivery] = await self._scroll(
            "deliveries", WebhookDelivery, conditions
        )
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        total: int = await self._count("deliveries", conditions)
        return paginate(deliveries, filters.page, filters.limit), total

    @qdrant_retry
    async def list_due_deliveries(self, now: datetime, limit: int) -> list[WebhookDelivery]:
        """PENDING deliveries never scheduled or already due, oldest first.

        A null next_retry_at is stored as 0.0, so one range covers both.
        """
        from hookrelay.models import WebhookDelivery

        deliveries: list[WebhookDelivery] = await self._scroll(
            "deliveries",
            WebhookDelivery,
            [match("status", "PENDING"), in_range("next_retry_ts", lte=now.timestamp())],
        )
        deliveries.sort(key=lambda d: d.created_at)
        return deliveries[:limit]

    @qdrant_retry
    async def list_due_retries(self, now: datetime, limit: int) -> list[WebhookDelivery]:
        """PENDING deliveries with a due retry time, in retry-time order.

        Each row is compared against its own max_attempts.
        """
        from hookrelay.models import WebhookDelivery

        deliveries: list[WebhookDelivery] = await self._scroll(
            "deliveries",
            WebhookDelivery,
            [match("status", "PENDING"), in_range("next_retry_ts", gt=0.0, lte=now.timestamp())],
        )
        due = [d for d in deliveries if d.attempts < d.max_attempts]
        due.sort(key=lambda d: d.next_retry_at)  # type: ignore[arg-type,return-value]
        return due[:limit]

    @qdrant_retry
    async def count_deliveries(self, endpoint_id: str | None = None) -> int:
        """Count deliveries, optionally for one endpoint."""
        conditions = [match("endpoint_id", endpoint_id)] if endpoint_id else None
        count: int = await self._count("deliveries", conditions)
        return count

    @qdrant_retry
    async def count_deliveries_by_status(
        self, endpoint_id: str | None = None
    ) -> dict[DeliveryStatus, int]:
        """Count deliveries per status, optionally for one endpoint."""
        from hookrelay.models import DeliveryStatus

        counts: dict[DeliveryStatus, int] = {}
        for status in DeliveryStatus:
            conditions = [match("status", status.value)]
            if endpoint_id:
                conditions.append(match("endpoint_id", endpoint_id))
            counts[status] = await self._count("deliveries", conditions)
        return counts

    @qdrant_retry
    async def purge_deliveries(self, before: datetime) -> int:
        """Delete DELIVERED and FAILED deliveries created before the cutoff.

        PENDING and SENDING rows are never purged.

        Returns:
            Number of deliveries deleted.
        """
        purge_filter = models.Filter(
            must=[
                match_any("status", _PURGEABLE_STATUSES),
                in_range("created_ts", lt=before.timestamp()),
            ]
        )
        collection = self._collection_name("deliveries")
        result = await self.client.count(
            collection_name=collection, count_filter=purge_filter, exact=True
        )
        if result.count:
            await self.client.delete(
                collection_name=collection,
                points_selector=models.FilterSelector(filter=purge_filter),
            )
        count: int = result.count
        return count

    @qdrant_retry
    async def delete_deliveries_for_endpoint(self, endpoint_id: str) -> int:
        """Delete every delivery of an endpoint.

        Returns:
            Number of deliveries deleted.
        """
        endpoint_filter = models.Filter(must=[match("endpoint_id", endpoint_id)])
        collection = self._collection_name("deliveries")
        result = await self.client.count(
            collection_name=collection, count_filter=endpoint_filter, exact=True
        )
        if result.count:
            await self.client.delete(
                collection_name=collection,
                points_selector=models.FilterSelector(filter=endpoint_filter),
            )
        count: int = result.count
        return count
