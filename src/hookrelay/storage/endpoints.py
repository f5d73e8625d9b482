"""Endpoint storage operations for HookRelay.

Provides methods to store, retrieve, and query webhook endpoints.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .base import in_range, match
from .retry import qdrant_retry

if TYPE_CHECKING:
    from hookrelay.models import WebhookEndpoint


class EndpointStoreMixin:
    """Mixin providing endpoint operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(record_type) -> str
    - _key_to_point_id(key) -> str
    - _point(record) -> PointStruct
    - _retrieve(record_type, record_id, record_class) -> record | None
    - _scroll(record_type, record_class, conditions) -> list[record]
    - _count(record_type, conditions) -> int
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _key_to_point_id: Any
    _point: Any
    _retrieve: Any
    _scroll: Any
    _count: Any
    client: Any

    @qdrant_retry
    async def store_endpoint(self, endpoint: WebhookEndpoint) -> str:
        """Insert or replace an endpoint.

        Args:
            endpoint: Endpoint to persist.

        Returns:
            The endpoint ID.
        """
        await self.client.upsert(
            collection_name=self._collection_name("endpoints"),
            points=[self._point(endpoint)],
        )
        return endpoint.id

    @qdrant_retry
    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None:
        """Get an endpoint by ID, or None if it doesn't exist."""
        from hookrelay.models import WebhookEndpoint

        endpoint: WebhookEndpoint | None = await self._retrieve(
            "endpoints", endpoint_id, WebhookEndpoint
        )
        return endpoint

    @qdrant_retry
    async def delete_endpoint(self, endpoint_id: str) -> bool:
        """Delete an endpoint.

        Deliveries are not touched here; callers remove them with
        delete_deliveries_for_endpoint.

        Returns:
            True if the endpoint existed.
        """
        if await self.get_endpoint(endpoint_id) is None:
            return False
        await self.client.delete(
            collection_name=self._collection_name("endpoints"),
            points_selector=models.PointIdsList(points=[self._key_to_point_id(endpoint_id)]),
        )
        return True

    @qdrant_retry
    async def list_endpoints(
        self,
        owner_id: str | None = None,
        is_active: bool | None = None,
    ) -> list[WebhookEndpoint]:
        """List endpoints, newest first.

        Args:
            owner_id: Only endpoints of this owner.
            is_active: Only active (True) or inactive (False) endpoints.
        """
        from hookrelay.models import WebhookEndpoint

        conditions = []
        if owner_id is not None:
            conditions.append(match("owner_id", owner_id))
        if is_active is not None:
            conditions.append(match("is_active", is_active))

        endpoints: list[WebhookEndpoint] = await self._scroll(
            "endpoints", WebhookEndpoint, conditions
        )
        endpoints.sort(key=lambda e: e.created_at, reverse=True)
        return endpoints

    @qdrant_retry
    async def list_subscribed_endpoints(self, event_type: str) -> list[WebhookEndpoint]:
        """Active endpoints subscribed to the event type."""
        from hookrelay.models import WebhookEndpoint

        endpoints: list[WebhookEndpoint] = await self._scroll(
            "endpoints",
            WebhookEndpoint,
            [match("is_active", True), match("events", event_type)],
        )
        return [e for e in endpoints if e.subscribes_to(event_type)]

    @qdrant_retry
    async def count_endpoints(self, is_active: bool | None = None) -> int:
        """Count endpoints, optionally by active state."""
        conditions = [match("is_active", is_active)] if is_active is not None else None
        count: int = await self._count("endpoints", conditions)
        return count

    @qdrant_retry
    async def list_failing_endpoints(self, limit: int = 10) -> list[WebhookEndpoint]:
        """Endpoints with recorded failures, highest failure_count first."""
        from hookrelay.models import WebhookEndpoint

        endpoints: list[WebhookEndpoint] = await self._scroll(
            "endpoints",
            WebhookEndpoint,
            [in_range("failure_count", gt=0)],
        )
        endpoints.sort(key=lambda e: e.failure_count, reverse=True)
        return endpoints[:limit]
