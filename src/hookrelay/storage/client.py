"""Qdrant storage client for HookRelay.

This module provides the WebhookStorage class that combines endpoint and
delivery persistence through mixins.

Example:
    ```python
    from hookrelay.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_endpoint(endpoint)
        due = await storage.list_due_deliveries(now, limit=10)
    ```
"""

from __future__ import annotations

from .base import StorageBase
from .deliveries import DeliveryStoreMixin
from .endpoints import EndpointStoreMixin


class WebhookStorage(EndpointStoreMixin, DeliveryStoreMixin, StorageBase):
    """Async Qdrant storage for webhook endpoints and deliveries.

    Satisfies both EndpointRepository and DeliveryRepository.

    This class combines functionality from multiple mixins:
    - EndpointStoreMixin: store_endpoint, get_endpoint, list_endpoints, ...
    - DeliveryStoreMixin: store_delivery, list_deliveries, list_due_deliveries,
      purge_deliveries, ...

    Example:
        ```python
        storage = WebhookStorage(url=":memory:")
        await storage.initialize()
        try:
            await storage.store_endpoint(endpoint)
        finally:
            await storage.close()
        ```
    """

    async def __aenter__(self) -> WebhookStorage:
        """Async context manager entry."""
        await self.initialize()
        return self
