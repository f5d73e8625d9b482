"""Storage backends for HookRelay.

This module provides the repository interfaces used by the delivery core
and their Qdrant-backed implementation.

Example:
    ```python
    from hookrelay.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_delivery(delivery)
        page, total = await storage.list_deliveries(DeliveryFilters(status="FAILED"))
    ```
"""

from .base import COLLECTION_NAMES
from .client import WebhookStorage
from .interfaces import DeliveryRepository, EndpointRepository

__all__ = [
    "COLLECTION_NAMES",
    "DeliveryRepository",
    "EndpointRepository",
    "WebhookStorage",
]
