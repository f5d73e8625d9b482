"""Core HookRelay service layer.

This module wires storage, registry, dispatcher, worker, scheduler, admin
surface and event bridge into one object, and adds the owner-facing
delivery operations (which check ownership before touching a delivery).

Example:
    ```python
    from hookrelay.service import WebhookService

    async with WebhookService.create() as service:
        created = await service.registry.create_endpoint(
            owner_id="user_123",
            name="Billing",
            url="https://example.com/hooks",
            events=["PAYMENT_SUCCEEDED"],
        )
        print(f"Store this secret: {created.secret}")

        await service.dispatcher.dispatch("PAYMENT_SUCCEEDED", {"payment_id": "pay_1"})
        await service.scheduler.trigger_queue_processing()
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from hookrelay.config import Settings
from hookrelay.exceptions import NotFoundError
from hookrelay.models import (
    DeliveryFilters,
    DeliveryPage,
    DeliveryStats,
    EndpointStats,
    Pagination,
    WebhookDelivery,
    WebhookEndpoint,
)
from hookrelay.storage import WebhookStorage
from hookrelay.webhooks import (
    DeliveryWorker,
    EndpointRegistry,
    EventBridge,
    EventDispatcher,
    WebhookAdmin,
    WebhookScheduler,
)

logger = logging.getLogger(__name__)


@dataclass
class WebhookService:
    """High-level HookRelay service.

    Components:
    - registry: endpoint CRUD, secrets, test deliveries
    - dispatcher: event fan-out
    - worker: sending, retry, cancel, purge
    - scheduler: periodic processing
    - admin: operator controls
    - events: fire-and-forget bridge for internal event names

    Attributes:
        storage: Storage backend (Qdrant).
        settings: Configuration settings.
        http_client: Optional shared HTTP client for deliveries.
    """

    storage: WebhookStorage
    settings: Settings
    http_client: httpx.AsyncClient | None = field(default=None)

    registry: EndpointRegistry = field(init=False, repr=False)
    dispatcher: EventDispatcher = field(init=False, repr=False)
    worker: DeliveryWorker = field(init=False, repr=False)
    scheduler: WebhookScheduler = field(init=False, repr=False)
    admin: WebhookAdmin = field(init=False, repr=False)
    events: EventBridge = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Build the components on top of storage."""
        self.dispatcher = EventDispatcher(self.storage, self.storage, self.settings)
        self.registry = EndpointRegistry(self.storage, self.storage, self.dispatcher, self.settings)
        self.worker = DeliveryWorker(
            self.storage, self.storage, self.settings, http_client=self.http_client
        )
        self.scheduler = WebhookScheduler(self.worker, self.settings)
        self.admin = WebhookAdmin(
            self.storage, self.storage, self.registry, self.worker, self.scheduler
        )
        self.events = EventBridge(self.dispatcher)

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.

        Returns:
            Configured WebhookService instance.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=WebhookStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                max_scroll_limit=settings.storage_max_scroll_limit,
            ),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize the service (storage collections)."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Stop background work and release storage."""
        await self.events.drain()
        await self.scheduler.stop()
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def start_scheduler(self) -> bool:
        """Start periodic processing if delivery and autostart are enabled.

        Returns:
            True if the scheduler is running afterwards.
        """
        if self.settings.webhook_enabled and self.settings.webhook_scheduler_autostart:
            await self.scheduler.start()
        else:
            logger.info(
                "Webhook scheduler not started (enabled=%s, autostart=%s)",
                self.settings.webhook_enabled,
                self.settings.webhook_scheduler_autostart,
            )
        return self.scheduler.is_running

    async def _owned_endpoint(self, endpoint_id: str, owner_id: str) -> WebhookEndpoint:
        endpoint = await self.storage.get_endpoint(endpoint_id)
        if endpoint is None or endpoint.owner_id != owner_id:
            raise NotFoundError("webhook_endpoint", endpoint_id)
        return endpoint

    async def _owned_delivery(self, delivery_id: str, owner_id: str) -> WebhookDelivery:
        delivery = await self.storage.get_delivery(delivery_id)
        if delivery is None:
            raise NotFoundError("webhook_delivery", delivery_id)
        endpoint = await self.storage.get_endpoint(delivery.endpoint_id)
        if endpoint is None or endpoint.owner_id != owner_id:
            raise NotFoundError("webhook_delivery", delivery_id)
        return delivery

    async def list_deliveries(
        self,
        endpoint_id: str,
        owner_id: str,
        filters: DeliveryFilters | None = None,
    ) -> DeliveryPage:
        """Page through one endpoint's deliveries, newest first.

        Any endpoint_id or owner_id inside `filters` is replaced by the
        checked endpoint.
        """
        await self._owned_endpoint(endpoint_id, owner_id)
        scoped = (filters or DeliveryFilters()).model_copy(
            update={"endpoint_id": endpoint_id, "owner_id": None}
        )
        deliveries, total = await self.storage.list_deliveries(scoped)
        return DeliveryPage(
            deliveries=deliveries,
            pagination=Pagination.build(scoped.page, scoped.limit, total),
        )

    async def get_delivery(self, delivery_id: str, owner_id: str) -> WebhookDelivery:
        """Get a delivery of one of the owner's endpoints."""
        return await self._owned_delivery(delivery_id, owner_id)

    async def retry_delivery(self, delivery_id: str, owner_id: str) -> bool:
        """Reset and resend a delivery. Returns the send outcome."""
        await self._owned_delivery(delivery_id, owner_id)
        return await self.worker.retry(delivery_id)

    async def cancel_delivery(self, delivery_id: str, owner_id: str) -> bool:
        """Cancel a PENDING delivery. Returns False if it isn't PENDING."""
        await self._owned_delivery(delivery_id, owner_id)
        return await self.worker.cancel(delivery_id)

    async def get_endpoint_stats(self, endpoint_id: str, owner_id: str) -> EndpointStats:
        """Delivery totals and health for one of the owner's endpoints."""
        endpoint = await self._owned_endpoint(endpoint_id, owner_id)
        counts = await self.storage.count_deliveries_by_status(endpoint_id)
        return EndpointStats(
            endpoint_id=endpoint.id,
            is_active=endpoint.is_active,
            failure_count=endpoint.failure_count,
            last_success_at=endpoint.last_success_at,
            last_failure_at=endpoint.last_failure_at,
            deliveries=DeliveryStats.from_counts(counts),
        )


__all__ = ["WebhookService"]
