"""Operator controls for webhooks.

Unlike the owner surface, nothing here checks ownership: operators can see
and change every endpoint and delivery.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hookrelay.exceptions import NotFoundError
from hookrelay.models import (
    AdminStats,
    DeliveryFilters,
    DeliveryPage,
    DeliveryStats,
    EndpointCounts,
    EndpointHealth,
    EndpointPage,
    EndpointView,
    Pagination,
    ProcessResult,
    SchedulerStatus,
    WebhookEndpoint,
)
from hookrelay.storage.base import paginate

if TYPE_CHECKING:
    from hookrelay.storage import DeliveryRepository, EndpointRepository

    from .registry import EndpointRegistry
    from .scheduler import WebhookScheduler
    from .worker import DeliveryWorker

logger = logging.getLogger(__name__)

# Endpoints listed in the "with failures" section of the stats
FAILING_ENDPOINTS_LIMIT = 10


class WebhookAdmin:
    """System-wide endpoint management, delivery inspection and processor control."""

    def __init__(
        self,
        endpoints: EndpointRepository,
        deliveries: DeliveryRepository,
        registry: EndpointRegistry,
        worker: DeliveryWorker,
        scheduler: WebhookScheduler,
    ) -> None:
        self._endpoints = endpoints
        self._deliveries = deliveries
        self._registry = registry
        self._worker = worker
        self._scheduler = scheduler

    async def _require(self, endpoint_id: str) -> WebhookEndpoint:
        endpoint = await self._endpoints.get_endpoint(endpoint_id)
        if endpoint is None:
            raise NotFoundError("webhook_endpoint", endpoint_id)
        return endpoint

    async def _view(self, endpoint: WebhookEndpoint) -> EndpointView:
        count = await self._deliveries.count_deliveries(endpoint.id)
        return EndpointView.from_endpoint(endpoint, delivery_count=count)

    async def list_endpoints(
        self,
        owner_id: str | None = None,
        is_active: bool | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> EndpointPage:
        """Page through all endpoints, newest first."""
        endpoints = await self._endpoints.list_endpoints(owner_id=owner_id, is_active=is_active)
        views = [await self._view(e) for e in paginate(endpoints, page, limit)]
        return EndpointPage(
            endpoints=views,
            pagination=Pagination.build(page, limit, len(endpoints)),
        )

    async def get_endpoint(self, endpoint_id: str) -> EndpointView:
        """Get any endpoint by ID."""
        return await self._view(await self._require(endpoint_id))

    async def enable_endpoint(self, endpoint_id: str) -> EndpointView:
        """Force-enable an endpoint and reset its failure counter."""
        endpoint = await self._registry.set_active(await self._require(endpoint_id), True)
        logger.info("Admin enabled webhook endpoint %s", endpoint_id)
        return await self._view(endpoint)

    async def disable_endpoint(self, endpoint_id: str) -> EndpointView:
        """Force-disable an endpoint."""
        endpoint = await self._registry.set_active(await self._require(endpoint_id), False)
        logger.info("Admin disabled webhook endpoint %s", endpoint_id)
        return await self._view(endpoint)

    async def delete_endpoint(self, endpoint_id: str) -> None:
        """Delete an endpoint and its deliveries."""
        removed = await self._registry.remove(await self._require(endpoint_id))
        logger.info("Admin deleted webhook endpoint %s (%d deliveries)", endpoint_id, removed)

    async def list_deliveries(self, filters: DeliveryFilters) -> DeliveryPage:
        """Page through deliveries across all endpoints, newest first."""
        deliveries, total = await self._deliveries.list_deliveries(filters)
        return DeliveryPage(
            deliveries=deliveries,
            pagination=Pagination.build(filters.page, filters.limit, total),
        )

    async def purge_deliveries(self, days_old: int = 30) -> int:
        """Delete DELIVERED and FAILED deliveries older than `days_old` days."""
        purged = await self._worker.purge_old_deliveries(days_old)
        logger.info("Admin purged %d webhook deliveries older than %d days", purged, days_old)
        return purged

    async def get_stats(self) -> AdminStats:
        """Delivery totals, endpoint counts and the endpoints failing most."""
        counts = await self._deliveries.count_deliveries_by_status()
        active = await self._endpoints.count_endpoints(is_active=True)
        inactive = await self._endpoints.count_endpoints(is_active=False)
        failing = await self._endpoints.list_failing_endpoints(FAILING_ENDPOINTS_LIMIT)

        return AdminStats(
            deliveries=DeliveryStats.from_counts(counts),
            endpoints=EndpointCounts(active=active, inactive=inactive, total=active + inactive),
            endpoints_with_failures=[
                EndpointHealth(
                    id=e.id,
                    name=e.name,
                    url=e.url,
                    owner_id=e.owner_id,
                    is_active=e.is_active,
                    failure_count=e.failure_count,
                    last_failure_at=e.last_failure_at,
                )
                for e in failing
            ],
            processor_running=self._scheduler.is_running,
        )

    async def trigger_queue_processing(self) -> ProcessResult:
        """Run a queue tick now."""
        return await self._scheduler.trigger_queue_processing()

    async def trigger_retry_processing(self) -> ProcessResult:
        """Run a retry tick now."""
        return await self._scheduler.trigger_retry_processing()

    def scheduler_status(self) -> SchedulerStatus:
        """Current scheduler state."""
        return self._scheduler.status()
