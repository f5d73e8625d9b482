"""FastAPI router for operator webhook controls.

Mounted under /api/v1/admin/webhooks. Access control is expected in front
of the application.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, status

from hookrelay.logging import get_logger
from hookrelay.models import (
    AdminStats,
    DeliveryFilters,
    DeliveryPage,
    DeliveryStatus,
    EndpointPage,
    EndpointView,
    EventType,
    ProcessResult,
    SchedulerStatus,
)

from .router import ServiceDep
from .schemas import PurgeRequest, PurgeResponse

logger = get_logger(__name__)

admin_router = APIRouter(prefix="/admin/webhooks", tags=["admin"])


@admin_router.get("/stats", response_model=AdminStats)
async def get_stats(service: ServiceDep) -> AdminStats:
    """System-wide delivery and endpoint statistics."""
    return await service.admin.get_stats()


@admin_router.get("/processor-status", response_model=SchedulerStatus)
async def processor_status(service: ServiceDep) -> SchedulerStatus:
    """Whether the periodic processor is running, and when each tick last ran."""
    return service.admin.scheduler_status()


@admin_router.post("/process-queue", response_model=ProcessResult)
async def process_queue(service: ServiceDep) -> ProcessResult:
    """Run a queue tick now. Skipped if one is already running."""
    result = await service.admin.trigger_queue_processing()
    logger.info("Admin triggered queue processing", processed=result.processed, skipped=result.skipped)
    return result


@admin_router.post("/process-retries", response_model=ProcessResult)
async def process_retries(service: ServiceDep) -> ProcessResult:
    """Run a retry tick now. Skipped if one is already running."""
    result = await service.admin.trigger_retry_processing()
    logger.info("Admin triggered retry processing", processed=result.processed, skipped=result.skipped)
    return result


@admin_router.get("/endpoints", response_model=EndpointPage)
async def list_endpoints(
    service: ServiceDep,
    user_id: str | None = None,
    is_active: bool | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> EndpointPage:
    """Page through every endpoint, newest first."""
    return await service.admin.list_endpoints(
        owner_id=user_id, is_active=is_active, page=page, limit=limit
    )


@admin_router.get("/endpoints/{endpoint_id}", response_model=EndpointView)
async def get_endpoint(endpoint_id: str, service: ServiceDep) -> EndpointView:
    """Get any endpoint."""
    return await service.admin.get_endpoint(endpoint_id)


@admin_router.delete("/endpoints/{endpoint_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_endpoint(endpoint_id: str, service: ServiceDep) -> None:
    """Delete any endpoint and its deliveries."""
    await service.admin.delete_endpoint(endpoint_id)


@admin_router.post("/endpoints/{endpoint_id}/enable", response_model=EndpointView)
async def enable_endpoint(endpoint_id: str, service: ServiceDep) -> EndpointView:
    """Force-enable an endpoint and reset its failure counter."""
    return await service.admin.enable_endpoint(endpoint_id)


@admin_router.post("/endpoints/{endpoint_id}/disable", response_model=EndpointView)
async def disable_endpoint(endpoint_id: str, service: ServiceDep) -> EndpointView:
    """Force-disable an endpoint."""
    return await service.admin.disable_endpoint(endpoint_id)


@admin_router.get("/deliveries", response_model=DeliveryPage)
async def list_deliveries(
    service: ServiceDep,
    status_filter: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
    event: EventType | None = None,
    endpoint_id: str | None = None,
    user_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> DeliveryPage:
    """Page through deliveries across all endpoints, newest first."""
    filters = DeliveryFilters(
        status=status_filter,
        event=event,
        endpoint_id=endpoint_id,
        owner_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return await service.admin.list_deliveries(filters)


@admin_router.post("/purge", response_model=PurgeResponse)
async def purge_deliveries(request: PurgeRequest, service: ServiceDep) -> PurgeResponse:
    """Delete DELIVERED and FAILED deliveries older than `days_old` days."""
    purged = await service.admin.purge_deliveries(request.days_old)
    return PurgeResponse(
        purged=purged,
        days_old=request.days_old,
        message=f"Purged {purged} delivery records older than {request.days_old} days",
    )
