"""Periodic webhook processing.

Three independent loops drive the worker:

- queue tick: send new and due PENDING deliveries
- retry tick: send deliveries whose retry time has come
- purge tick: delete old DELIVERED/FAILED deliveries

Each tick type has its own asyncio.Lock. A tick that fires while the
previous one of the same type is still running is skipped, not queued.
Manual triggers go through the same guards.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from hookrelay.logging import bind_context, unbind_context
from hookrelay.models import ProcessResult, SchedulerStatus, utcnow

if TYPE_CHECKING:
    from hookrelay.config import Settings

    from .worker import DeliveryWorker

logger = logging.getLogger(__name__)


@dataclass
class _Tick:
    """One guarded periodic job."""

    name: str
    interval_seconds: float
    run: Callable[[], Awaitable[int]]
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_run_at: datetime | None = None


class WebhookScheduler:
    """Runs the queue, retry and purge ticks on their intervals.

    The ticks are public coroutines, so tests and operators can drive them
    without waiting on timers.

    Example:
        ```python
        scheduler = WebhookScheduler(worker, settings)
        await scheduler.start()
        ...
        result = await scheduler.trigger_queue_processing()
        await scheduler.stop()
        ```
    """

    def __init__(self, worker: DeliveryWorker, settings: Settings) -> None:
        self._worker = worker
        self._settings = settings
        self._tasks: set[asyncio.Task[None]] = set()
        self._running_ticks: set[asyncio.Task[ProcessResult]] = set()
        self._warned_multi_instance = False
        self._queue = _Tick(
            "queue",
            settings.webhook_queue_interval_ms / 1000,
            lambda: worker.process_queue(settings.webhook_queue_batch_size),
        )
        self._retry = _Tick(
            "retry",
            settings.webhook_retry_interval_ms / 1000,
            lambda: worker.process_retries(settings.webhook_retry_batch_size),
        )
        self._purge = _Tick(
            "purge",
            settings.webhook_purge_interval_hours * 3600,
            lambda: worker.purge_old_deliveries(settings.webhook_retention_days),
        )

    @property
    def is_running(self) -> bool:
        """Whether the periodic loops are active."""
        return bool(self._tasks)

    async def start(self) -> None:
        """Start the three periodic loops. No-op if already running."""
        if self.is_running:
            return

        for tick in (self._queue, self._retry, self._purge):
            self._tasks.add(asyncio.create_task(self._loop(tick), name=f"webhook-{tick.name}"))

        if not self._warned_multi_instance:
            logger.warning(
                "Webhook scheduler has no cross-instance locking; "
                "running several instances can send a delivery more than once"
            )
            self._warned_multi_instance = True
        logger.info(
            "Webhook scheduler started (queue every %.1fs, retry every %.1fs, purge every %.1fh)",
            self._queue.interval_seconds,
            self._retry.interval_seconds,
            self._settings.webhook_purge_interval_hours,
        )

    async def stop(self) -> None:
        """Cancel the loops and wait for any tick they started to finish.

        Ticks run shielded from the loop, so a stop never interrupts sends
        that are already in flight.
        """
        if not self.is_running:
            return

        tasks = list(self._tasks)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._running_ticks:
            logger.info("Waiting for %d running webhook ticks", len(self._running_ticks))
            await asyncio.gather(*self._running_ticks, return_exceptions=True)
        logger.info("Webhook scheduler stopped")

    async def _loop(self, tick: _Tick) -> None:
        while True:
            try:
                await asyncio.sleep(tick.interval_seconds)
                run = asyncio.create_task(self._run_tick(tick), name=f"webhook-{tick.name}-tick")
                self._running_ticks.add(run)
                run.add_done_callback(self._running_ticks.discard)
                await asyncio.shield(run)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Webhook %s loop iteration failed", tick.name)

    async def _run_tick(self, tick: _Tick) -> ProcessResult:
        if tick.lock.locked():
            logger.debug("Skipping %s tick; previous run still in progress", tick.name)
            return ProcessResult(processed=0, skipped=True)

        async with tick.lock:
            bind_context(tick=tick.name)
            try:
                processed = await tick.run()
            except Exception as e:
                logger.exception("Webhook %s tick failed", tick.name)
                return ProcessResult(processed=0, detail={"error": str(e)})
            finally:
                tick.last_run_at = utcnow()
                unbind_context("tick")

        if processed:
            logger.info("Webhook %s tick handled %d records", tick.name, processed)
        return ProcessResult(processed=processed)

    async def run_queue_tick(self) -> ProcessResult:
        """Run one guarded queue tick."""
        return await self._run_tick(self._queue)

    async def run_retry_tick(self) -> ProcessResult:
        """Run one guarded retry tick."""
        return await self._run_tick(self._retry)

    async def run_purge_tick(self) -> ProcessResult:
        """Run one guarded purge tick."""
        return await self._run_tick(self._purge)

    async def trigger_queue_processing(self) -> ProcessResult:
        """Process the queue now (operator control)."""
        logger.info("Manual queue processing triggered")
        return await self.run_queue_tick()

    async def trigger_retry_processing(self) -> ProcessResult:
        """Process due retries now (operator control)."""
        logger.info("Manual retry processing triggered")
        return await self.run_retry_tick()

    def status(self) -> SchedulerStatus:
        """Snapshot of the scheduler state."""
        running = self.is_running
        return SchedulerStatus(
            running=running,
            status="active" if running else "stopped",
            queue_busy=self._queue.lock.locked(),
            retry_busy=self._retry.lock.locked(),
            purge_busy=self._purge.lock.locked(),
            queue_interval_ms=self._settings.webhook_queue_interval_ms,
            retry_interval_ms=self._settings.webhook_retry_interval_ms,
            purge_interval_hours=self._settings.webhook_purge_interval_hours,
            last_queue_run_at=self._queue.last_run_at,
            last_retry_run_at=self._retry.last_run_at,
            last_purge_run_at=self._purge.last_run_at,
        )
