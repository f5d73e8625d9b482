"""Tests for the periodic webhook scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from hookrelay.config import Settings
from hookrelay.models import DeliveryStatus
from hookrelay.webhooks import DeliveryWorker, WebhookScheduler


@pytest.fixture
def worker():
    worker = MagicMock()
    worker.process_queue = AsyncMock(return_value=3)
    worker.process_retries = AsyncMock(return_value=1)
    worker.purge_old_deliveries = AsyncMock(return_value=7)
    return worker


@pytest.fixture
def scheduler(worker, settings):
    return WebhookScheduler(worker, settings)


class TestTicks:
    """Tests for individual guarded ticks."""

    async def test_queue_tick_uses_batch_size(self, scheduler, worker, settings):
        """The queue tick claims one batch of the configured size."""
        result = await scheduler.run_queue_tick()

        assert result.processed == 3
        assert result.skipped is False
        worker.process_queue.assert_awaited_once_with(settings.webhook_queue_batch_size)

    async def test_retry_tick_uses_batch_size(self, scheduler, worker, settings):
        """The retry tick claims one batch of the configured size."""
        result = await scheduler.run_retry_tick()

        assert result.processed == 1
        worker.process_retries.assert_awaited_once_with(settings.webhook_retry_batch_size)

    async def test_purge_tick_uses_retention(self, scheduler, worker, settings):
        """The purge tick passes the retention window."""
        result = await scheduler.run_purge_tick()

        assert result.processed == 7
        worker.purge_old_deliveries.assert_awaited_once_with(settings.webhook_retention_days)

    async def test_overlapping_tick_is_skipped(self, scheduler, worker):
        """A tick that fires while the previous one runs is skipped."""
        release = asyncio.Event()

        async def slow_batch(limit):
            await release.wait()
            return 2

        worker.process_queue.side_effect = slow_batch
        first = asyncio.create_task(scheduler.run_queue_tick())
        await asyncio.sleep(0)

        second = await scheduler.trigger_queue_processing()
        assert second.skipped is True
        assert second.processed == 0

        release.set()
        assert (await first).processed == 2
        assert worker.process_queue.await_count == 1

    async def test_tick_types_are_independent(self, scheduler, worker):
        """A running queue tick doesn't block the retry tick."""
        release = asyncio.Event()

        async def slow_batch(limit):
            await release.wait()
            return 0

        worker.process_queue.side_effect = slow_batch
        first = asyncio.create_task(scheduler.run_queue_tick())
        await asyncio.sleep(0)

        retry = await scheduler.run_retry_tick()
        assert retry.skipped is False
        assert scheduler.status().queue_busy is True

        release.set()
        await first

    async def test_errors_are_contained(self, scheduler, worker):
        """A failing tick reports the error and releases its lock."""
        worker.process_retries.side_effect = RuntimeError("storage down")

        result = await scheduler.trigger_retry_processing()
        assert result.processed == 0
        assert result.detail == {"error": "storage down"}

        worker.process_retries.side_effect = None
        assert (await scheduler.run_retry_tick()).processed == 1

    async def test_last_run_recorded(self, scheduler):
        """Status reports when each tick last ran."""
        assert scheduler.status().last_purge_run_at is None
        await scheduler.run_purge_tick()
        assert scheduler.status().last_purge_run_at is not None


class TestStartStop:
    """Tests for the periodic loops."""

    async def test_start_and_stop(self, scheduler):
        """Start spawns the loops; stop cancels them."""
        assert scheduler.status().status == "stopped"

        await scheduler.start()
        assert scheduler.is_running is True
        assert scheduler.status().status == "active"

        await scheduler.stop()
        assert scheduler.is_running is False

    async def test_start_is_idempotent(self, scheduler):
        """Starting twice doesn't add loops."""
        await scheduler.start()
        await scheduler.start()
        assert len(scheduler._tasks) == 3
        await scheduler.stop()

    async def test_stop_when_not_running(self, scheduler):
        """Stopping an idle scheduler is a no-op."""
        await scheduler.stop()
        assert scheduler.is_running is False

    async def test_loops_run_on_interval(self, worker):
        """The queue loop fires repeatedly on its interval."""
        settings = Settings(
            _env_file=None,
            env="test",
            webhook_queue_interval_ms=100,
            webhook_retry_interval_ms=100000,
        )
        scheduler = WebhookScheduler(worker, settings)

        await scheduler.start()
        await asyncio.sleep(0.35)
        await scheduler.stop()

        assert worker.process_queue.await_count >= 2
        worker.process_retries.assert_not_awaited()

    async def test_loop_survives_errors(self, worker):
        """A failing tick doesn't end its loop."""
        worker.process_queue.side_effect = RuntimeError("boom")
        settings = Settings(_env_file=None, env="test", webhook_queue_interval_ms=100)
        scheduler = WebhookScheduler(worker, settings)

        await scheduler.start()
        await asyncio.sleep(0.35)
        await scheduler.stop()

        assert worker.process_queue.await_count >= 2

    async def test_stop_lets_running_sends_finish(self, storage, make_endpoint, make_delivery):
        """Stopping mid-tick waits for the in-flight send to record its outcome."""
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(0.2)
            return httpx.Response(200, text="ok")

        endpoint = make_endpoint()
        await storage.store_endpoint(endpoint)
        delivery = make_delivery(endpoint.id)
        await storage.store_delivery(delivery)
        settings = Settings(_env_file=None, env="test", webhook_queue_interval_ms=100)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            worker = DeliveryWorker(storage, storage, settings, http_client=client)
            scheduler = WebhookScheduler(worker, settings)
            await scheduler.start()
            await asyncio.wait_for(started.wait(), timeout=2)
            await scheduler.stop()

        assert scheduler.status().queue_busy is False
        stored = await storage.get_delivery(delivery.id)
        assert stored.status == DeliveryStatus.DELIVERED
        assert stored.attempts == 1

    def test_status_intervals(self, scheduler, settings):
        """Status echoes the configured intervals."""
        status = scheduler.status()
        assert status.running is False
        assert status.queue_interval_ms == settings.webhook_queue_interval_ms
        assert status.retry_interval_ms == settings.webhook_retry_interval_ms
        assert status.purge_interval_hours == settings.webhook_purge_interval_hours
