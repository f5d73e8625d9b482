"""Tests for the internal event bridge."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from hookrelay.webhooks import INTERNAL_EVENT_MAP, EventBridge


@pytest.fixture
def dispatcher():
    dispatcher = AsyncMock()
    dispatcher.dispatch.return_value = []
    return dispatcher


class TestEventBridge:
    """Tests for fire-and-forget dispatch."""

    async def test_maps_internal_names(self, dispatcher):
        """Dotted names are dispatched as webhook event types."""
        bridge = EventBridge(dispatcher)

        task = bridge.emit("payment.refunded", {"payment_id": "pay_1"}, actor_id="user_1")
        await task

        dispatcher.dispatch.assert_awaited_once_with(
            "PAYMENT_REFUNDED", {"payment_id": "pay_1"}, "user_1"
        )

    async def test_unmapped_name_ignored(self, dispatcher):
        """Names without a webhook event do nothing."""
        bridge = EventBridge(dispatcher)
        assert bridge.emit("session.started", {}) is None
        dispatcher.dispatch.assert_not_called()

    async def test_emit_does_not_wait(self, dispatcher):
        """emit returns before dispatch finishes."""
        release = asyncio.Event()

        async def slow_dispatch(*args):
            await release.wait()
            return []

        dispatcher.dispatch.side_effect = slow_dispatch
        bridge = EventBridge(dispatcher)

        bridge.emit("user.created", {"user_id": "u1"})
        await asyncio.sleep(0)
        assert bridge.pending == 1

        release.set()
        await bridge.drain()
        assert bridge.pending == 0

    async def test_dispatch_errors_are_logged(self, dispatcher, caplog):
        """A failed background dispatch is logged, not raised."""
        dispatcher.dispatch.side_effect = RuntimeError("storage down")
        bridge = EventBridge(dispatcher)

        bridge.emit("user.deleted", {"user_id": "u1"})
        await bridge.drain()
        await asyncio.sleep(0)

        assert bridge.pending == 0
        assert "Background webhook dispatch failed" in caplog.text

    def test_map_covers_every_event_type(self):
        """Every webhook event type has an internal name."""
        assert len(INTERNAL_EVENT_MAP) == 14
        assert len(set(INTERNAL_EVENT_MAP.values())) == 14
