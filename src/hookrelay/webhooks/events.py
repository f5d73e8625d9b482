"""Bridge from internal domain events to webhook dispatch.

The host application emits dotted event names (``user.created``,
``payment.refunded``...). The bridge maps them to webhook event types and
dispatches in the background, so emitting never blocks or fails the
request that caused the event.

Example:
    ```python
    bridge = EventBridge(dispatcher)
    bridge.emit("payment.succeeded", {"payment_id": "pay_1"}, actor_id="user_42")
    ...
    await bridge.drain()  # on shutdown
    ```
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hookrelay.models import WebhookDelivery

    from .dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

INTERNAL_EVENT_MAP: dict[str, str] = {
    "user.created": "USER_CREATED",
    "user.updated": "USER_UPDATED",
    "user.deleted": "USER_DELETED",
    "subscription.created": "SUBSCRIPTION_CREATED",
    "subscription.updated": "SUBSCRIPTION_UPDATED",
    "subscription.cancelled": "SUBSCRIPTION_CANCELLED",
    "subscription.expired": "SUBSCRIPTION_EXPIRED",
    "payment.succeeded": "PAYMENT_SUCCEEDED",
    "payment.failed": "PAYMENT_FAILED",
    "payment.refunded": "PAYMENT_REFUNDED",
    "challenge.created": "CHALLENGE_CREATED",
    "challenge.enrollment": "CHALLENGE_ENROLLMENT",
    "challenge.checkin": "CHALLENGE_CHECKIN",
    "challenge.completed": "CHALLENGE_COMPLETED",
}


class EventBridge:
    """Fire-and-forget dispatch of internal events."""

    def __init__(self, dispatcher: EventDispatcher) -> None:
        self._dispatcher = dispatcher
        self._pending: set[asyncio.Task[list[WebhookDelivery]]] = set()

    @property
    def pending(self) -> int:
        """Dispatches still in flight."""
        return len(self._pending)

    def emit(
        self,
        name: str,
        payload: dict[str, Any],
        actor_id: str | None = None,
    ) -> asyncio.Task[list[WebhookDelivery]] | None:
        """Schedule dispatch of an internal event and return immediately.

        Must be called from a running event loop.

        Args:
            name: Dotted internal event name.
            payload: Event data.
            actor_id: User who caused the event.

        Returns:
            The background task, or None if the name has no webhook event.
        """
        event_type = INTERNAL_EVENT_MAP.get(name)
        if event_type is None:
            logger.debug("Internal event %s has no webhook mapping", name)
            return None

        task = asyncio.create_task(self._dispatcher.dispatch(event_type, payload, actor_id))
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[list[WebhookDelivery]]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background webhook dispatch failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for in-flight dispatches to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
