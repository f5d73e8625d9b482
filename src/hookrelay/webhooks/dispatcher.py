"""Event fan-out to subscribed webhook endpoints.

The dispatcher only enqueues. Each subscribed active endpoint gets one
PENDING delivery holding a sanitized snapshot of the payload; the worker
sends it later. Callers never see delivery errors.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import TYPE_CHECKING, Any

from hookrelay.exceptions import ValidationError
from hookrelay.models import EVENT_DESCRIPTIONS, WebhookDelivery

from .signing import generate_delivery_id

if TYPE_CHECKING:
    from hookrelay.config import Settings
    from hookrelay.storage import DeliveryRepository, EndpointRepository

logger = logging.getLogger(__name__)

# Key fragments (lowercase) removed from outbound payloads
SENSITIVE_KEYS = (
    "password",
    "secret",
    "token",
    "accesstoken",
    "refreshtoken",
    "apikey",
    "privatekey",
)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEYS)


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Deep-copy a payload, dropping sensitive keys.

    Nested dicts are sanitized recursively. Lists and date/datetime values
    are copied as they are, without looking inside lists.

    Args:
        payload: Event data from the caller.

    Returns:
        A new dict safe to persist and send.
    """
    sanitized: dict[str, Any] = {}
    for key, value in payload.items():
        if _is_sensitive(str(key)):
            continue
        if isinstance(value, dict):
            sanitized[key] = sanitize_payload(value)
        else:
            sanitized[key] = copy.deepcopy(value)
    return sanitized


class EventDispatcher:
    """Maps events to subscribed endpoints and enqueues deliveries.

    Example:
        ```python
        dispatcher = EventDispatcher(storage, storage, settings)
        deliveries = await dispatcher.dispatch(
            "PAYMENT_SUCCEEDED", {"payment_id": "pay_1", "amount": 1200}
        )
        ```
    """

    def __init__(
        self,
        endpoints: EndpointRepository,
        deliveries: DeliveryRepository,
        settings: Settings,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            endpoints: Endpoint repository used to resolve subscribers.
            deliveries: Delivery repository new deliveries are written to.
            settings: Settings providing webhook_enabled and webhook_max_retries.
        """
        self._endpoints = endpoints
        self._deliveries = deliveries
        self._settings = settings

    async def dispatch(
        self,
        event_type: str,
        payload: dict[str, Any],
        actor_id: str | None = None,
    ) -> list[WebhookDelivery]:
        """Enqueue one delivery per active endpoint subscribed to the event.

        Returns immediately after enqueueing; nothing is sent here.

        Args:
            event_type: One of the webhook event types.
            payload: Event data. Sensitive keys are stripped before storage.
            actor_id: User who caused the event (logged only).

        Returns:
            The deliveries created. Empty when delivery is disabled or no
            endpoint is subscribed.

        Raises:
            ValidationError: If event_type is not a known event type.
        """
        if not self._settings.webhook_enabled:
            return []

        if event_type not in EVENT_DESCRIPTIONS:
            raise ValidationError("event_type", f"unknown event type {event_type!r}")

        endpoints = await self._endpoints.list_subscribed_endpoints(event_type)
        if not endpoints:
            logger.debug("No endpoints subscribed to %s", event_type)
            return []

        data = sanitize_payload(payload)
        results = await asyncio.gather(
            *(self.enqueue(endpoint.id, event_type, data) for endpoint in endpoints),
            return_exceptions=True,
        )

        created: list[WebhookDelivery] = []
        for endpoint, result in zip(endpoints, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to queue %s delivery for endpoint %s: %s",
                    event_type,
                    endpoint.id,
                    result,
                )
            else:
                created.append(result)

        logger.info(
            "Event %s dispatched: %d/%d deliveries queued (actor %s)",
            event_type,
            len(created),
            len(endpoints),
            actor_id,
        )
        return created

    async def enqueue(
        self,
        endpoint_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> WebhookDelivery:
        """Create a PENDING delivery for one endpoint.

        The payload is deep-copied so later changes by the caller don't
        reach the stored snapshot.
        """
        delivery = WebhookDelivery(
            id=generate_delivery_id(),
            endpoint_id=endpoint_id,
            event=event_type,  # type: ignore[arg-type]
            payload=copy.deepcopy(payload),
            max_attempts=self._settings.webhook_max_retries,
        )
        await self._deliveries.store_delivery(delivery)
        logger.debug("Queued delivery %s (%s) for endpoint %s", delivery.id, event_type, endpoint_id)
        return delivery
