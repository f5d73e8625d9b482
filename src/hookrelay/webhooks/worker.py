"""Webhook delivery worker.

Sends one delivery as a signed HTTP POST and applies the retry and
failure policy:

- 2xx: DELIVERED, endpoint failure counter reset.
- Anything else (non-2xx, timeout, transport or unexpected error): back to
  PENDING with ``next_retry_at`` from the delay table while attempts remain,
  otherwise FAILED. The endpoint's consecutive failure counter grows either
  way and the endpoint is deactivated at MAX_CONSECUTIVE_FAILURES.

Delay table: attempt n waits ``delays[min(n - 1, len(delays) - 1)]``
seconds, so the last entry is reused once the table runs out.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx

from hookrelay.exceptions import DeliveryError, ValidationError
from hookrelay.models import DeliveryStatus, WebhookDelivery, WebhookEnvelope, utcnow

from .signing import sign

if TYPE_CHECKING:
    from hookrelay.config import Settings
    from hookrelay.storage import DeliveryRepository, EndpointRepository

logger = logging.getLogger(__name__)

# Consecutive failed attempts that deactivate an endpoint
MAX_CONSECUTIVE_FAILURES = 10


def compute_retry_delay(attempts: int, delays: list[int]) -> int:
    """Seconds to wait after the given number of attempts.

    Args:
        attempts: Attempts made so far (1 after the first failure).
        delays: Ordered delay table in seconds.

    Returns:
        delays[attempts - 1], or the last delay once the table is exhausted.
    """
    index = min(max(attempts - 1, 0), len(delays) - 1)
    return delays[index]


class DeliveryWorker:
    """Sends deliveries and records their outcome.

    Only the worker changes a delivery's status after it is enqueued; manual
    retry and cancel go through it as well.

    Example:
        ```python
        worker = DeliveryWorker(storage, storage, settings)
        processed = await worker.process_queue(limit=10)
        ```
    """

    def __init__(
        self,
        endpoints: EndpointRepository,
        deliveries: DeliveryRepository,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            endpoints: Endpoint repository (URL, secret hash, health counters).
            deliveries: Delivery repository.
            settings: Delivery settings (timeout, delays, headers).
            http_client: Shared client to send with. A short-lived client is
                opened per request when omitted.
        """
        self._endpoints = endpoints
        self._deliveries = deliveries
        self._settings = settings
        self._http_client = http_client
        self._in_flight: set[str] = set()

    async def send(self, delivery_id: str) -> bool:
        """Attempt one delivery.

        Args:
            delivery_id: Delivery to send.

        Returns:
            True if the receiver answered 2xx. False on failure, and also when
            the delivery or endpoint is missing, the endpoint is inactive, the
            delivery is not PENDING, or another send of it is in flight (no
            state change in those cases).
        """
        # Claimed before the first await so overlapping sends see each other
        if delivery_id in self._in_flight:
            logger.debug("Delivery %s is already being sent", delivery_id)
            return False
        self._in_flight.add(delivery_id)
        try:
            return await self._send(delivery_id)
        finally:
            self._in_flight.discard(delivery_id)

    async def _send(self, delivery_id: str) -> bool:
        delivery = await self._deliveries.get_delivery(delivery_id)
        if delivery is None:
            logger.error("Delivery %s not found", delivery_id)
            return False

        endpoint = await self._endpoints.get_endpoint(delivery.endpoint_id)
        if endpoint is None:
            logger.error("Endpoint %s for delivery %s not found", delivery.endpoint_id, delivery_id)
            return False
        if not endpoint.is_active:
            logger.warning(
                "Endpoint %s is disabled, skipping delivery %s", endpoint.id, delivery_id
            )
            return False
        if delivery.status != DeliveryStatus.PENDING:
            logger.debug("Delivery %s is %s, not sending", delivery_id, delivery.status.value)
            return False
        if not delivery.has_attempts_left:
            delivery.mark_failed("Maximum attempts reached")
            await self._deliveries.store_delivery(delivery)
            return False

        delivery.mark_sending()
        await self._deliveries.store_delivery(delivery)

        body = WebhookEnvelope.for_delivery(delivery).to_body()
        headers = {
            "Content-Type": "application/json",
            self._settings.webhook_signature_header: sign(body, endpoint.secret_hash),
            "X-Webhook-Event": delivery.event,
            "X-Webhook-Delivery-Id": delivery.id,
            "User-Agent": self._settings.user_agent,
        }

        try:
            response = await self._post(endpoint.url, body, headers)
            if not response.is_success:
                raise DeliveryError(response.status_code, response.text)
        except asyncio.CancelledError:
            await self._release(delivery)
            raise
        except DeliveryError as e:
            await self._record_failure(delivery, e.message, e.status_code, e.response_body)
            return False
        except httpx.TimeoutException:
            await self._record_failure(
                delivery, f"Request timed out after {self._settings.webhook_timeout_ms}ms"
            )
            return False
        except httpx.RequestError as e:
            await self._record_failure(delivery, str(e) or type(e).__name__)
            return False
        except Exception as e:
            logger.exception("Unexpected error delivering %s", delivery.id)
            await self._record_failure(delivery, f"Unexpected error: {e}")
            return False

        await self._record_success(delivery, response)
        return True

    async def _post(self, url: str, body: str, headers: dict[str, str]) -> httpx.Response:
        timeout = self._settings.timeout_seconds
        if self._http_client is not None:
            return await self._http_client.post(url, content=body, headers=headers, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, content=body, headers=headers)

    async def _release(self, delivery: WebhookDelivery) -> None:
        delivery.release_attempt()
        await self._deliveries.store_delivery(delivery)
        logger.warning("Delivery %s interrupted before a response; back in the queue", delivery.id)

    async def _record_success(self, delivery: WebhookDelivery, response: httpx.Response) -> None:
        delivery.mark_delivered(response.status_code, response.text)
        await self._deliveries.store_delivery(delivery)

        endpoint = await self._endpoints.get_endpoint(delivery.endpoint_id)
        if endpoint is not None:
            endpoint.record_success()
            await self._endpoints.store_endpoint(endpoint)

        logger.info(
            "Webhook %s delivered to %s (status %d)",
            delivery.id,
            delivery.endpoint_id,
            response.status_code,
        )

    async def _record_failure(
        self,
        delivery: WebhookDelivery,
        error: str,
        response_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        should_retry = delivery.has_attempts_left
        if should_retry:
            delay = compute_retry_delay(delivery.attempts, self._settings.webhook_retry_delays)
            delivery.mark_retrying(
                next_retry_at=utcnow() + timedelta(seconds=delay),
                error=error,
                response_status=response_status,
                response_body=response_body,
            )
        else:
            delivery.mark_failed(error, response_status, response_body)
        await self._deliveries.store_delivery(delivery)

        # Re-read so concurrent sends to the same endpoint see each other's counts
        endpoint = await self._endpoints.get_endpoint(delivery.endpoint_id)
        if endpoint is not None:
            disabled = endpoint.record_failure(MAX_CONSECUTIVE_FAILURES)
            await self._endpoints.store_endpoint(endpoint)
            if disabled:
                logger.warning(
                    "Webhook endpoint %s auto-disabled after %d consecutive failures",
                    endpoint.id,
                    endpoint.failure_count,
                )

        logger.warning(
            "Webhook %s failed (attempt %d/%d, retry=%s): %s",
            delivery.id,
            delivery.attempts,
            delivery.max_attempts,
            should_retry,
            error,
        )

    async def retry(self, delivery_id: str) -> bool:
        """Reset a delivery's attempt budget and send it now.

        Returns:
            The send outcome, or False if the delivery doesn't exist or is
            being sent right now.
        """
        if delivery_id in self._in_flight:
            logger.info("Delivery %s is being sent, not retrying", delivery_id)
            return False
        delivery = await self._deliveries.get_delivery(delivery_id)
        if delivery is None:
            return False

        delivery.reset_for_retry()
        await self._deliveries.store_delivery(delivery)
        logger.info("Manual retry of delivery %s", delivery_id)
        return await self.send(delivery_id)

    async def cancel(self, delivery_id: str) -> bool:
        """Fail a PENDING delivery without sending it.

        Returns:
            True if cancelled. False (no change) if missing or not PENDING.
        """
        delivery = await self._deliveries.get_delivery(delivery_id)
        if delivery is None or delivery.status != DeliveryStatus.PENDING:
            return False

        delivery.cancel()
        await self._deliveries.store_delivery(delivery)
        logger.info("Delivery %s cancelled", delivery_id)
        return True

    async def process_queue(self, limit: int = 10) -> int:
        """Send PENDING deliveries that are new or due, oldest first.

        Returns:
            Number of deliveries in the batch.
        """
        due = await self._deliveries.list_due_deliveries(utcnow(), limit)
        return await self._send_batch(due, "queue")

    async def process_retries(self, limit: int = 50) -> int:
        """Send PENDING deliveries whose retry time has come, in retry-time order.

        Returns:
            Number of deliveries in the batch.
        """
        due = await self._deliveries.list_due_retries(utcnow(), limit)
        return await self._send_batch(due, "retry")

    async def _send_batch(self, deliveries: list[WebhookDelivery], kind: str) -> int:
        if not deliveries:
            return 0

        results = await asyncio.gather(
            *(self.send(d.id) for d in deliveries),
            return_exceptions=True,
        )

        succeeded = 0
        for delivery, result in zip(deliveries, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("Error sending delivery %s: %s", delivery.id, result)
            elif result:
                succeeded += 1

        logger.info(
            "Processed %s batch: %d deliveries, %d succeeded", kind, len(deliveries), succeeded
        )
        return len(deliveries)

    async def purge_old_deliveries(self, days_old: int = 30) -> int:
        """Delete DELIVERED and FAILED deliveries older than `days_old` days.

        Returns:
            Number of deliveries deleted.

        Raises:
            ValidationError: If days_old is less than 1.
        """
        if days_old < 1:
            raise ValidationError("days_old", "must be at least 1")
        cutoff = utcnow() - timedelta(days=days_old)
        deleted = await self._deliveries.purge_deliveries(cutoff)
        logger.info("Purged %d webhook deliveries older than %d days", deleted, days_old)
        return deleted
