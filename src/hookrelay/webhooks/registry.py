"""Endpoint registration and lifecycle.

Owners register URLs, choose event subscriptions, and manage secrets. Only
the SHA-256 hash of a secret is stored; the plaintext is returned once from
create_endpoint and rotate_secret.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from hookrelay.exceptions import NotFoundError, ValidationError
from hookrelay.models import (
    EVENT_DESCRIPTIONS,
    CreatedEndpoint,
    EndpointView,
    EventTypeInfo,
    SecretRotation,
    WebhookDelivery,
    WebhookEndpoint,
    utcnow,
)

from .signing import generate_secret, hash_secret

if TYPE_CHECKING:
    from hookrelay.config import Settings
    from hookrelay.storage import DeliveryRepository, EndpointRepository

    from .dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = ("localhost", "127.0.0.1")

TEST_EVENT = "USER_CREATED"
TEST_MESSAGE = "This is a test webhook delivery"


def available_events() -> list[EventTypeInfo]:
    """Every subscribable event type with its description."""
    return [EventTypeInfo(type=name, description=text) for name, text in EVENT_DESCRIPTIONS.items()]  # type: ignore[arg-type]


class EndpointRegistry:
    """CRUD and lifecycle for webhook endpoints.

    Every per-endpoint operation checks ownership and raises
    NotFoundError("webhook_endpoint", id) for endpoints the caller doesn't
    own, so other owners' endpoints are indistinguishable from missing ones.
    """

    def __init__(
        self,
        endpoints: EndpointRepository,
        deliveries: DeliveryRepository,
        dispatcher: EventDispatcher,
        settings: Settings,
    ) -> None:
        self._endpoints = endpoints
        self._deliveries = deliveries
        self._dispatcher = dispatcher
        self._settings = settings

    def validate_url(self, url: str) -> None:
        """Check a webhook URL against the scheme policy.

        HTTPS is required. In development, plain HTTP is also accepted for
        localhost and 127.0.0.1.

        Raises:
            ValidationError: If the URL is malformed or not allowed.
        """
        try:
            parsed = urlsplit(url)
            hostname = parsed.hostname
        except ValueError as e:
            raise ValidationError("url", "Invalid URL format") from e

        if parsed.scheme not in ("http", "https") or not hostname:
            raise ValidationError("url", "Invalid URL format")

        if self._settings.is_development and hostname in _LOCAL_HOSTS:
            return

        if parsed.scheme != "https":
            raise ValidationError("url", "HTTPS is required for webhook URLs")

    def _validate_events(self, events: list[str]) -> None:
        if not events:
            raise ValidationError("events", "At least one event type is required")
        unknown = [e for e in events if e not in EVENT_DESCRIPTIONS]
        if unknown:
            raise ValidationError("events", f"Unknown event types: {', '.join(unknown)}")

    async def _owned(self, endpoint_id: str, owner_id: str) -> WebhookEndpoint:
        endpoint = await self._endpoints.get_endpoint(endpoint_id)
        if endpoint is None or endpoint.owner_id != owner_id:
            raise NotFoundError("webhook_endpoint", endpoint_id)
        return endpoint

    async def _view(self, endpoint: WebhookEndpoint) -> EndpointView:
        count = await self._deliveries.count_deliveries(endpoint.id)
        return EndpointView.from_endpoint(endpoint, delivery_count=count)

    async def create_endpoint(
        self,
        owner_id: str,
        name: str,
        url: str,
        events: list[str],
        secret: str | None = None,
    ) -> CreatedEndpoint:
        """Register a new endpoint.

        Args:
            owner_id: Owning user.
            name: Display name.
            url: Target URL (see validate_url).
            events: Event types to subscribe to.
            secret: Caller-chosen secret. Generated when omitted.

        Returns:
            The endpoint with its plaintext secret. The secret is not
            retrievable afterwards.
        """
        self.validate_url(url)
        self._validate_events(events)

        plain_secret = secret or generate_secret(self._settings.webhook_secret_length)
        endpoint = WebhookEndpoint(
            owner_id=owner_id,
            name=name,
            url=url,
            secret_hash=hash_secret(plain_secret),
            events=list(dict.fromkeys(events)),  # type: ignore[arg-type]
        )
        await self._endpoints.store_endpoint(endpoint)

        logger.info("Webhook endpoint %s created for %s (%s)", endpoint.id, owner_id, events)
        view = EndpointView.from_endpoint(endpoint, delivery_count=0)
        return CreatedEndpoint(**view.model_dump(), secret=plain_secret)

    async def update_endpoint(
        self,
        endpoint_id: str,
        owner_id: str,
        *,
        name: str | None = None,
        url: str | None = None,
        events: list[str] | None = None,
        is_active: bool | None = None,
    ) -> EndpointView:
        """Change an endpoint's name, URL, subscriptions or active flag.

        Only the given fields change. A new URL is re-validated.
        """
        endpoint = await self._owned(endpoint_id, owner_id)

        if url is not None:
            self.validate_url(url)
            endpoint.url = url
        if events is not None:
            self._validate_events(events)
            endpoint.events = list(dict.fromkeys(events))  # type: ignore[arg-type]
        if name is not None:
            if not name.strip():
                raise ValidationError("name", "Name cannot be empty")
            endpoint.name = name
        if is_active is not None:
            endpoint.is_active = is_active
        endpoint.updated_at = utcnow()

        await self._endpoints.store_endpoint(endpoint)
        logger.info("Webhook endpoint %s updated by %s", endpoint_id, owner_id)
        return await self._view(endpoint)

    async def delete_endpoint(self, endpoint_id: str, owner_id: str) -> None:
        """Delete an endpoint and all of its deliveries."""
        endpoint = await self._owned(endpoint_id, owner_id)
        await self.remove(endpoint)
        logger.info("Webhook endpoint %s deleted by %s", endpoint_id, owner_id)

    async def remove(self, endpoint: WebhookEndpoint) -> int:
        """Delete an endpoint with its deliveries, without an ownership check.

        Returns:
            Number of deliveries removed with it.
        """
        removed = await self._deliveries.delete_deliveries_for_endpoint(endpoint.id)
        await self._endpoints.delete_endpoint(endpoint.id)
        return removed

    async def get_endpoint(self, endpoint_id: str, owner_id: str) -> EndpointView:
        """Get one of the owner's endpoints."""
        return await self._view(await self._owned(endpoint_id, owner_id))

    async def list_endpoints(self, owner_id: str) -> list[EndpointView]:
        """List the owner's endpoints, newest first."""
        endpoints = await self._endpoints.list_endpoints(owner_id=owner_id)
        return [await self._view(endpoint) for endpoint in endpoints]

    async def enable_endpoint(self, endpoint_id: str, owner_id: str) -> EndpointView:
        """Reactivate an endpoint and reset its failure counter."""
        endpoint = await self._owned(endpoint_id, owner_id)
        await self.set_active(endpoint, True)
        logger.info("Webhook endpoint %s enabled by %s", endpoint_id, owner_id)
        return await self._view(endpoint)

    async def disable_endpoint(self, endpoint_id: str, owner_id: str) -> EndpointView:
        """Deactivate an endpoint."""
        endpoint = await self._owned(endpoint_id, owner_id)
        await self.set_active(endpoint, False)
        logger.info("Webhook endpoint %s disabled by %s", endpoint_id, owner_id)
        return await self._view(endpoint)

    async def set_active(self, endpoint: WebhookEndpoint, active: bool) -> WebhookEndpoint:
        """Enable (resetting failure_count) or disable an endpoint, without an ownership check."""
        endpoint.is_active = active
        if active:
            endpoint.failure_count = 0
        endpoint.updated_at = utcnow()
        await self._endpoints.store_endpoint(endpoint)
        return endpoint

    async def rotate_secret(self, endpoint_id: str, owner_id: str) -> SecretRotation:
        """Issue a new secret and replace the stored hash.

        The old secret stops working immediately.
        """
        endpoint = await self._owned(endpoint_id, owner_id)
        new_secret = generate_secret(self._settings.webhook_secret_length)
        endpoint.secret_hash = hash_secret(new_secret)
        endpoint.updated_at = utcnow()
        await self._endpoints.store_endpoint(endpoint)

        logger.info("Webhook secret rotated for %s by %s", endpoint_id, owner_id)
        return SecretRotation(endpoint_id=endpoint_id, secret=new_secret, rotated_at=endpoint.updated_at)

    async def test_endpoint(self, endpoint_id: str, owner_id: str) -> WebhookDelivery:
        """Queue a test delivery to an endpoint.

        The delivery goes out on the next queue tick like any other.
        """
        endpoint = await self._owned(endpoint_id, owner_id)
        return await self._dispatcher.enqueue(
            endpoint.id,
            TEST_EVENT,
            {
                "test": True,
                "message": TEST_MESSAGE,
                "timestamp": utcnow().isoformat(),
            },
        )

    def available_events(self) -> list[EventTypeInfo]:
        """Every subscribable event type with its description."""
        return available_events()
