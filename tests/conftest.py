"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from qdrant_client import AsyncQdrantClient

from hookrelay.config import Settings
from hookrelay.models import WebhookDelivery, WebhookEndpoint
from hookrelay.storage import WebhookStorage
from hookrelay.webhooks.signing import hash_secret

TEST_SECRET = "whsec_" + "ab" * 32


@pytest.fixture
def secret() -> str:
    """Plaintext secret the default test endpoint was issued."""
    return TEST_SECRET


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        env="test",
        webhook_enabled=True,
        webhook_max_retries=5,
        webhook_retry_delays=[60, 300, 900, 3600, 86400],
    )


@pytest.fixture
async def storage():
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = WebhookStorage(prefix="test")
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()

    yield store

    await store.close()


@pytest.fixture
def make_endpoint() -> Callable[..., WebhookEndpoint]:
    """Factory for endpoints with sensible defaults."""

    def _make(**overrides: object) -> WebhookEndpoint:
        data: dict[str, object] = {
            "owner_id": "user_1",
            "name": "Orders hook",
            "url": "https://receiver.example.com/hooks",
            "secret_hash": hash_secret(TEST_SECRET),
            "events": ["USER_CREATED", "PAYMENT_SUCCEEDED"],
        }
        data.update(overrides)
        return WebhookEndpoint(**data)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def make_delivery() -> Callable[..., WebhookDelivery]:
    """Factory for deliveries with sensible defaults."""

    def _make(endpoint_id: str, **overrides: object) -> WebhookDelivery:
        data: dict[str, object] = {
            "endpoint_id": endpoint_id,
            "event": "USER_CREATED",
            "payload": {"user_id": "user_9"},
            "max_attempts": 5,
        }
        data.update(overrides)
        return WebhookDelivery(**data)  # type: ignore[arg-type]

    return _make


class Receiver:
    """Records requests and answers with a configurable status."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body = "ok"
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, text=self.body)


@pytest.fixture
def receiver() -> Receiver:
    """A fake webhook receiver."""
    return Receiver()


@pytest.fixture
async def http_client(receiver: Receiver):
    """httpx client routed to the fake receiver."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(receiver.handler)) as client:
        yield client

