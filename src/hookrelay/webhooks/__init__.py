"""Webhook delivery system for HookRelay.

Provides endpoint registration, HMAC-signed delivery with a fixed retry
schedule, periodic processing and operator controls.

Example:
    ```python
    from hookrelay.webhooks import EventDispatcher, DeliveryWorker

    dispatcher = EventDispatcher(storage, storage, settings)
    await dispatcher.dispatch("USER_CREATED", {"user_id": "user_123"})

    worker = DeliveryWorker(storage, storage, settings)
    await worker.process_queue()
    ```
"""

from .admin import WebhookAdmin
from .dispatcher import SENSITIVE_KEYS, EventDispatcher, sanitize_payload
from .events import INTERNAL_EVENT_MAP, EventBridge
from .registry import EndpointRegistry, available_events
from .scheduler import WebhookScheduler
from .signing import (
    generate_delivery_id,
    generate_secret,
    hash_secret,
    sign,
    signing_key,
    verify,
)
from .worker import MAX_CONSECUTIVE_FAILURES, DeliveryWorker, compute_retry_delay

__all__ = [
    "INTERNAL_EVENT_MAP",
    "MAX_CONSECUTIVE_FAILURES",
    "SENSITIVE_KEYS",
    "DeliveryWorker",
    "EndpointRegistry",
    "EventBridge",
    "EventDispatcher",
    "WebhookAdmin",
    "WebhookScheduler",
    "available_events",
    "compute_retry_delay",
    "generate_delivery_id",
    "generate_secret",
    "hash_secret",
    "sanitize_payload",
    "sign",
    "signing_key",
    "verify",
]
