"""HookRelay: outbound webhooks for application events.

Registers notification endpoints, fans domain events out to them, and
delivers each event as an HMAC-signed HTTP POST with at-least-once
semantics, retrying on a fixed schedule and disabling endpoints that keep
failing.

Quick Start:
    from hookrelay.service import WebhookService

    async with WebhookService.create() as service:
        created = await service.registry.create_endpoint(
            owner_id="user_123",
            name="Orders",
            url="https://example.com/hooks",
            events=["PAYMENT_SUCCEEDED", "PAYMENT_REFUNDED"],
        )
        await service.dispatcher.dispatch("PAYMENT_SUCCEEDED", {"payment_id": "pay_1"})
        await service.scheduler.trigger_queue_processing()

Receivers verify requests with:
    from hookrelay.webhooks import signing_key, verify

    check = verify(raw_body, headers["X-Webhook-Signature"], signing_key(secret))
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    DeliveryError,
    HookRelayError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryStatus,
    EventType,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookEnvelope,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "DeliveryError",
    "HookRelayError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "logger",
    "unbind_context",
    # Models
    "DeliveryStatus",
    "EventType",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookEnvelope",
]
