"""Webhook models for outbound event notifications.

Provides endpoint registration, delivery tracking and the signed envelope
sent to receivers.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .base import generate_id, utcnow

# Event types that can trigger webhooks
EventType = Literal[
    "USER_CREATED",
    "USER_UPDATED",
    "USER_DELETED",
    "SUBSCRIPTION_CREATED",
    "SUBSCRIPTION_UPDATED",
    "SUBSCRIPTION_CANCELLED",
    "SUBSCRIPTION_EXPIRED",
    "PAYMENT_SUCCEEDED",
    "PAYMENT_FAILED",
    "PAYMENT_REFUNDED",
    "CHALLENGE_CREATED",
    "CHALLENGE_ENROLLMENT",
    "CHALLENGE_CHECKIN",
    "CHALLENGE_COMPLETED",
]

EVENT_DESCRIPTIONS: dict[str, str] = {
    "USER_CREATED": "A new user account was registered",
    "USER_UPDATED": "A user profile was changed",
    "USER_DELETED": "A user account was deleted",
    "SUBSCRIPTION_CREATED": "A subscription was started",
    "SUBSCRIPTION_UPDATED": "A subscription plan or status changed",
    "SUBSCRIPTION_CANCELLED": "A subscription was cancelled",
    "SUBSCRIPTION_EXPIRED": "A subscription reached its end date",
    "PAYMENT_SUCCEEDED": "A payment was captured",
    "PAYMENT_FAILED": "A payment attempt was declined or errored",
    "PAYMENT_REFUNDED": "A payment was refunded",
    "CHALLENGE_CREATED": "A challenge was published",
    "CHALLENGE_ENROLLMENT": "A user enrolled in a challenge",
    "CHALLENGE_CHECKIN": "A user checked in to a challenge",
    "CHALLENGE_COMPLETED": "A user completed a challenge",
}

# All available event types for subscription
ALL_EVENT_TYPES: list[EventType] = list(EVENT_DESCRIPTIONS)  # type: ignore[arg-type]

# Truncation limit for captured receiver responses
RESPONSE_BODY_LIMIT = 1000


class DeliveryStatus(str, Enum):
    """Lifecycle state of a delivery.

    PENDING -> SENDING -> DELIVERED | PENDING (retry scheduled) | FAILED
    """

    PENDING = "PENDING"
    SENDING = "SENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class WebhookEndpoint(BaseModel):
    """A registered webhook target and its health state.

    Only the SHA-256 hash of the secret is kept; the plaintext is returned
    once at creation or rotation and never again.

    Attributes:
        id: Unique identifier for this endpoint.
        owner_id: User who owns this endpoint.
        name: Display name.
        url: Target URL (HTTPS outside development).
        secret_hash: Hex SHA-256 of the issued secret, also the HMAC key.
        events: Event types this endpoint subscribes to.
        is_active: Whether deliveries are sent to this endpoint.
        failure_count: Consecutive failed attempts since the last success.
        last_success_at: Time of the last 2xx delivery.
        last_failure_at: Time of the last failed attempt.
        created_at: When the endpoint was registered.
        updated_at: When the endpoint was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    owner_id: str = Field(min_length=1, description="User who owns this endpoint")
    name: str = Field(min_length=1, max_length=200, description="Display name")
    url: str = Field(min_length=1, description="Target URL")
    secret_hash: str = Field(description="SHA-256 hex digest of the secret")
    events: list[EventType] = Field(min_length=1, description="Subscribed event types")
    is_active: bool = Field(default=True, description="Whether endpoint receives deliveries")
    failure_count: int = Field(default=0, ge=0, description="Consecutive failures")
    last_success_at: datetime | None = Field(default=None)
    last_failure_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this endpoint is active and subscribed to the event type."""
        return self.is_active and event_type in self.events

    def record_success(self, at: datetime | None = None) -> "WebhookEndpoint":
        """Reset the consecutive failure counter after a 2xx delivery."""
        now = at or utcnow()
        self.last_success_at = now
        self.failure_count = 0
        self.updated_at = now
        return self

    def record_failure(self, threshold: int, at: datetime | None = None) -> bool:
        """Count a failed attempt and auto-disable at the threshold.

        Args:
            threshold: Consecutive failures that deactivate the endpoint.
            at: Failure time (defaults to now).

        Returns:
            True if this failure deactivated the endpoint.
        """
        now = at or utcnow()
        self.failure_count += 1
        self.last_failure_at = now
        self.updated_at = now
        if self.is_active and self.failure_count >= threshold:
            self.is_active = False
            return True
        return False


class WebhookDelivery(BaseModel):
    """One attemptable unit of work: this event must reach this endpoint.

    The payload is a snapshot taken at enqueue time. ``max_attempts`` is
    copied from settings when the delivery is created and never changes.

    Attributes:
        id: Unique identifier, also sent as X-Webhook-Delivery-Id.
        endpoint_id: Owning endpoint (fixed for the delivery's whole life).
        event: Event type being delivered.
        payload: Sanitized event data.
        status: Current lifecycle state.
        attempts: Attempts made so far.
        max_attempts: Attempt budget.
        response_status: HTTP status of the last attempt (if received).
        response_body: Response body of the last attempt (truncated).
        error_message: Error of the last failed attempt.
        next_retry_at: When the delivery becomes due again.
        created_at: When the delivery was enqueued.
        delivered_at: When a 2xx response was received.
        updated_at: When the record last changed.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    endpoint_id: str = Field(description="ID of the owning endpoint")
    event: EventType = Field(description="Event type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event data snapshot")
    status: DeliveryStatus = Field(default=DeliveryStatus.PENDING)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(ge=1)
    response_status: int | None = Field(default=None)
    response_body: str | None = Field(default=None)
    error_message: str | None = Field(default=None)
    next_retry_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    delivered_at: datetime | None = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _attempts_within_budget(self) -> "WebhookDelivery":
        if self.attempts > self.max_attempts:
            raise ValueError(
                f"attempts ({self.attempts}) cannot exceed max_attempts ({self.max_attempts})"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        """Whether the delivery is DELIVERED or FAILED."""
        return self.status in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)

    @property
    def has_attempts_left(self) -> bool:
        """Whether another attempt fits in the budget."""
        return self.attempts < self.max_attempts

    def mark_sending(self) -> "WebhookDelivery":
        """Start an attempt: status SENDING, attempts + 1."""
        if not self.has_attempts_left:
            raise ValueError(f"Delivery {self.id} has no attempts left")
        self.status = DeliveryStatus.SENDING
        self.attempts += 1
        self.updated_at = utcnow()
        return self

    def mark_delivered(
        self, response_status: int, response_body: str | None = None
    ) -> "WebhookDelivery":
        """Mark delivery as successful."""
        now = utcnow()
        self.status = DeliveryStatus.DELIVERED
        self.response_status = response_status
        self.response_body = _truncate(response_body)
        self.next_retry_at = None
        self.delivered_at = now
        self.updated_at = now
        return self

    def mark_retrying(
        self,
        next_retry_at: datetime,
        error: str,
        response_status: int | None = None,
        response_body: str | None = None,
    ) -> "WebhookDelivery":
        """Return to PENDING with a scheduled retry time."""
        self.status = DeliveryStatus.PENDING
        self.error_message = error
        self.response_status = response_status
        self.response_body = _truncate(response_body)
        self.next_retry_at = next_retry_at
        self.updated_at = utcnow()
        return self

    def mark_failed(
        self,
        error: str,
        response_status: int | None = None,
        response_body: str | None = None,
    ) -> "WebhookDelivery":
        """Mark delivery as failed (no more retries)."""
        self.status = DeliveryStatus.FAILED
        self.error_message = error
        self.response_status = response_status
        self.response_body = _truncate(response_body)
        self.next_retry_at = None
        self.updated_at = utcnow()
        return self

    def cancel(self) -> "WebhookDelivery":
        """Fail a PENDING delivery without sending it.

        Response fields from earlier attempts are kept for inspection.
        """
        if self.status != DeliveryStatus.PENDING:
            raise ValueError(f"Only PENDING deliveries can be cancelled, got {self.status.value}")
        self.status = DeliveryStatus.FAILED
        self.error_message = "Cancelled by user"
        self.next_retry_at = None
        self.updated_at = utcnow()
        return self

    def release_attempt(self) -> "WebhookDelivery":
        """Undo `mark_sending` for an attempt that ended without an outcome.

        The delivery goes back to PENDING and is due on the next queue tick.
        """
        if self.status != DeliveryStatus.SENDING:
            raise ValueError(f"Only SENDING deliveries can be released, got {self.status.value}")
        self.status = DeliveryStatus.PENDING
        self.attempts -= 1
        self.next_retry_at = None
        self.updated_at = utcnow()
        return self

    def reset_for_retry(self) -> "WebhookDelivery":
        """Reopen the delivery with a fresh attempt budget."""
        self.status = DeliveryStatus.PENDING
        self.attempts = 0
        self.next_retry_at = None
        self.error_message = None
        self.updated_at = utcnow()
        return self


class WebhookEnvelope(BaseModel):
    """Body POSTed to receivers.

    The serialized form of this model is exactly what gets signed, so its
    field order and compact JSON encoding are part of the wire contract.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Delivery ID")
    event: EventType = Field(description="Event type")
    created_at: datetime = Field(default_factory=utcnow, description="Send time (ISO 8601)")
    data: dict[str, Any] = Field(default_factory=dict, description="Opaque event payload")

    @classmethod
    def for_delivery(cls, delivery: WebhookDelivery) -> "WebhookEnvelope":
        """Build the envelope for one attempt of a delivery."""
        return cls(id=delivery.id, event=delivery.event, data=delivery.payload)

    def to_body(self) -> str:
        """Serialize to the compact JSON string that is signed and sent."""
        return self.model_dump_json()


def _truncate(body: str | None) -> str | None:
    if not body:
        return None
    return body[:RESPONSE_BODY_LIMIT]


__all__ = [
    "ALL_EVENT_TYPES",
    "EVENT_DESCRIPTIONS",
    "RESPONSE_BODY_LIMIT",
    "DeliveryStatus",
    "EventType",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookEnvelope",
]
