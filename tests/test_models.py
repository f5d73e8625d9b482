"""Tests for HookRelay models."""

import json
from datetime import timedelta

import pytest
from pydantic import ValidationError

from hookrelay.models import (
    ALL_EVENT_TYPES,
    DeliveryStats,
    DeliveryStatus,
    EndpointView,
    Pagination,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookEnvelope,
    utcnow,
)


def _endpoint(**overrides):
    data = {
        "owner_id": "user_1",
        "name": "Hook",
        "url": "https://example.com/hook",
        "secret_hash": "0" * 64,
        "events": ["USER_CREATED"],
    }
    data.update(overrides)
    return WebhookEndpoint(**data)


def _delivery(**overrides):
    data = {"endpoint_id": "whk_1", "event": "USER_CREATED", "max_attempts": 3}
    data.update(overrides)
    return WebhookDelivery(**data)


class TestWebhookEndpoint:
    """Tests for endpoint records."""

    def test_defaults(self):
        """New endpoints are active with no failures."""
        endpoint = _endpoint()
        assert endpoint.id.startswith("whk_")
        assert endpoint.is_active is True
        assert endpoint.failure_count == 0
        assert endpoint.last_success_at is None

    def test_requires_events(self):
        """An endpoint must subscribe to at least one event."""
        with pytest.raises(ValidationError):
            _endpoint(events=[])

    def test_rejects_unknown_event(self):
        """Events are limited to the known types."""
        with pytest.raises(ValidationError):
            _endpoint(events=["ORDER_SHIPPED"])

    def test_name_length(self):
        """Names are 1 to 200 characters."""
        with pytest.raises(ValidationError):
            _endpoint(name="")
        with pytest.raises(ValidationError):
            _endpoint(name="x" * 201)

    def test_subscribes_to(self):
        """Only active endpoints subscribed to the event match."""
        endpoint = _endpoint(events=["USER_CREATED", "PAYMENT_FAILED"])
        assert endpoint.subscribes_to("PAYMENT_FAILED") is True
        assert endpoint.subscribes_to("USER_DELETED") is False
        endpoint.is_active = False
        assert endpoint.subscribes_to("PAYMENT_FAILED") is False

    def test_record_failure_disables_at_threshold(self):
        """The failure that reaches the threshold deactivates the endpoint."""
        endpoint = _endpoint(failure_count=8)
        assert endpoint.record_failure(threshold=10) is False
        assert endpoint.is_active is True
        assert endpoint.record_failure(threshold=10) is True
        assert endpoint.is_active is False
        assert endpoint.failure_count == 10
        assert endpoint.last_failure_at is not None

    def test_record_failure_when_already_inactive(self):
        """Failures keep counting without reporting a new deactivation."""
        endpoint = _endpoint(failure_count=12, is_active=False)
        assert endpoint.record_failure(threshold=10) is False
        assert endpoint.failure_count == 13

    def test_record_success_resets(self):
        """Success clears the counter."""
        endpoint = _endpoint(failure_count=5)
        endpoint.record_success()
        assert endpoint.failure_count == 0
        assert endpoint.last_success_at is not None


class TestWebhookDelivery:
    """Tests for delivery state transitions."""

    def test_defaults(self):
        """New deliveries are PENDING with no attempts."""
        delivery = _delivery()
        assert delivery.id.startswith("dlv_")
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.attempts == 0
        assert delivery.next_retry_at is None

    def test_attempts_cannot_exceed_budget(self):
        """attempts > max_attempts is invalid."""
        with pytest.raises(ValidationError):
            _delivery(attempts=4, max_attempts=3)

    def test_mark_sending_counts_attempt(self):
        """Starting an attempt increments attempts."""
        delivery = _delivery().mark_sending()
        assert delivery.status == DeliveryStatus.SENDING
        assert delivery.attempts == 1

    def test_mark_sending_without_budget(self):
        """No attempt can start once the budget is spent."""
        delivery = _delivery(attempts=3)
        with pytest.raises(ValueError, match="no attempts left"):
            delivery.mark_sending()

    def test_mark_delivered(self):
        """Delivered records the response and clears the retry time."""
        delivery = _delivery(next_retry_at=utcnow()).mark_sending()
        delivery.mark_delivered(204, "")
        assert delivery.status == DeliveryStatus.DELIVERED
        assert delivery.is_terminal is True
        assert delivery.response_status == 204
        assert delivery.response_body is None
        assert delivery.next_retry_at is None
        assert delivery.delivered_at is not None

    def test_mark_retrying(self):
        """Retrying returns to PENDING with the failure recorded."""
        when = utcnow() + timedelta(minutes=5)
        delivery = _delivery().mark_sending().mark_retrying(when, "HTTP 500", 500, "err")
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.next_retry_at == when
        assert delivery.error_message == "HTTP 500"
        assert delivery.response_body == "err"

    def test_response_body_truncated(self):
        """Bodies longer than 1000 characters are cut."""
        delivery = _delivery().mark_sending().mark_failed("HTTP 500", 500, "y" * 1500)
        assert len(delivery.response_body) == 1000

    def test_cancel_keeps_last_response(self):
        """Cancelling keeps what the last attempt saw."""
        delivery = _delivery().mark_sending().mark_retrying(utcnow(), "HTTP 502", 502, "gw")
        delivery.cancel()
        assert delivery.status == DeliveryStatus.FAILED
        assert delivery.error_message == "Cancelled by user"
        assert delivery.response_status == 502
        assert delivery.next_retry_at is None

    def test_cancel_requires_pending(self):
        """Only PENDING deliveries can be cancelled."""
        delivery = _delivery().mark_sending().mark_delivered(200)
        with pytest.raises(ValueError, match="Only PENDING"):
            delivery.cancel()

    def test_release_attempt(self):
        """An attempt with no outcome goes back to the queue uncounted."""
        delivery = _delivery(attempts=1, next_retry_at=utcnow()).mark_sending()
        delivery.release_attempt()
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.attempts == 1
        assert delivery.next_retry_at is None

    def test_release_requires_sending(self):
        """Only an attempt in progress can be released."""
        with pytest.raises(ValueError, match="Only SENDING"):
            _delivery().release_attempt()

    def test_reset_for_retry(self):
        """Reset gives a fresh budget and clears the error."""
        delivery = _delivery(attempts=3, status=DeliveryStatus.FAILED, error_message="HTTP 500")
        delivery.reset_for_retry()
        assert delivery.status == DeliveryStatus.PENDING
        assert delivery.attempts == 0
        assert delivery.error_message is None
        assert delivery.has_attempts_left is True


class TestWebhookEnvelope:
    """Tests for the wire body."""

    def test_body_fields(self):
        """The body carries id, event, created_at and data in that order."""
        delivery = _delivery(payload={"user_id": "user_9"})
        body = WebhookEnvelope.for_delivery(delivery).to_body()
        parsed = json.loads(body)
        assert list(parsed) == ["id", "event", "created_at", "data"]
        assert parsed["id"] == delivery.id
        assert parsed["data"] == {"user_id": "user_9"}

    def test_body_is_compact(self):
        """Serialization has no insignificant whitespace."""
        body = WebhookEnvelope(id="dlv_1", event="USER_CREATED", data={"a": 1}).to_body()
        assert ": " not in body
        assert ", " not in body


class TestViews:
    """Tests for read models."""

    def test_endpoint_view_hides_secret_hash(self):
        """Views never expose the stored hash."""
        view = EndpointView.from_endpoint(_endpoint(), delivery_count=3)
        assert "secret_hash" not in view.model_dump()
        assert view.delivery_count == 3

    def test_pagination_pages(self):
        """total_pages rounds up."""
        assert Pagination.build(1, 20, 41).total_pages == 3
        assert Pagination.build(1, 20, 0).total_pages == 0

    def test_delivery_stats_success_rate(self):
        """Success rate is a percentage rounded to 2 decimals."""
        stats = DeliveryStats.from_counts(
            {DeliveryStatus.DELIVERED: 2, DeliveryStatus.FAILED: 1, DeliveryStatus.PENDING: 0}
        )
        assert stats.total == 3
        assert stats.success_rate == 66.67

    def test_delivery_stats_empty(self):
        """No deliveries means a 0.0 rate."""
        assert DeliveryStats.from_counts({}).success_rate == 0.0

    def test_all_event_types(self):
        """Fourteen event types are available."""
        assert len(ALL_EVENT_TYPES) == 14
        assert "CHALLENGE_CHECKIN" in ALL_EVENT_TYPES
