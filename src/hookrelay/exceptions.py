"""HookRelay exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HookRelayError for easy catching.
"""

from __future__ import annotations


class HookRelayError(Exception):
    """Base exception for all HookRelay errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookrelay_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookRelayError):
    """Invalid input provided.

    Raised when caller input fails validation checks, such as a webhook URL
    that violates the scheme policy or an unknown event type.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookRelayError):
    """Resource not found.

    Raised when a requested endpoint or delivery doesn't exist, or when it
    exists but belongs to a different owner.

    Attributes:
        resource_type: Type of resource (e.g., "webhook_endpoint", "webhook_delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookRelayError):
    """Storage operation failed.

    Raised when storage cannot reach or set up Qdrant at initialization.
    Errors from individual operations are retried with backoff and then
    re-raised unchanged.
    """

    code: str = "storage_error"


class DeliveryError(HookRelayError):
    """A webhook receiver answered with a non-2xx status.

    Used inside the delivery worker to route HTTP rejections through the
    same failure path as transport errors. Never raised to dispatch callers.

    Attributes:
        status_code: HTTP status returned by the receiver.
        response_body: Truncated response body, if any.
    """

    code: str = "delivery_error"

    def __init__(self, status_code: int, response_body: str | None = None) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}")
