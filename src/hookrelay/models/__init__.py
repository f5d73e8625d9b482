"""Data models for HookRelay.

Records:
    - WebhookEndpoint: A registered target with its health counters
    - WebhookDelivery: One event bound for one endpoint, with attempt state
    - WebhookEnvelope: The signed body POSTed to receivers

Views:
    - EndpointView, CreatedEndpoint, SecretRotation: Endpoint projections
    - DeliveryFilters, DeliveryPage, EndpointPage, Pagination: Listings
    - DeliveryStats, EndpointStats, AdminStats: Statistics
    - SchedulerStatus, ProcessResult: Processor state
    - SignatureCheck: Signature verification outcome
"""

from .base import generate_id, utcnow
from .views import (
    AdminStats,
    CreatedEndpoint,
    DeliveryFilters,
    DeliveryPage,
    DeliveryStats,
    EndpointCounts,
    EndpointHealth,
    EndpointPage,
    EndpointStats,
    EndpointView,
    EventTypeInfo,
    Pagination,
    ProcessResult,
    SchedulerStatus,
    SecretRotation,
    SignatureCheck,
)
from .webhook import (
    ALL_EVENT_TYPES,
    EVENT_DESCRIPTIONS,
    RESPONSE_BODY_LIMIT,
    DeliveryStatus,
    EventType,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookEnvelope,
)

__all__ = [
    # Helpers
    "generate_id",
    "utcnow",
    # Records
    "ALL_EVENT_TYPES",
    "EVENT_DESCRIPTIONS",
    "RESPONSE_BODY_LIMIT",
    "DeliveryStatus",
    "EventType",
    "WebhookDelivery",
    "WebhookEndpoint",
    "WebhookEnvelope",
    # Views
    "AdminStats",
    "CreatedEndpoint",
    "DeliveryFilters",
    "DeliveryPage",
    "DeliveryStats",
    "EndpointCounts",
    "EndpointHealth",
    "EndpointPage",
    "EndpointStats",
    "EndpointView",
    "EventTypeInfo",
    "Pagination",
    "ProcessResult",
    "SchedulerStatus",
    "SecretRotation",
    "SignatureCheck",
]
