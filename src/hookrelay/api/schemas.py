"""Pydantic schemas for API request/response models.

Read models (EndpointView, DeliveryPage, AdminStats...) are returned as
they are; this module only adds request bodies and small action results.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models import EventType


class CreateEndpointRequest(BaseModel):
    """Request body for registering an endpoint.

    Attributes:
        user_id: Owner of the new endpoint.
        name: Display name.
        url: Target URL.
        events: Event types to subscribe to.
        secret: Optional caller-chosen secret; generated when omitted.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1, description="Owner of the endpoint")
    name: str = Field(min_length=1, max_length=200, description="Display name")
    url: str = Field(min_length=1, description="Target URL")
    events: list[EventType] = Field(min_length=1, description="Event types to subscribe to")
    secret: str | None = Field(
        default=None, min_length=16, description="Optional secret (generated if omitted)"
    )


class UpdateEndpointRequest(BaseModel):
    """Request body for changing an endpoint. Omitted fields are unchanged."""

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1, description="Owner of the endpoint")
    name: str | None = Field(default=None, min_length=1, max_length=200)
    url: str | None = Field(default=None, min_length=1)
    events: list[EventType] | None = Field(default=None, min_length=1)
    is_active: bool | None = None


class PurgeRequest(BaseModel):
    """Request body for purging old deliveries."""

    model_config = ConfigDict(extra="forbid")

    days_old: int = Field(default=30, ge=1, description="Purge records older than this")


class PurgeResponse(BaseModel):
    """Result of a purge."""

    model_config = ConfigDict(extra="forbid")

    purged: int
    days_old: int
    message: str


class DeliveryActionResponse(BaseModel):
    """Result of a manual retry or cancel."""

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    action: Literal["retry", "cancel"]
    success: bool
    message: str


class HealthResponse(BaseModel):
    """Service health."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    scheduler_running: bool
