"""Shared helpers for HookRelay models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("whk") -> "whk_a1b2c3d4e5f6"
        generate_id("dlv") -> "dlv_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def to_epoch(value: datetime | None) -> float:
    """Convert a datetime to epoch seconds, mapping None to 0.0.

    Storage mirrors timestamps as floats so Qdrant range filters can be
    applied; 0.0 stands for "not set".
    """
    if value is None:
        return 0.0
    return value.timestamp()
