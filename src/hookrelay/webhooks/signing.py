"""HMAC signing for webhook deliveries.

Signature header format::

    t=<unix seconds>,v1=<hex HMAC-SHA256(key, "<t>.<body>")>

Deliveries are signed with the endpoint's stored ``secret_hash``. Receivers
hold the plaintext secret issued at creation or rotation and derive the same
key with :func:`signing_key` before calling :func:`verify`.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time

from hookrelay.models import SignatureCheck, generate_id

SECRET_PREFIX = "whsec_"

MALFORMED_HEADER = "malformed signature header"
TIMESTAMP_EXPIRED = "timestamp expired"
SIGNATURE_MISMATCH = "signature mismatch"


def compute_signature(body: str, key: str, timestamp: int) -> str:
    """Hex HMAC-SHA256 over "<timestamp>.<body>"."""
    return hmac.new(
        key=key.encode("utf-8"),
        msg=f"{timestamp}.{body}".encode(),
        digestmod=hashlib.sha256,
    ).hexdigest()


def sign(body: str, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header value for a serialized body.

    Args:
        body: Exact JSON string being sent.
        secret: HMAC key.
        timestamp: Unix seconds. Defaults to now.

    Returns:
        Header value in "t=<epoch>,v1=<hex>" form.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(body, secret, ts)}"


def verify(
    body: str,
    header: str,
    secret: str,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> SignatureCheck:
    """Verify a signature header against a body.

    Args:
        body: Raw request body as received.
        header: Signature header value.
        secret: HMAC key (see signing_key).
        tolerance_seconds: Maximum allowed |now - t|.
        now: Current unix time. Defaults to time.time().

    Returns:
        SignatureCheck with valid=True, or the reason verification failed.
    """
    fields: dict[str, str] = {}
    for part in header.split(","):
        name, sep, value = part.strip().partition("=")
        if sep:
            fields.setdefault(name, value)

    if "t" not in fields or not fields.get("v1"):
        return SignatureCheck(valid=False, error=MALFORMED_HEADER)
    try:
        timestamp = int(fields["t"])
    except ValueError:
        return SignatureCheck(valid=False, error=MALFORMED_HEADER)

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        return SignatureCheck(valid=False, error=TIMESTAMP_EXPIRED)

    expected = compute_signature(body, secret, timestamp)
    if not hmac.compare_digest(expected, fields["v1"]):
        return SignatureCheck(valid=False, error=SIGNATURE_MISMATCH)

    return SignatureCheck(valid=True)


def generate_secret(length: int = 32) -> str:
    """Generate an endpoint secret: "whsec_" + hex of `length` random bytes."""
    return SECRET_PREFIX + secrets.token_hex(length)


def hash_secret(secret: str) -> str:
    """SHA-256 hex digest of a plaintext secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def signing_key(secret: str) -> str:
    """Key a receiver verifies with, derived from the issued plaintext secret."""
    return hash_secret(secret)


def generate_delivery_id() -> str:
    """New delivery ID ("dlv_" prefix)."""
    return generate_id("dlv")
