"""Retry utilities for storage operations.

Transient Qdrant failures (connection drops, timeouts, 5xx) are retried
with exponential backoff. Client errors are raised immediately.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

_TRANSIENT = (httpx.ConnectError, httpx.TimeoutException)


def _is_transient(exc: BaseException) -> bool:
    """Whether a storage exception is worth retrying."""
    if isinstance(exc, _TRANSIENT):
        return True
    # qdrant-client wraps transport errors
    if isinstance(exc, ResponseHandlingException):
        return _is_transient(exc.source)
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is not None and exc.status_code >= 500
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a retry before tenacity sleeps."""
    fn_name = retry_state.fn.__name__ if retry_state.fn else "unknown"
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying Qdrant operation %s (attempt %d): %s",
        fn_name,
        retry_state.attempt_number,
        exc,
    )


# Decorator for storage methods
qdrant_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    before_sleep=_log_retry,
    reraise=True,
)
