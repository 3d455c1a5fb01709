"""Block store (Qdrant) retry and circuit breaker helpers.

Private module - import from _retry package.
"""

from __future__ import annotations

import logging

import circuitbreaker
import qdrant_client.http.exceptions
import tenacity

from code_search.clients._retry.httpx_errors import is_retryable_httpx_error

__all__ = [
    'is_retryable_qdrant_error',
    'log_qdrant_retry',
    'qdrant_breaker',
    'transient_qdrant_reason',
]

logger = logging.getLogger(__name__)

# 500 is a malformed request for Qdrant, not a transient failure
TRANSIENT_STATUS_CODES = frozenset({408, 429, 502, 503, 504})

BREAKER_FAILURE_THRESHOLD = 5
BREAKER_RECOVERY_SECONDS = 30


def transient_qdrant_reason(exc: BaseException | None) -> str | None:
    """Describe why a Qdrant failure is worth another attempt, or None when it is not.

    ResponseHandlingException wraps an httpx transport error in ``source``;
    UnexpectedResponse carries the HTTP status.
    """
    match exc:
        case qdrant_client.http.exceptions.ResponseHandlingException(source=source) if is_retryable_httpx_error(
            source
        ):
            return f'transport {type(source).__name__}: {source}'
        case qdrant_client.http.exceptions.UnexpectedResponse(status_code=status) if (
            status in TRANSIENT_STATUS_CODES
        ):
            return f'HTTP {status}'
        case _:
            return None


def is_retryable_qdrant_error(exc: BaseException) -> bool:
    return transient_qdrant_reason(exc) is not None


def log_qdrant_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log a block store retry with the operation name and transient reason."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    operation = retry_state.fn.__name__ if retry_state.fn else 'call'
    reason = transient_qdrant_reason(exc) or type(exc).__name__
    logger.warning(f'[RETRY] block store {operation} attempt {retry_state.attempt_number} failed ({reason})')


def _counts_toward_breaker(thrown_type: type, thrown_value: BaseException) -> bool:  # noqa: ARG001
    return is_retryable_qdrant_error(thrown_value)


qdrant_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=BREAKER_FAILURE_THRESHOLD,
    recovery_timeout=BREAKER_RECOVERY_SECONDS,
    expected_exception=_counts_toward_breaker,
    name='qdrant',
)
