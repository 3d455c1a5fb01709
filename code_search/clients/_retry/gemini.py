"""Gemini-specific retry and circuit breaker helpers.

Private module - import from _retry package.

Rate-limit responses (429 / RESOURCE_EXHAUSTED) are deliberately not retried
here. They propagate to the AdaptiveThrottler, which lowers the concurrency
ceiling before retrying.
"""

from __future__ import annotations

import logging

import circuitbreaker
import google.genai.errors
import tenacity

from code_search.clients._retry.httpx_errors import is_retryable_httpx_error

__all__ = [
    'gemini_breaker',
    'is_retryable_gemini_error',
    'log_gemini_retry',
]

logger = logging.getLogger(__name__)

# Server errors worth retrying at the transport level
RETRYABLE_STATUS_CODES = frozenset({500, 502, 503, 504})

# Circuit breaker - opens after consecutive failures, hard fails until recovery
GEMINI_FAILURE_THRESHOLD = 10
GEMINI_RECOVERY_TIMEOUT = 60


def is_retryable_gemini_error(exc: BaseException) -> bool:
    """Check if exception is a transient Gemini error (transport or 5xx)."""
    if is_retryable_httpx_error(exc):
        return True
    return isinstance(exc, google.genai.errors.APIError) and exc.code in RETRYABLE_STATUS_CODES


def log_gemini_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log Gemini retry attempt with exception details."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    name = retry_state.fn.__name__ if retry_state.fn else 'call'
    logger.warning(f'[RETRY] Gemini {name} attempt {retry_state.attempt_number} failed: {type(exc).__name__}: {exc}')


def _gemini_circuit_filter(thrown_type: type, thrown_value: BaseException) -> bool:  # noqa: ARG001
    """Only count retryable errors toward circuit breaker."""
    return is_retryable_gemini_error(thrown_value)


gemini_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=GEMINI_FAILURE_THRESHOLD,
    recovery_timeout=GEMINI_RECOVERY_TIMEOUT,
    expected_exception=_gemini_circuit_filter,
    name='gemini',
)
