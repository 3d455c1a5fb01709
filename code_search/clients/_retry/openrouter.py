"""OpenRouter-specific retry and circuit breaker helpers.

Private module - import from _retry package.

HTTP 429 is left to the AdaptiveThrottler and not retried here.
"""

from __future__ import annotations

import logging

import circuitbreaker
import httpx
import tenacity

from code_search.clients._retry.httpx_errors import is_retryable_httpx_error

__all__ = [
    'is_retryable_openrouter_error',
    'log_openrouter_retry',
    'openrouter_breaker',
]

logger = logging.getLogger(__name__)

# 500: internal error, 502: provider failure, 503: unavailable, 504: gateway timeout
RETRYABLE_STATUS_CODES = frozenset({500, 502, 503, 504})

OPENROUTER_FAILURE_THRESHOLD = 10
OPENROUTER_RECOVERY_TIMEOUT = 60


def is_retryable_openrouter_error(exc: BaseException) -> bool:
    """Check if exception is a transient OpenRouter error (transport or 5xx)."""
    if is_retryable_httpx_error(exc):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in RETRYABLE_STATUS_CODES


def log_openrouter_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log OpenRouter retry attempt, including the HTTP status when present."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return

    exc_msg = str(exc)
    if isinstance(exc, httpx.HTTPStatusError):
        exc_msg = f'HTTP {exc.response.status_code}: {exc_msg}'

    name = retry_state.fn.__name__ if retry_state.fn else 'call'
    logger.warning(
        f'[RETRY] OpenRouter {name} attempt {retry_state.attempt_number} failed: {type(exc).__name__}: {exc_msg}'
    )


def _openrouter_circuit_filter(thrown_type: type, thrown_value: BaseException) -> bool:  # noqa: ARG001
    """Only count retryable errors toward circuit breaker."""
    return is_retryable_openrouter_error(thrown_value)


openrouter_breaker = circuitbreaker.CircuitBreaker(
    failure_threshold=OPENROUTER_FAILURE_THRESHOLD,
    recovery_timeout=OPENROUTER_RECOVERY_TIMEOUT,
    expected_exception=_openrouter_circuit_filter,
    name='openrouter',
)
