"""Retry predicates, retry loggers and circuit breakers for API clients.

Private submodule - not exported by the package.

Retry Policy
------------
- Transport errors (timeouts, dropped connections) and 5xx responses are
  retried with tenacity inside the client.
- Rate-limit responses propagate to the AdaptiveThrottler, which owns
  backoff and concurrency reduction for them.
- Everything else (4xx, bad config, our bugs) propagates immediately.
"""

from __future__ import annotations

from code_search.clients._retry.gemini import gemini_breaker, is_retryable_gemini_error, log_gemini_retry
from code_search.clients._retry.httpx_errors import is_retryable_httpx_error
from code_search.clients._retry.openrouter import (
    is_retryable_openrouter_error,
    log_openrouter_retry,
    openrouter_breaker,
)
from code_search.clients._retry.qdrant import is_retryable_qdrant_error, log_qdrant_retry, qdrant_breaker

__all__ = [
    'gemini_breaker',
    'is_retryable_gemini_error',
    'is_retryable_httpx_error',
    'is_retryable_openrouter_error',
    'is_retryable_qdrant_error',
    'log_gemini_retry',
    'log_openrouter_retry',
    'log_qdrant_retry',
    'openrouter_breaker',
    'qdrant_breaker',
]
