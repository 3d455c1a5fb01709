"""Shared httpx error detection for retry logic.

Private module - import from _retry package.
"""

from __future__ import annotations

import httpx

__all__ = [
    'is_retryable_httpx_error',
]


def is_retryable_httpx_error(exc: BaseException) -> bool:
    """Check if exception is a transient httpx transport error.

    Retries timeouts, network errors and RemoteProtocolError (server sent
    invalid HTTP). Local protocol, proxy and URL errors are our bugs or
    config errors and propagate.
    """
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))
