"""Exception hierarchy for code search.

Configuration and job-control errors are raised synchronously at the API
boundary. Per-file errors are caught by indexing workers and recorded as
failed outcomes instead of escaping the pool.
"""

from __future__ import annotations

__all__ = [
    'CodeSearchError',
    'ConfigurationError',
    'ExtractionError',
    'InvalidTransitionError',
    'JobConflictError',
    'SearchConfigError',
    'StorageError',
    'ThrottledError',
]


class CodeSearchError(Exception):
    """Base class for all code search errors."""


class ConfigurationError(CodeSearchError):
    """Missing or invalid configuration. Never retried."""


class SearchConfigError(ConfigurationError):
    """Invalid search parameters or filter combination."""


class JobConflictError(CodeSearchError):
    """An indexing job is already active."""


class InvalidTransitionError(CodeSearchError):
    """Job control operation is not valid in the current job state."""

    def __init__(self, operation: str, status: str) -> None:
        super().__init__(f"Cannot {operation} while job is '{status}'")
        self.operation = operation
        self.status = status


class ThrottledError(CodeSearchError):
    """Backend kept returning throttling errors after all retries."""

    def __init__(self, provider: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f'{provider} still throttled after {attempts} attempts: {last_error}')
        self.provider = provider
        self.attempts = attempts
        self.last_error = last_error


class ExtractionError(CodeSearchError):
    """Extractor failed beyond its own whole-file fallback."""


class StorageError(CodeSearchError):
    """Storage write failed for a single file."""
