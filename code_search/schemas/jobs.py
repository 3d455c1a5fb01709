"""Indexing job schemas.

IndexingJob is an immutable snapshot handed to callers; the live state is
owned by JobStateMachine and only changes through its event methods.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Literal

from code_search.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'ErrorCategory',
    'FileOutcome',
    'IndexingJob',
    'JobHandle',
    'JobStatus',
    'OutcomeStatus',
    'errors_by_category',
]

type JobStatus = Literal['idle', 'active', 'paused', 'completed', 'completed_with_errors']

type OutcomeStatus = Literal['completed', 'skipped', 'failed']


class FileOutcome(StrictModel):
    """Result of processing one file."""

    file_path: str
    status: OutcomeStatus
    block_count: int = 0
    error_type: str | None = None  # e.g. "StorageError", "UnicodeDecodeError"
    error: str | None = None  # Human-readable message
    finished_at: JsonDatetime


class JobHandle(StrictModel):
    """Returned by start_index; identifies the run."""

    job_id: str
    project_name: str
    collection: str
    root_path: str
    started_at: JsonDatetime


class IndexingJob(StrictModel):
    """Point-in-time snapshot of the process-wide indexing job."""

    status: JobStatus = 'idle'
    job_id: str | None = None
    project_name: str | None = None
    collection: str | None = None
    root_path: str | None = None

    total_files: int = 0
    processed_files: int = 0  # completed + skipped + failed
    skipped_files: int = 0  # Fingerprint unchanged
    failed_files: int = 0
    failed_paths: Sequence[str] = ()

    current_files: Sequence[str] = ()  # In flight, oldest first
    completed_files: Sequence[FileOutcome] = ()  # Recent outcomes, newest first

    last_error: str | None = None
    started_at: JsonDatetime | None = None
    finished_at: JsonDatetime | None = None
    elapsed_seconds: float = 0.0

    @property
    def is_running(self) -> bool:
        return self.status in ('active', 'paused')

    @property
    def percent_complete(self) -> float:
        """Completion percentage (0-100)."""
        if self.total_files == 0:
            return 0.0
        return self.processed_files / self.total_files * 100


class ErrorCategory(StrictModel):
    """Failed files grouped by error type with a suggested action."""

    error_type: str
    count: int
    action: str
    files: Sequence[str]


_ERROR_ACTIONS: Mapping[str, str] = {
    'UnicodeDecodeError': 'File is not UTF-8 text. Add it to .vibeignore if it is binary.',
    'PermissionError': 'Run: chmod u+r <file>',
    'FileNotFoundError': 'File was deleted or moved during indexing',
    'StorageError': 'Check storage availability, then retry',
    'ThrottledError': 'Provider rate limit persisted. Retry later or lower throttling.initial',
    'ExtractionError': 'Extractor crashed. Check the file for unusual syntax',
    'TimeoutError': 'Backend call timed out. Retry',
}


def errors_by_category(outcomes: Sequence[FileOutcome]) -> Sequence[ErrorCategory]:
    """Group failed outcomes by error type with actionable guidance."""
    grouped: dict[str, list[str]] = {}
    for outcome in outcomes:
        if outcome.status != 'failed':
            continue
        grouped.setdefault(outcome.error_type or 'Error', []).append(outcome.file_path)

    return [
        ErrorCategory(
            error_type=error_type,
            count=len(files),
            action=_ERROR_ACTIONS.get(error_type, 'Check file manually, then retry'),
            files=files,
        )
        for error_type, files in sorted(grouped.items())
    ]
