"""Indexing job state machine.

One process-wide job. JobStateMachine is its single writer: control
operations and worker events all go through methods that hold one lock, and
callers only ever see immutable IndexingJob snapshots.

    idle -> active                      start
    active -> paused -> active          pause / resume
    active -> completed                 drain finished, no failures
    active -> completed_with_errors     drain finished, some failures
    completed_with_errors -> active     retry (failed files only)
    completed | completed_with_errors -> idle   reset
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from code_search.exceptions import InvalidTransitionError, JobConflictError
from code_search.schemas.jobs import FileOutcome, IndexingJob, JobHandle, JobStatus

__all__ = [
    'FileFinished',
    'FileStarted',
    'JobEvent',
    'JobStateMachine',
    'ScanCompleted',
]

logger = logging.getLogger(__name__)

DEFAULT_COMPLETED_HISTORY = 20


@dataclass(frozen=True)
class ScanCompleted:
    """Change detection finished; total_files is now known."""

    job_id: str
    total_files: int


@dataclass(frozen=True)
class FileStarted:
    job_id: str
    file_path: str


@dataclass(frozen=True)
class FileFinished:
    job_id: str
    outcome: FileOutcome


type JobEvent = ScanCompleted | FileStarted | FileFinished


@dataclass
class _JobState:
    """Live job fields. Mutated only under JobStateMachine's lock."""

    status: JobStatus = 'idle'
    job_id: str | None = None
    project_name: str | None = None
    collection: str | None = None
    root_path: str | None = None
    total_files: int = 0
    processed_files: int = 0
    skipped_files: int = 0
    current_files: dict[str, None] = field(default_factory=dict)  # Insertion-ordered set
    completed_files: deque[FileOutcome] = field(default_factory=deque)
    failed: dict[str, FileOutcome] = field(default_factory=dict)  # Every failure of the run, by path
    last_error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class JobStateMachine:
    """Single writer of the indexing job."""

    def __init__(self, completed_history: int = DEFAULT_COMPLETED_HISTORY) -> None:
        self._history = completed_history
        self._lock = asyncio.Lock()
        self._state = _JobState()

    @property
    def status(self) -> JobStatus:
        return self._state.status

    @property
    def job_id(self) -> str | None:
        return self._state.job_id

    async def start(self, *, job_id: str, project_name: str, collection: str, root_path: str) -> JobHandle:
        """Move idle -> active for a new run.

        Raises:
            JobConflictError: The job is not idle.
        """
        async with self._lock:
            if self._state.status != 'idle':
                raise JobConflictError(
                    f"Indexing job is '{self._state.status}' for project "
                    f'{self._state.project_name!r}; reset it before starting another'
                )
            now = datetime.now(UTC)
            self._state = _JobState()
            self._state.status = 'active'
            self._state.job_id = job_id
            self._state.project_name = project_name
            self._state.collection = collection
            self._state.root_path = root_path
            self._state.started_at = now
            logger.info(f'[JOB] Started {job_id} for {collection}/{project_name}')
            return JobHandle(
                job_id=job_id,
                project_name=project_name,
                collection=collection,
                root_path=root_path,
                started_at=now,
            )

    async def pause(self) -> None:
        async with self._lock:
            self._require('pause', 'active')
            self._state.status = 'paused'
            logger.info(f'[JOB] Paused with {len(self._state.current_files)} files in flight')

    async def resume(self) -> None:
        async with self._lock:
            self._require('resume', 'paused')
            self._state.status = 'active'
            logger.info('[JOB] Resumed')

    async def begin_retry(self) -> Sequence[str]:
        """Move completed_with_errors -> active and hand back the failed paths.

        processed_files drops by the number of retried files and the failure
        count starts over for them.
        """
        async with self._lock:
            self._require('retry', 'completed_with_errors')
            paths = list(self._state.failed)
            self._state.processed_files -= len(paths)
            self._state.failed.clear()
            self._state.status = 'active'
            self._state.last_error = None
            self._state.finished_at = None
            logger.info(f'[JOB] Retrying {len(paths)} failed files')
            return paths

    async def finish(self) -> JobStatus:
        """Drain finished: move to completed or completed_with_errors."""
        async with self._lock:
            self._require('finish', 'active', 'paused')
            self._state.status = 'completed_with_errors' if self._state.failed else 'completed'
            self._state.finished_at = datetime.now(UTC)
            self._state.current_files.clear()
            logger.info(
                f'[JOB] {self._state.status}: {self._state.processed_files}/{self._state.total_files} processed, '
                f'{self._state.skipped_files} skipped, {len(self._state.failed)} failed'
            )
            return self._state.status

    async def abort(self, error: str) -> None:
        """A run died before or outside the worker pool. Back to idle, keeping the error."""
        async with self._lock:
            self._state.status = 'idle'
            self._state.last_error = error
            self._state.finished_at = datetime.now(UTC)
            self._state.current_files.clear()
            logger.error(f'[JOB] Aborted {self._state.job_id}: {error}')

    async def reset(self) -> None:
        """Return a finished job to idle. No-op when already idle."""
        async with self._lock:
            if self._state.status == 'idle':
                return
            self._require('reset', 'completed', 'completed_with_errors')
            self._state = _JobState()
            logger.info('[JOB] Reset')

    async def apply(self, event: JobEvent) -> None:
        """Record a worker event. Events from other runs are dropped."""
        async with self._lock:
            state = self._state
            if event.job_id != state.job_id or state.status not in ('active', 'paused'):
                logger.debug(f'[JOB] Dropping stale event {type(event).__name__} for {event.job_id}')
                return

            match event:
                case ScanCompleted(total_files=total):
                    state.total_files = total
                case FileStarted(file_path=path):
                    state.current_files[path] = None
                case FileFinished(outcome=outcome):
                    state.current_files.pop(outcome.file_path, None)
                    state.processed_files += 1
                    if outcome.status == 'skipped':
                        state.skipped_files += 1
                    elif outcome.status == 'failed':
                        state.failed[outcome.file_path] = outcome
                        state.last_error = f'{outcome.file_path}: {outcome.error}'
                    state.completed_files.appendleft(outcome)
                    while len(state.completed_files) > self._history:
                        state.completed_files.pop()

    def failed_outcomes(self) -> Sequence[FileOutcome]:
        return list(self._state.failed.values())

    def snapshot(self) -> IndexingJob:
        state = self._state
        elapsed = 0.0
        if state.started_at is not None:
            end = state.finished_at or datetime.now(UTC)
            elapsed = (end - state.started_at).total_seconds()
        return IndexingJob(
            status=state.status,
            job_id=state.job_id,
            project_name=state.project_name,
            collection=state.collection,
            root_path=state.root_path,
            total_files=state.total_files,
            processed_files=state.processed_files,
            skipped_files=state.skipped_files,
            failed_files=len(state.failed),
            failed_paths=list(state.failed),
            current_files=list(state.current_files),
            completed_files=list(state.completed_files),
            last_error=state.last_error,
            started_at=state.started_at,
            finished_at=state.finished_at,
            elapsed_seconds=round(elapsed, 3),
        )

    def _require(self, operation: str, *allowed: JobStatus) -> None:
        if self._state.status not in allowed:
            raise InvalidTransitionError(operation, self._state.status)