"""Tests for the indexing job state machine."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from code_search.exceptions import InvalidTransitionError, JobConflictError
from code_search.schemas.jobs import FileOutcome, OutcomeStatus, errors_by_category
from code_search.services.job import FileFinished, FileStarted, JobStateMachine, ScanCompleted


def _outcome(path: str, status: OutcomeStatus = 'completed', error_type: str | None = None) -> FileOutcome:
    return FileOutcome(
        file_path=path,
        status=status,
        error_type=error_type,
        error=f'{error_type} in {path}' if error_type else None,
        finished_at=datetime.now(UTC),
    )


async def _started(machine: JobStateMachine, job_id: str = 'job-1') -> None:
    await machine.start(job_id=job_id, project_name='sample', collection='test', root_path='/src')


async def _finish_file(machine: JobStateMachine, outcome: FileOutcome, job_id: str = 'job-1') -> None:
    await machine.apply(FileStarted(job_id, outcome.file_path))
    await machine.apply(FileFinished(job_id, outcome))


class TestTransitions:
    """Verify the allowed status moves."""

    async def test_start_from_idle(self) -> None:
        machine = JobStateMachine()
        handle = await machine.start(job_id='job-1', project_name='sample', collection='test', root_path='/src')
        assert handle.job_id == 'job-1'
        snapshot = machine.snapshot()
        assert snapshot.status == 'active'
        assert snapshot.is_running
        assert snapshot.started_at == handle.started_at

    async def test_pause_and_resume(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.pause()
        assert machine.status == 'paused'
        await machine.resume()
        assert machine.status == 'active'

    async def test_finish_without_failures(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.apply(ScanCompleted('job-1', 2))
        await _finish_file(machine, _outcome('/src/a.py'))
        await _finish_file(machine, _outcome('/src/b.py', 'skipped'))
        assert await machine.finish() == 'completed'
        snapshot = machine.snapshot()
        assert (snapshot.processed_files, snapshot.skipped_files, snapshot.failed_files) == (2, 1, 0)
        assert snapshot.percent_complete == 100.0
        assert snapshot.finished_at is not None

    async def test_finish_with_failures(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await _finish_file(machine, _outcome('/src/a.py', 'failed', 'StorageError'))
        assert await machine.finish() == 'completed_with_errors'
        snapshot = machine.snapshot()
        assert snapshot.failed_paths == ['/src/a.py']
        assert snapshot.last_error == '/src/a.py: StorageError in /src/a.py'

    async def test_paused_job_can_finish(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.pause()
        assert await machine.finish() == 'completed'

    @pytest.mark.parametrize('status', ['completed', 'completed_with_errors'])
    async def test_reset_returns_to_idle(self, status: str) -> None:
        machine = JobStateMachine()
        await _started(machine)
        if status == 'completed_with_errors':
            await _finish_file(machine, _outcome('/src/a.py', 'failed', 'StorageError'))
        await machine.finish()
        await machine.reset()
        snapshot = machine.snapshot()
        assert snapshot.status == 'idle'
        assert snapshot.job_id is None
        assert snapshot.processed_files == 0

    async def test_reset_when_idle_is_a_no_op(self) -> None:
        machine = JobStateMachine()
        await machine.reset()
        assert machine.status == 'idle'

    async def test_abort_keeps_error(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.abort('Not a directory: /src')
        snapshot = machine.snapshot()
        assert snapshot.status == 'idle'
        assert snapshot.last_error == 'Not a directory: /src'
        await _started(machine, 'job-2')
        assert machine.snapshot().last_error is None


class TestInvalidOperations:
    @pytest.mark.parametrize(
        'operation, expected_message',
        [
            ('pause', "Cannot pause while job is 'idle'"),
            ('resume', "Cannot resume while job is 'idle'"),
            ('begin_retry', "Cannot retry while job is 'idle'"),
            ('finish', "Cannot finish while job is 'idle'"),
        ],
        ids=['pause', 'resume', 'retry', 'finish'],
    )
    async def test_from_idle(self, operation: str, expected_message: str) -> None:
        machine = JobStateMachine()
        with pytest.raises(InvalidTransitionError) as exc_info:
            await getattr(machine, operation)()
        assert str(exc_info.value) == expected_message
        assert exc_info.value.status == 'idle'

    async def test_resume_while_active(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        with pytest.raises(InvalidTransitionError, match="Cannot resume while job is 'active'"):
            await machine.resume()

    async def test_retry_after_clean_completion(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.finish()
        with pytest.raises(InvalidTransitionError, match="Cannot retry while job is 'completed'"):
            await machine.begin_retry()

    async def test_reset_while_active(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        with pytest.raises(InvalidTransitionError):
            await machine.reset()

    @pytest.mark.parametrize('finished', [False, True], ids=['while-active', 'after-completion'])
    async def test_second_start_conflicts(self, finished: bool) -> None:
        machine = JobStateMachine()
        await _started(machine)
        if finished:
            await machine.finish()
        with pytest.raises(JobConflictError, match='reset it before starting another'):
            await _started(machine, 'job-2')
        assert machine.job_id == 'job-1'


class TestEvents:
    """Verify event bookkeeping."""

    async def test_current_files_in_start_order(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        for name in ('c.py', 'a.py', 'b.py'):
            await machine.apply(FileStarted('job-1', f'/src/{name}'))
        await machine.apply(FileFinished('job-1', _outcome('/src/a.py')))
        assert machine.snapshot().current_files == ['/src/c.py', '/src/b.py']

    async def test_stale_events_are_dropped(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.apply(FileFinished('old-job', _outcome('/src/a.py')))
        await machine.apply(ScanCompleted('old-job', 99))
        snapshot = machine.snapshot()
        assert (snapshot.processed_files, snapshot.total_files) == (0, 0)

    async def test_events_after_finish_are_dropped(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.finish()
        await machine.apply(FileFinished('job-1', _outcome('/src/late.py')))
        assert machine.snapshot().processed_files == 0

    async def test_history_is_capped_newest_first(self) -> None:
        machine = JobStateMachine(completed_history=3)
        await _started(machine)
        for i in range(5):
            await _finish_file(machine, _outcome(f'/src/{i}.py'))
        snapshot = machine.snapshot()
        assert [o.file_path for o in snapshot.completed_files] == ['/src/4.py', '/src/3.py', '/src/2.py']
        assert snapshot.processed_files == 5

    async def test_failures_are_never_capped(self) -> None:
        machine = JobStateMachine(completed_history=1)
        await _started(machine)
        for i in range(4):
            await _finish_file(machine, _outcome(f'/src/{i}.py', 'failed', 'StorageError'))
        assert machine.snapshot().failed_files == 4


class TestRetry:
    async def test_retry_hands_back_failed_paths(self) -> None:
        machine = JobStateMachine()
        await _started(machine)
        await machine.apply(ScanCompleted('job-1', 3))
        await _finish_file(machine, _outcome('/src/a.py'))
        await _finish_file(machine, _outcome('/src/b.py', 'failed', 'StorageError'))
        await _finish_file(machine, _outcome('/src/c.py', 'failed', 'ThrottledError'))
        await machine.finish()

        paths = await machine.begin_retry()

        assert sorted(paths) == ['/src/b.py', '/src/c.py']
        snapshot = machine.snapshot()
        assert snapshot.status == 'active'
        assert snapshot.processed_files == 1
        assert snapshot.failed_files == 0
        assert snapshot.last_error is None
        assert snapshot.finished_at is None

        await _finish_file(machine, _outcome('/src/b.py'))
        await _finish_file(machine, _outcome('/src/c.py'))
        assert await machine.finish() == 'completed'
        assert machine.snapshot().processed_files == 3


class TestErrorsByCategory:
    def test_groups_failed_outcomes(self) -> None:
        outcomes = [
            _outcome('/src/a.py', 'failed', 'StorageError'),
            _outcome('/src/b.bin', 'failed', 'UnicodeDecodeError'),
            _outcome('/src/c.py', 'failed', 'StorageError'),
            _outcome('/src/d.py', 'failed', 'KeyError'),
            _outcome('/src/e.py'),
        ]
        categories = errors_by_category(outcomes)
        assert [(c.error_type, c.count) for c in categories] == [
            ('KeyError', 1),
            ('StorageError', 2),
            ('UnicodeDecodeError', 1),
        ]
        assert categories[0].action == 'Check file manually, then retry'
        assert list(categories[1].files) == ['/src/a.py', '/src/c.py']
