"""Indexing service - the concurrency controller for the indexing pipeline.

Coordinates: detect → extract → chunk → enrich → embed (dense + BM25) → store, per file.

Architecture:
- K worker tasks drain one dispatch queue holding file paths and control
  messages. Control messages jump the queue (lower priority number).
- Pause sends one park message per worker; each parks on the message's
  release event once its in-flight file finishes. Resume sets that event.
- Backend calls go through per-provider adaptive throttlers, separate from K.
- Per-file errors become failed outcomes; they never cancel other workers.
- Stale blocks are deleted AFTER the upsert succeeds, and the file record
  (fingerprint) is written last, so a failed file is reprocessed next run.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import tenacity

from code_search.clients.protocols import EmbeddingClient, SummarizerClient
from code_search.exceptions import (
    CodeSearchError,
    ExtractionError,
    InvalidTransitionError,
    JobConflictError,
    StorageError,
)
from code_search.extractors import ExtractorRegistry, default_registry
from code_search.repositories import keywords
from code_search.repositories.protocols import BlockStore, IndexStore
from code_search.schemas.blocks import Block, ExtractionResult
from code_search.schemas.config import AppConfig, IndexingConfig
from code_search.schemas.embeddings import SparseVector
from code_search.schemas.files import DependencyEdge, FileDependencies, FileRecord, GitMetadata, ProjectRecord
from code_search.schemas.jobs import ErrorCategory, FileOutcome, IndexingJob, JobHandle, errors_by_category
from code_search.services.change_detector import ChangeDetector, file_fingerprint
from code_search.services.chunking import HierarchicalChunker, block_id_for, count_tokens
from code_search.services.dependencies import ModuleResolver
from code_search.services.embedding import EmbeddingService
from code_search.services.enrichment import EnrichedBlock, EnrichmentService
from code_search.services.git_info import GitMetadataCollector, GitPythonCollector
from code_search.services.job import FileFinished, FileStarted, JobStateMachine, ScanCompleted
from code_search.services.sparse_embedding import SparseEmbeddingService
from code_search.services.throttler import AdaptiveThrottler
from code_search.utils import KeyedLocks, Timer, humanize_seconds

__all__ = [
    'IndexingService',
    'create_indexing_service',
]

logger = logging.getLogger(__name__)

# Dispatch priorities: control messages are read before any queued file
CONTROL_PRIORITY = 0
FILE_PRIORITY = 1

# Upper bound on the backoff between file attempts
MAX_FILE_RETRY_DELAY = 10.0


@dataclass(frozen=True)
class _Pause:
    """Control message: the reading worker parks until `released` is set."""

    released: asyncio.Event


@dataclass(frozen=True)
class _Stop:
    """Control message: the reading worker exits."""


type _Dispatch = str | _Pause | _Stop

type _ExtractFn = Callable[[str, str], ExtractionResult]


@dataclass(frozen=True)
class _RunContext:
    """What a run indexes. Kept after the run so retry can reuse it."""

    job_id: str
    root: Path
    project_name: str
    collection: str
    enrich: bool


class IndexingService:
    """Runs the process-wide indexing job and single-file updates.

    One job at a time; single-file operations (index_file, remove_file) may
    run alongside it and are serialized per path with the job's workers.
    """

    def __init__(
        self,
        *,
        registry: ExtractorRegistry,
        detector: ChangeDetector,
        chunker: HierarchicalChunker,
        enrichment: EnrichmentService,
        embedding: EmbeddingService,
        sparse_embedding: SparseEmbeddingService,
        block_store: BlockStore,
        index_store: IndexStore,
        git: GitMetadataCollector | None,
        job: JobStateMachine,
        config: IndexingConfig,
    ) -> None:
        self._registry = registry
        self._detector = detector
        self._chunker = chunker
        self._enrichment = enrichment
        self._embedding = embedding
        self._sparse_embedding = sparse_embedding
        self._block_store = block_store
        self._index_store = index_store
        self._git = git
        self._job = job
        self._config = config

        self.file_locks = KeyedLocks()
        # Release event of the current pause; None while not paused
        self._released: asyncio.Event | None = None
        self._queue: asyncio.PriorityQueue[tuple[int, int, _Dispatch]] | None = None
        self._sequence = 0
        self._workers: list[asyncio.Task[None]] = []
        self._run_task: asyncio.Task[None] | None = None
        self._context: _RunContext | None = None
        self._schema_ready = False
        self._stopping = False

    # --- Job control ---

    async def start_index(
        self,
        root_path: Path,
        project_name: str,
        collection: str,
        *,
        enrich: bool = True,
        force: bool = False,
    ) -> JobHandle:
        """Start indexing a project in the background.

        Args:
            root_path: Project root directory.
            project_name: Project name (grouping key within the collection).
            collection: Collection name.
            enrich: Summarize blocks before embedding (requires a summarizer).
            force: Delete the project's stored data first and reprocess every file.

        Returns:
            Handle identifying the run. Use wait() or status() to follow it.

        Raises:
            ValueError: root_path is not a directory.
            JobConflictError: A job is already running or has not been reset.
        """
        root = root_path.expanduser().resolve()
        if not root.is_dir():
            raise ValueError(f'Not a directory: {root}')

        handle = await self._job.start(
            job_id=uuid4().hex,
            project_name=project_name,
            collection=collection,
            root_path=str(root),
        )
        self._context = _RunContext(
            job_id=handle.job_id,
            root=root,
            project_name=project_name,
            collection=collection,
            enrich=enrich,
        )
        self._stopping = False
        self._released = None
        self._run_task = asyncio.create_task(self._run(self._context, force=force))
        return handle

    async def pause(self) -> IndexingJob:
        """Stop starting new files. In-flight files finish.

        A pause during the scan takes effect when the workers start.
        """
        await self._job.pause()
        self._released = asyncio.Event()
        self._park_workers(len(self._workers))
        return self._job.snapshot()

    async def resume(self) -> IndexingJob:
        await self._job.resume()
        self._release_workers()
        return self._job.snapshot()

    async def retry(self) -> IndexingJob:
        """Re-queue the failed files of a completed_with_errors run.

        Raises:
            InvalidTransitionError: The job is not completed_with_errors, or no run happened yet.
        """
        if self._context is None:
            raise InvalidTransitionError('retry', self._job.snapshot().status)
        paths = await self._job.begin_retry()
        if self._run_task is not None and not self._run_task.done():
            await self._run_task

        self._released = None
        self._run_task = asyncio.create_task(self._drain(self._context, paths))
        return self._job.snapshot()

    async def reset(self) -> IndexingJob:
        await self._job.reset()
        return self._job.snapshot()

    def status(self) -> IndexingJob:
        return self._job.snapshot()

    def error_summary(self) -> Sequence[ErrorCategory]:
        """Failed files of the current run grouped by error type."""
        return errors_by_category(self._job.failed_outcomes())

    async def wait(self) -> IndexingJob:
        """Wait for the current run (if any) to finish."""
        if self._run_task is not None:
            await asyncio.shield(self._run_task)
        return self._job.snapshot()

    async def shutdown(self) -> None:
        """Stop dequeuing and wait for in-flight files, up to shutdown_timeout."""
        self._stopping = True
        self._release_workers()
        for _ in self._workers:
            self._dispatch(CONTROL_PRIORITY, _Stop())

        task = self._run_task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._config.shutdown_timeout)
        except TimeoutError:
            logger.warning(
                f'[JOB] In-flight files still running after {self._config.shutdown_timeout}s, cancelling'
            )
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    # --- Single-file operations ---

    async def index_file(
        self,
        file_path: Path,
        project_name: str,
        collection: str,
        *,
        root_path: Path | None = None,
        enrich: bool = True,
        force: bool = False,
    ) -> FileOutcome:
        """Index one file outside the job, skipping it if its fingerprint is unchanged.

        Args:
            file_path: File to index.
            project_name: Project the file belongs to.
            collection: Collection the project belongs to.
            root_path: Project root for display paths; defaults to the stored project root.
            enrich: Summarize blocks before embedding.
            force: Reindex even if the fingerprint matches.

        Returns:
            The file's outcome. Failures are reported, not raised.

        Raises:
            ValueError: No extractor handles the file's extension.
        """
        path = file_path.expanduser().resolve()
        if not self._registry.supports(str(path)):
            raise ValueError(f'No extractor for {path.suffix or path.name}')

        await self._ensure_schema()
        if not force:
            record = await self._index_store.get_record(str(path))
            if record is not None:
                try:
                    fingerprint = await asyncio.to_thread(file_fingerprint, path)
                except OSError:
                    fingerprint = None
                if fingerprint == record.fingerprint:
                    logger.debug(f'[INDEX] {path.name}: unchanged')
                    return FileOutcome(
                        file_path=str(path),
                        status='skipped',
                        block_count=record.block_count,
                        finished_at=datetime.now(UTC),
                    )

        if root_path is None:
            project = await self._index_store.get_project(collection, project_name)
            root = Path(project.root_path) if project is not None else path.parent
        else:
            root = root_path.expanduser().resolve()

        return await self._index_with_retry(
            path,
            project_name=project_name,
            collection=collection,
            root=root,
            enrich=enrich,
        )

    async def remove_file(self, file_path: Path) -> None:
        """Delete a file's blocks, dependency edges and record, and edges pointing at it."""
        await self._remove(str(file_path.expanduser().resolve()))

    # --- Project maintenance ---

    async def delete_project(self, collection: str, project_name: str) -> int:
        """Delete a project's blocks, records and edges. Returns files removed.

        Raises:
            JobConflictError: The project is being indexed right now.
        """
        snapshot = self._job.snapshot()
        if snapshot.is_running and (snapshot.collection, snapshot.project_name) == (collection, project_name):
            raise JobConflictError(f'Project {collection}/{project_name} is being indexed')
        return await self._delete_project_data(collection, project_name)

    async def list_projects(self) -> Sequence[ProjectRecord]:
        return await self._index_store.list_projects()

    async def compact(self) -> None:
        await self._block_store.compact()

    # --- Run internals ---

    async def _run(self, ctx: _RunContext, *, force: bool) -> None:
        timer = Timer()
        try:
            await self._ensure_schema()
            if force:
                await self._delete_project_data(ctx.collection, ctx.project_name)

            changes = await self._detector.detect(
                ctx.root,
                collection=ctx.collection,
                project_name=ctx.project_name,
                force=force,
            )
            await self._job.apply(ScanCompleted(ctx.job_id, changes.total))

            now = datetime.now(UTC)
            for path in changes.unchanged:
                outcome = FileOutcome(file_path=path, status='skipped', finished_at=now)
                await self._job.apply(FileFinished(ctx.job_id, outcome))
            for path in changes.to_delete:
                await self._remove(path)
        except Exception as e:
            logger.error(f'[JOB] Scan failed for {ctx.root}: {type(e).__name__}: {e}', exc_info=True)
            await self._job.abort(f'{type(e).__name__}: {e}')
            return

        await self._drain(ctx, changes.to_process)
        if self._stopping:
            logger.info(f'[JOB] {ctx.collection}/{ctx.project_name} stopped before the queue drained')
            return

        project = await self._index_store.get_project(ctx.collection, ctx.project_name)
        if project is None or changes.to_process or changes.to_delete or project.root_path != str(ctx.root):
            await self._index_store.put_project(
                ProjectRecord(
                    collection=ctx.collection,
                    project_name=ctx.project_name,
                    root_path=str(ctx.root),
                    indexed_at=datetime.now(UTC),
                    file_count=changes.total,
                )
            )
        else:
            logger.debug(f'[JOB] {ctx.collection}/{ctx.project_name} unchanged, project record kept')
        logger.info(f'[JOB] {ctx.collection}/{ctx.project_name} done in {humanize_seconds(timer.elapsed())}')

    async def _drain(self, ctx: _RunContext, paths: Sequence[str]) -> None:
        """Run K workers until every dispatched path has an outcome."""
        queue: asyncio.PriorityQueue[tuple[int, int, _Dispatch]] = asyncio.PriorityQueue()
        self._queue = queue
        for path in paths:
            self._dispatch(FILE_PRIORITY, path)

        worker_count = min(self._config.max_workers, len(paths))
        logger.debug(f'[JOB] Dispatching {len(paths)} files to {worker_count} workers')
        # Paused before the workers existed
        self._park_workers(worker_count)
        self._workers = [asyncio.create_task(self._worker(ctx, queue)) for _ in range(worker_count)]
        waiter = asyncio.create_task(queue.join())

        # FAIL-FAST: a crashed worker never calls task_done(), so join() alone would hang
        try:
            pending: set[asyncio.Task[None]] = {waiter, *self._workers}
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if waiter in done:
                    waiter.result()
                    break
                for task in done:
                    if not task.cancelled() and (exc := task.exception()) is not None:
                        raise exc
                if all(task.done() for task in self._workers):
                    # Every worker read a stop message
                    break
        finally:
            waiter.cancel()
            for task in self._workers:
                task.cancel()
            await asyncio.gather(waiter, *self._workers, return_exceptions=True)
            self._workers = []
            self._queue = None

        if not self._stopping:
            await self._job.finish()

    async def _worker(self, ctx: _RunContext, queue: asyncio.PriorityQueue[tuple[int, int, _Dispatch]]) -> None:
        while True:
            _, _, item = await queue.get()
            try:
                match item:
                    case _Stop():
                        return
                    case _Pause(released=released):
                        logger.debug('[JOB] Worker read pause, parking until resume')
                        await released.wait()
                    case str() as path:
                        # Shutdown requested before this run's workers existed
                        if self._stopping:
                            return
                        await self._job.apply(FileStarted(ctx.job_id, path))
                        outcome = await self._index_with_retry(
                            Path(path),
                            project_name=ctx.project_name,
                            collection=ctx.collection,
                            root=ctx.root,
                            enrich=ctx.enrich,
                        )
                        await self._job.apply(FileFinished(ctx.job_id, outcome))
            finally:
                queue.task_done()

    def _dispatch(self, priority: int, item: _Dispatch) -> None:
        if self._queue is None:
            return
        self._sequence += 1
        self._queue.put_nowait((priority, self._sequence, item))

    def _park_workers(self, count: int) -> None:
        if self._released is None:
            return
        for _ in range(count):
            self._dispatch(CONTROL_PRIORITY, _Pause(self._released))

    def _release_workers(self) -> None:
        if self._released is not None:
            self._released.set()
            self._released = None

    # --- Per-file pipeline ---

    async def _index_with_retry(
        self,
        path: Path,
        *,
        project_name: str,
        collection: str,
        root: Path,
        enrich: bool,
    ) -> FileOutcome:
        """Index one file under its lock, retrying transient errors. Never raises."""
        timer = Timer()
        key = str(path)
        try:
            async with self.file_locks.hold(key):
                async for attempt in tenacity.AsyncRetrying(
                    retry=tenacity.retry_if_exception(_is_transient),
                    stop=tenacity.stop_after_attempt(self._config.file_attempts),
                    wait=tenacity.wait_exponential(
                        multiplier=self._config.file_retry_delay,
                        max=MAX_FILE_RETRY_DELAY,
                    ),
                    before_sleep=_log_file_retry,
                    reraise=True,
                ):
                    with attempt:
                        block_count = await self._index_one(
                            path,
                            project_name=project_name,
                            collection=collection,
                            root=root,
                            enrich=enrich,
                        )
        except Exception as e:
            logger.warning(f'[INDEX] Failed {path.name}: {type(e).__name__}: {e}')
            return FileOutcome(
                file_path=key,
                status='failed',
                error_type=type(e).__name__,
                error=str(e) or type(e).__name__,
                finished_at=datetime.now(UTC),
            )

        logger.debug(f'[INDEX] {path.name}: {block_count} blocks in {timer.elapsed_ms()}ms')
        return FileOutcome(
            file_path=key,
            status='completed',
            block_count=block_count,
            finished_at=datetime.now(UTC),
        )

    async def _index_one(
        self,
        path: Path,
        *,
        project_name: str,
        collection: str,
        root: Path,
        enrich: bool,
    ) -> int:
        """extract → chunk → enrich → embed → store. Returns blocks stored."""
        key = str(path)
        registered = self._registry.resolve(key)
        if registered is None:
            raise ValueError(f'No extractor for {path.suffix or path.name}')

        # Hash the exact bytes that get indexed so the record matches stored blocks
        raw = await asyncio.to_thread(path.read_bytes)
        fingerprint = hashlib.sha256(raw).hexdigest()
        content = raw.decode('utf-8')

        extraction = await self._extract(registered.extractor.extract, content, key)
        chunked = self._chunker.chunk(extraction, key)

        git = await self._git.info_for(path) if self._git is not None else None
        enriched = await self._enrichment.enrich(
            chunked,
            project_name=project_name,
            file_label=_display_path(path, root),
            git=git,
            summarize=enrich,
        )
        vectors = await self._embedding.embed_batch([e.embed_text for e in enriched], intent='document')
        sparse_vectors = await self._sparse_embedding.embed_documents(
            [keywords.keyword_text(e.block, key, e.summary) for e in enriched]
        )
        blocks = [
            _to_block(
                item,
                vector,
                sparse,
                file_path=key,
                project_name=project_name,
                collection=collection,
                language=registered.language,
                git=git,
            )
            for item, vector, sparse in zip(enriched, vectors, sparse_vectors, strict=True)
        ]

        record = FileRecord(
            file_path=key,
            collection=collection,
            project_name=project_name,
            fingerprint=fingerprint,
            file_size=len(raw),
            block_count=len(blocks),
            indexed_at=datetime.now(UTC),
            git=git,
        )
        await self._store(blocks, _dependencies_for(extraction, record), record)
        return len(blocks)

    async def _extract(self, extract: _ExtractFn, content: str, key: str) -> ExtractionResult:
        try:
            extraction = await asyncio.to_thread(extract, content, key)
        except Exception as e:
            raise ExtractionError(f'Extractor crashed on {Path(key).name}: {type(e).__name__}: {e}') from e
        if extraction.metadata.error:
            logger.debug(f'[EXTRACT] {Path(key).name}: whole-file fallback ({extraction.metadata.error})')
        return extraction

    async def _store(self, blocks: Sequence[Block], dependencies: FileDependencies, record: FileRecord) -> None:
        """Upsert, then delete stale blocks, then replace edges, then write the record."""
        try:
            await self._block_store.upsert_blocks(blocks)
            await self._block_store.delete_by_file(record.file_path, keep_ids=frozenset(b.block_id for b in blocks))
            await self._index_store.put_dependencies(dependencies)
            await self._index_store.put_record(record)
        except CodeSearchError:
            raise
        except Exception as e:
            raise StorageError(f'Storing {record.file_path} failed: {type(e).__name__}: {e}') from e

    async def _remove(self, key: str) -> None:
        async with self.file_locks.hold(key):
            removed = await self._index_store.get_dependencies(key)
            await self._block_store.delete_by_file(key)
            await self._index_store.delete_dependencies(key)
            await self._index_store.delete_record(key)
            logger.debug(f'[DELETE] Removed {key}')
        # Other files are locked one at a time, never while holding this file's lock
        if removed is not None:
            await self._prune_edges_to(removed)

    async def _prune_edges_to(self, removed: FileDependencies) -> None:
        """Drop other files' import edges that resolve to a removed file."""
        others = await self._index_store.all_dependencies(removed.collection, removed.project_name)
        resolver = ModuleResolver([removed.file_path, *(deps.file_path for deps in others)])

        def points_at_removed(edge: DependencyEdge) -> bool:
            return resolver.resolve(edge.imported_module, edge.source_file) == removed.file_path

        for deps in others:
            if not any(points_at_removed(edge) for edge in deps.imports):
                continue
            async with self.file_locks.hold(deps.file_path):
                current = await self._index_store.get_dependencies(deps.file_path)
                if current is None:
                    continue
                kept = [edge for edge in current.imports if not points_at_removed(edge)]
                if len(kept) < len(current.imports):
                    await self._index_store.put_dependencies(current.model_copy(update={'imports': kept}))
                    logger.debug(
                        f'[DEPS] Pruned {len(current.imports) - len(kept)} edges from {current.file_path}'
                        f' to removed {removed.file_path}'
                    )

    async def _delete_project_data(self, collection: str, project_name: str) -> int:
        await self._block_store.delete_by_project(collection, project_name)
        removed = await self._index_store.delete_project(collection, project_name)
        logger.info(f'[DELETE] Project {collection}/{project_name}: {removed} files removed')
        return removed

    async def _ensure_schema(self) -> None:
        if not self._schema_ready:
            await self._block_store.ensure_schema(self._embedding.dimensions)
            self._schema_ready = True


def create_indexing_service(
    config: AppConfig,
    *,
    block_store: BlockStore,
    index_store: IndexStore,
    embedding_client: EmbeddingClient,
    summarizer_client: SummarizerClient | None = None,
    sparse_embedding: SparseEmbeddingService | None = None,
    registry: ExtractorRegistry | None = None,
    git: GitMetadataCollector | None = None,
) -> IndexingService:
    """Factory function to create IndexingService with default dependencies.

    Must be called from async context - throttler conditions bind to the running loop.

    Args:
        config: Application configuration.
        block_store: Block storage backend.
        index_store: File record / dependency / project storage backend.
        embedding_client: Embedding backend.
        summarizer_client: Summarization backend, None to disable enrichment.
        sparse_embedding: BM25 sparse vectors for keyword search (default: fastembed Qdrant/bm25).
        registry: Extractor registry (default: every supported language).
        git: Git metadata collector (default: gitpython).

    Returns:
        Configured IndexingService.
    """
    registry = registry or default_registry()
    throttlers: dict[str, AdaptiveThrottler] = {}

    def throttler_for(provider: str) -> AdaptiveThrottler:
        if provider not in throttlers:
            throttlers[provider] = AdaptiveThrottler.from_config(
                provider,
                config.throttling,
                max_concurrency=config.indexing.max_workers,
            )
        return throttlers[provider]

    embedding = EmbeddingService(
        embedding_client,
        throttler_for(embedding_client.provider),
        batch_size=config.provider.batch_size,
        dimensions=config.provider.embedding_dimensions,
    )
    enrichment = EnrichmentService(
        summarizer_client,
        throttler_for(summarizer_client.provider) if summarizer_client is not None else None,
        summary_max_length=config.indexing.summary_max_length,
        embed_content_chars=config.indexing.embed_content_chars,
    )

    return IndexingService(
        registry=registry,
        detector=ChangeDetector(registry, index_store),
        chunker=HierarchicalChunker(config.indexing.split_threshold),
        enrichment=enrichment,
        embedding=embedding,
        sparse_embedding=sparse_embedding or SparseEmbeddingService(),
        block_store=block_store,
        index_store=index_store,
        git=git or GitPythonCollector(),
        job=JobStateMachine(config.indexing.completed_history),
        config=config.indexing,
    )


def _is_transient(exc: BaseException) -> bool:
    """Errors worth another file attempt. Throttling was already retried by the throttler."""
    return isinstance(exc, (StorageError, TimeoutError, ConnectionError))


def _log_file_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f'[RETRY] File attempt {retry_state.attempt_number} failed: {type(exc).__name__}: {exc}')


def _display_path(path: Path, root: Path) -> str:
    """Path relative to the project root, or the absolute path outside it."""
    return path.relative_to(root).as_posix() if path.is_relative_to(root) else str(path)


def _to_block(
    item: EnrichedBlock,
    vector: Sequence[float],
    sparse: SparseVector,
    *,
    file_path: str,
    project_name: str,
    collection: str,
    language: str,
    git: GitMetadata | None,
) -> Block:
    extracted = item.block
    return Block(
        block_id=block_id_for(file_path, extracted.start_line, extracted.end_line, extracted.name),
        name=extracted.name,
        kind=extracted.kind,
        category=extracted.category,
        file_path=file_path,
        start_line=extracted.start_line,
        end_line=extracted.end_line,
        content=extracted.content,
        comments=extracted.comments,
        summary=item.summary,
        parent_name=extracted.parent_name,
        token_count=count_tokens(extracted.content),
        vector=[float(v) for v in vector],
        sparse_indices=list(sparse[0]),
        sparse_values=list(sparse[1]),
        collection=collection,
        project_name=project_name,
        language=language,
        author=git.author if git is not None else None,
        last_commit_date=git.date if git is not None else None,
        churn_level=git.churn_level if git is not None else None,
    )


def _dependencies_for(extraction: ExtractionResult, record: FileRecord) -> FileDependencies:
    return FileDependencies(
        file_path=record.file_path,
        collection=record.collection,
        project_name=record.project_name,
        imports=[
            DependencyEdge(
                source_file=record.file_path,
                imported_module=imp.source,
                imported_symbols=list(imp.symbols),
            )
            for imp in extraction.metadata.imports
        ],
        exports=list(extraction.metadata.exports),
    )
