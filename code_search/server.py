"""Code Search MCP Server.

Semantic and keyword search over local code and documentation, with
incremental background indexing.

Tools:
- start_index / pause_index / resume_index / retry_failed / reset_index / index_status:
  the process-wide indexing job
- search_code: hybrid search with metadata filters and a cheap preview mode
- dependencies_of / usages_of / dependency_graph: import queries
- best_question: suggested chat starter for an indexed block
- add_watcher / remove_watcher / list_watchers: keep projects live as files change
- list_projects / delete_project / compact: index maintenance
"""

from __future__ import annotations

import contextlib
import logging
import sys
import typing
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from pathlib import Path

import mcp.server.fastmcp
import mcp.types

from code_search.clients import QdrantClient, RedisClient, create_embedding_client, create_summarizer_client
from code_search.clients.protocols import EmbeddingClient, SummarizerClient
from code_search.exceptions import ConfigurationError
from code_search.extractors import ExtractorRegistry, default_registry
from code_search.paths import CONFIG_PATH
from code_search.repositories import (
    BlockStore,
    InMemoryBlockStore,
    InMemoryIndexStore,
    IndexStore,
    QdrantBlockStore,
    RedisIndexStore,
    WatchListManager,
)
from code_search.schemas.config import AppConfig, load_config
from code_search.schemas.files import DependencyEdge, DependencyGraph, ProjectRecord
from code_search.schemas.jobs import ErrorCategory, IndexingJob, JobHandle
from code_search.schemas.search import PreviewSummary, SearchFilters, SearchResult
from code_search.schemas.watchers import Watcher
from code_search.services.dependencies import DependencyService
from code_search.services.embedding import EmbeddingService
from code_search.services.enrichment import EnrichmentService
from code_search.services.indexing import IndexingService, create_indexing_service
from code_search.services.reranker import RerankerService
from code_search.services.search import HybridSearchService
from code_search.services.sparse_embedding import SparseEmbeddingService
from code_search.services.throttler import AdaptiveThrottler
from code_search.services.watcher import WatcherService

__all__ = [
    'ServerState',
]

logger = logging.getLogger(__name__)


@dataclass
class ServerState:
    """Container for all server state - initialized once at startup."""

    config: AppConfig

    # Backends (None when storage.backend == 'memory')
    qdrant_client: QdrantClient | None
    redis_client: RedisClient | None
    embedding_client: EmbeddingClient
    summarizer_client: SummarizerClient | None

    # Services
    indexing_service: IndexingService
    search_service: HybridSearchService
    dependency_service: DependencyService
    watcher_service: WatcherService

    @classmethod
    async def create(cls, config: AppConfig) -> typing.Self:
        """Async factory method to create server state.

        Must be called from async context so throttler conditions bind to the server loop.
        """
        qdrant_client: QdrantClient | None = None
        redis_client: RedisClient | None = None
        block_store: BlockStore
        index_store: IndexStore

        match config.storage.backend:
            case 'qdrant':
                qdrant_client = QdrantClient(url=config.storage.qdrant_url)
                redis_client = RedisClient(host=config.storage.redis_host, port=config.storage.redis_port)
                await redis_client.ping()
                logger.info(f'Redis connected on {config.storage.redis_host}:{config.storage.redis_port}')
                block_store = QdrantBlockStore(qdrant_client, config.storage.qdrant_collection)
                index_store = RedisIndexStore(redis_client, prefix=config.storage.redis_prefix)
            case 'memory':
                logger.warning('Using in-memory storage: the index is lost on shutdown')
                block_store = InMemoryBlockStore()
                index_store = InMemoryIndexStore()

        embedding_client = create_embedding_client(config.provider)
        summarizer_client = create_summarizer_client(config.provider)
        registry: ExtractorRegistry = default_registry()
        # One BM25 model shared by indexing and search; it loads on first use
        sparse_embedding = SparseEmbeddingService()

        indexing_service = create_indexing_service(
            config,
            block_store=block_store,
            index_store=index_store,
            embedding_client=embedding_client,
            summarizer_client=summarizer_client,
            sparse_embedding=sparse_embedding,
            registry=registry,
        )

        # Queries get their own throttlers so a long indexing run cannot starve search
        query_embedding = EmbeddingService(
            embedding_client,
            AdaptiveThrottler.from_config(f'{embedding_client.provider}-query', config.throttling),
            batch_size=config.provider.batch_size,
            dimensions=config.provider.embedding_dimensions,
        )
        query_enrichment = EnrichmentService(
            summarizer_client,
            AdaptiveThrottler.from_config(f'{summarizer_client.provider}-query', config.throttling),
            summary_max_length=config.indexing.summary_max_length,
            embed_content_chars=config.indexing.embed_content_chars,
        )
        search_service = HybridSearchService(
            query_embedding,
            sparse_embedding,
            block_store,
            RerankerService(config.search.reranker_model),
            config.search,
            enrichment=query_enrichment,
        )

        return cls(
            config=config,
            qdrant_client=qdrant_client,
            redis_client=redis_client,
            embedding_client=embedding_client,
            summarizer_client=summarizer_client,
            indexing_service=indexing_service,
            search_service=search_service,
            dependency_service=DependencyService(index_store),
            watcher_service=WatcherService(indexing_service, WatchListManager(), registry),
        )

    async def close(self) -> None:
        """Stop watchers, let in-flight files finish, then close every client."""
        await self.watcher_service.stop()
        await self.indexing_service.shutdown()
        await self.embedding_client.close()
        if self.summarizer_client is not None:
            await self.summarizer_client.close()
        if self.qdrant_client is not None:
            await self.qdrant_client.close()
        if self.redis_client is not None:
            await self.redis_client.close()


def register_tools(state: ServerState) -> None:
    """Register MCP tools with closure over server state."""

    # --- Indexing job ---

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Start Index',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def start_index(
        root_path: str,
        project_name: str,
        collection: str,
        enrich: bool = True,
        force: bool = False,
    ) -> JobHandle:
        """Start indexing a project in the background.

        Only changed files are reprocessed; unchanged files are skipped by
        fingerprint. One job runs at a time. Follow it with index_status.

        Args:
            root_path: Project root directory. Supports ~ expansion.
            project_name: Project name within the collection.
            collection: Collection name. Projects in one collection are searched together.
            enrich: Summarize blocks with the configured LLM before embedding.
            force: Delete the project's stored data and reprocess every file.

        Returns:
            JobHandle identifying the run.
        """
        handle = await state.indexing_service.start_index(
            Path(root_path),
            project_name,
            collection,
            enrich=enrich,
            force=force,
        )
        logger.info(f'[JOB] Started {handle.job_id} for {collection}/{project_name} at {handle.root_path}')
        return handle

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Index Status',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def index_status() -> IndexingJob:
        """Snapshot of the indexing job: counts, in-flight files, recent outcomes."""
        return state.indexing_service.status()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Index Errors',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def index_errors() -> Sequence[ErrorCategory]:
        """Failed files of the current run grouped by error type, with a suggested action per group."""
        return state.indexing_service.error_summary()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Pause Index',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=False,
        ),
    )
    async def pause_index() -> IndexingJob:
        """Pause the active job. Files already being processed finish first."""
        return await state.indexing_service.pause()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Resume Index',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=False,
        ),
    )
    async def resume_index() -> IndexingJob:
        """Resume a paused job."""
        return await state.indexing_service.resume()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Retry Failed Files',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def retry_failed() -> IndexingJob:
        """Re-queue the failed files of a run that completed with errors."""
        return await state.indexing_service.retry()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Reset Index Job',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=False,
        ),
    )
    async def reset_index() -> IndexingJob:
        """Clear a finished job so a new one can start. Indexed data is kept."""
        return await state.indexing_service.reset()

    # --- Search ---

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Search Code',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def search_code(
        query: str,
        filters: SearchFilters | None = None,
        limit: int | None = None,
        min_score: float | None = None,
        preview_only: bool = False,
    ) -> SearchResult | PreviewSummary:
        """Search indexed code and documentation by meaning and keywords.

        Results are reranked with a cross-encoder. Use preview_only first for
        broad queries: it reports how many blocks match and their total token
        count without reranking or returning content.

        Args:
            query: Natural language or keyword query.
            filters: Optional metadata filters: collection, project_name,
                categories ('code', 'documentation'), authors, date_from/date_to
                (ISO dates, compared with the last commit), churn_levels
                ('low', 'medium', 'high'), languages.
            limit: Maximum hits (default from config).
            min_score: Drop candidates scoring below this, 0-1 (default from config).
            preview_only: Return a token-count summary instead of hits.

        Returns:
            SearchResult with ranked hits, or PreviewSummary when preview_only is set.
        """
        return await state.search_service.search(
            query,
            filters,
            limit=limit,
            min_score=min_score,
            preview_only=preview_only,
        )

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Best Question',
            destructiveHint=False,
            idempotentHint=False,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def best_question(file_path: str, start_line: int) -> str:
        """Suggest a question a developer might ask about an indexed block.

        Args:
            file_path: Absolute path of the indexed file.
            start_line: First line of the block (a line inside the block also works).
        """
        return await state.search_service.best_question(str(Path(file_path).expanduser().resolve()), start_line)

    # --- Dependencies ---

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Dependencies Of',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def dependencies_of(file_path: str) -> Sequence[DependencyEdge]:
        """Imports of an indexed file, in source order."""
        return await state.dependency_service.dependencies_of(str(Path(file_path).expanduser().resolve()))

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Usages Of',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def usages_of(
        symbol: str,
        collection: str | None = None,
        project_name: str | None = None,
    ) -> Sequence[str]:
        """Files that import a symbol, or a module named after it.

        Args:
            symbol: Imported name ('IndexingService') or module name ('indexing').
            collection: Restrict to one collection.
            project_name: Restrict to one project.
        """
        return await state.dependency_service.usages_of(symbol, collection=collection, project_name=project_name)

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Dependency Graph',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def dependency_graph(collection: str, project_name: str) -> DependencyGraph:
        """File-to-file import graph of a project. Imports outside the project are listed as external."""
        return await state.dependency_service.dependency_graph(collection, project_name)

    # --- Watchers ---

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Add Watcher',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def add_watcher(folder_path: str, project_name: str, collection: str) -> Watcher:
        """Re-index files in a folder as they change on disk. Persists across restarts.

        Does not index existing files; run start_index once for that.
        """
        return await state.watcher_service.add_watcher(Path(folder_path), project_name, collection)

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Remove Watcher',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=False,
        ),
    )
    async def remove_watcher(folder_path: str) -> bool:
        """Stop watching a folder. Indexed data is kept. Returns False if it was not watched."""
        return await state.watcher_service.remove_watcher(Path(folder_path))

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='List Watchers',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def list_watchers() -> Sequence[Watcher]:
        """Watched folders and the project each one feeds."""
        return await state.watcher_service.list_watchers()

    # --- Maintenance ---

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='List Projects',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def list_projects() -> Sequence[ProjectRecord]:
        """Indexed projects with root path, file count and last index time."""
        return await state.indexing_service.list_projects()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Delete Project',
            destructiveHint=True,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=False,
        ),
    )
    async def delete_project(collection: str, project_name: str) -> int:
        """Delete a project's blocks, file records, dependency edges and watchers.

        Does not touch files on disk. Returns the number of files removed from the index.
        """
        watchers_removed = await state.watcher_service.remove_project(collection, project_name)
        files_removed = await state.indexing_service.delete_project(collection, project_name)
        logger.info(
            f'[DELETE] {collection}/{project_name}: {files_removed} files, {watchers_removed} watchers removed'
        )
        return files_removed

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Compact Index',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=False,
        ),
    )
    async def compact() -> str:
        """Reclaim space left by deleted blocks."""
        await state.indexing_service.compact()
        return 'Compaction requested'


@contextlib.asynccontextmanager
async def lifespan(mcp_server: mcp.server.fastmcp.FastMCP) -> AsyncIterator[None]:
    """Manage server lifecycle - initialization before requests, cleanup after shutdown."""

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )
    # Silence noisy third-party loggers
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('google').setLevel(logging.WARNING)

    config = load_config()
    if config is None:
        raise ConfigurationError(f'No provider configured. Create {CONFIG_PATH} with a "provider" section.')

    state = await ServerState.create(config)
    register_tools(state)
    watching = await state.watcher_service.start()

    projects = await state.indexing_service.list_projects()
    print('✓ Code Search MCP server initialized', file=sys.stderr)
    print(
        f'  Provider: {config.provider.provider} ({config.provider.embedding_model}, '
        f'{config.provider.embedding_dimensions}d)',
        file=sys.stderr,
    )
    print(f'  Projects: {[f"{p.collection}/{p.project_name}" for p in projects] or "(none)"}', file=sys.stderr)
    print(f'  Watching: {watching} folders', file=sys.stderr)

    yield

    await state.close()
    print('✓ Code Search MCP server shutdown', file=sys.stderr)


server = mcp.server.fastmcp.FastMCP('code-search', lifespan=lifespan)


def main() -> None:
    """Entry point for the MCP server."""
    server.run()


if __name__ == '__main__':
    main()
