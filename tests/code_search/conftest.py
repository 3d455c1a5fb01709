"""Shared fixtures: a small mixed-language project and services wired to in-memory fakes."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from code_search.repositories.memory import InMemoryIndexStore
from code_search.schemas.config import (
    AppConfig,
    GeminiConfig,
    IndexingConfig,
    SearchConfig,
    StorageConfig,
    ThrottlingConfig,
)
from code_search.services.embedding import EmbeddingService
from code_search.services.enrichment import EnrichmentService
from code_search.services.indexing import IndexingService, create_indexing_service
from code_search.services.search import HybridSearchService
from code_search.services.sparse_embedding import SparseEmbeddingService
from code_search.services.throttler import AdaptiveThrottler
from tests.code_search.fakes import (
    DIMENSIONS,
    FailingBlockStore,
    FakeEmbeddingClient,
    FakeGitCollector,
    FakeReranker,
    FakeSparseModel,
    FakeSummarizer,
    MODELS_COMMIT,
    SAMPLE_FILES,
    write_tree,
)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path.resolve() / 'sample'
    write_tree(root, SAMPLE_FILES)
    return root


@pytest.fixture
def app_config() -> AppConfig:
    """Defaults with every delay zeroed and a small worker pool."""
    return AppConfig(
        provider=GeminiConfig(
            embedding_model='fake-embedding',
            embedding_dimensions=DIMENSIONS,
            batch_size=8,
            requests_per_minute=60000,
            summary_model='fake-summary',
        ),
        indexing=IndexingConfig(max_workers=4, file_retry_delay=0.0, shutdown_timeout=5.0),
        throttling=ThrottlingConfig(base_delay=0.0),
        search=SearchConfig(default_min_score=0.0),
        storage=StorageConfig(backend='memory'),
    )


@pytest.fixture
def block_store() -> FailingBlockStore:
    return FailingBlockStore()


@pytest.fixture
def index_store() -> InMemoryIndexStore:
    return InMemoryIndexStore()


@pytest.fixture
def embedding_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def sparse_model() -> FakeSparseModel:
    return FakeSparseModel()


@pytest.fixture
def sparse_embedding(sparse_model: FakeSparseModel) -> SparseEmbeddingService:
    return SparseEmbeddingService(sparse_model)


@pytest.fixture
def reranker() -> FakeReranker:
    return FakeReranker()


@pytest.fixture
def git_collector(project_root: Path) -> FakeGitCollector:
    return FakeGitCollector({str(project_root / 'pkg' / 'models.py'): MODELS_COMMIT})


@pytest.fixture
async def indexing_service(
    app_config: AppConfig,
    block_store: FailingBlockStore,
    index_store: InMemoryIndexStore,
    embedding_client: FakeEmbeddingClient,
    summarizer: FakeSummarizer,
    sparse_embedding: SparseEmbeddingService,
    git_collector: FakeGitCollector,
) -> AsyncGenerator[IndexingService]:
    service = create_indexing_service(
        app_config,
        block_store=block_store,
        index_store=index_store,
        embedding_client=embedding_client,
        summarizer_client=summarizer,
        sparse_embedding=sparse_embedding,
        git=git_collector,
    )
    yield service
    await service.shutdown()


@pytest.fixture
async def search_service(
    app_config: AppConfig,
    block_store: FailingBlockStore,
    embedding_client: FakeEmbeddingClient,
    summarizer: FakeSummarizer,
    sparse_embedding: SparseEmbeddingService,
    reranker: FakeReranker,
) -> HybridSearchService:
    embedding = EmbeddingService(
        embedding_client,
        AdaptiveThrottler('fake-query', base_delay=0.0),
        batch_size=8,
        dimensions=DIMENSIONS,
    )
    enrichment = EnrichmentService(summarizer, AdaptiveThrottler('fake-llm-query', base_delay=0.0))
    return HybridSearchService(
        embedding, sparse_embedding, block_store, reranker, app_config.search, enrichment=enrichment
    )


@pytest.fixture
async def indexed_project(project_root: Path, indexing_service: IndexingService) -> Path:
    """The sample project, fully indexed into collection 'test', project 'sample'."""
    await indexing_service.start_index(project_root, 'sample', 'test')
    job = await indexing_service.wait()
    assert job.status == 'completed', job
    return project_root
