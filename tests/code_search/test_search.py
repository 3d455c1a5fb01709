"""Tests for hybrid search over an indexed sample project."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

import pytest

from code_search.exceptions import SearchConfigError
from code_search.schemas.config import SearchConfig
from code_search.schemas.embeddings import TaskIntent
from code_search.schemas.search import BlockMatch, PreviewSummary, SearchFilters, SearchResult
from code_search.services.embedding import EmbeddingService
from code_search.services.search import HybridSearchService, merge_scores, preview_recommendation
from code_search.services.sparse_embedding import SparseEmbeddingService
from code_search.services.throttler import AdaptiveThrottler
from tests.code_search.fakes import (
    DIMENSIONS,
    ConstantReranker,
    FailingBlockStore,
    FakeEmbeddingClient,
    FakeReranker,
    FakeSparseModel,
)


async def _search(service: HybridSearchService, query: str, **kwargs: object) -> SearchResult:
    result = await service.search(query, **kwargs)  # type: ignore[arg-type]
    assert isinstance(result, SearchResult)
    return result


def _sparse() -> SparseEmbeddingService:
    return SparseEmbeddingService(FakeSparseModel())


class TestSearch:
    """Verify ranking, filtering and score thresholds."""

    async def test_best_match_first(self, indexed_project: Path, search_service: HybridSearchService) -> None:
        result = await _search(search_service, 'fetch user')
        top = result.hits[0]
        assert (top.name, Path(top.file_path).name) == ('fetchUser', 'client.js')
        assert top.score == 1.0
        assert top.vector_score is not None

    async def test_same_query_same_results(self, indexed_project: Path, search_service: HybridSearchService) -> None:
        first = await _search(search_service, 'register a user account')
        second = await _search(search_service, 'register a user account')
        assert first == second

    async def test_limit_truncates_after_rerank(
        self,
        indexed_project: Path,
        search_service: HybridSearchService,
        reranker: FakeReranker,
    ) -> None:
        result = await _search(search_service, 'user', limit=2)
        assert len(result.hits) == 2
        assert result.total_candidates > 2
        assert reranker.calls == 1

    async def test_min_score_drops_candidates(self, indexed_project: Path, search_service: HybridSearchService) -> None:
        result = await _search(search_service, 'fetch user', min_score=0.99)
        assert result.hits == []
        assert result.total_candidates == 0

    @pytest.mark.parametrize(
        'filters, expected_files',
        [
            (SearchFilters(categories=['documentation']), {'README.md', 'setup.md'}),
            (SearchFilters(languages=['javascript']), {'api.js', 'client.js'}),
            (SearchFilters(authors=['Ada Lovelace']), {'models.py'}),
            (SearchFilters(churn_levels=['high']), {'models.py'}),
            (SearchFilters(date_from=datetime(2026, 1, 1, tzinfo=UTC)), {'models.py'}),
            (SearchFilters(date_to=datetime(2025, 1, 1, tzinfo=UTC)), set()),
            (SearchFilters(project_name='other'), set()),
            (
                SearchFilters(collection='test', project_name='sample', languages=['python']),
                {'__init__.py', 'models.py', 'service.py'},
            ),
        ],
        ids=['category', 'language', 'author', 'churn', 'date-from', 'date-to', 'other-project', 'combined'],
    )
    async def test_filters(
        self,
        indexed_project: Path,
        search_service: HybridSearchService,
        filters: SearchFilters,
        expected_files: set[str],
    ) -> None:
        result = await _search(search_service, 'user setup fetch sample', filters=filters, limit=50)
        assert {Path(hit.file_path).name for hit in result.hits} == expected_files

    @pytest.mark.parametrize(
        'query, kwargs, message',
        [
            ('   ', {}, 'Query must not be empty'),
            ('user', {'limit': 0}, 'limit must be >= 1'),
            ('user', {'min_score': 1.5}, 'min_score must be in'),
            (
                'user',
                {
                    'filters': SearchFilters(
                        date_from=datetime(2026, 2, 1, tzinfo=UTC),
                        date_to=datetime(2026, 1, 1, tzinfo=UTC),
                    )
                },
                'is after date_to',
            ),
        ],
        ids=['empty-query', 'zero-limit', 'min-score-range', 'inverted-dates'],
    )
    async def test_invalid_parameters(
        self,
        search_service: HybridSearchService,
        reranker: FakeReranker,
        query: str,
        kwargs: dict[str, object],
        message: str,
    ) -> None:
        with pytest.raises(SearchConfigError, match=message):
            await search_service.search(query, **kwargs)  # type: ignore[arg-type]
        assert reranker.calls == 0

    async def test_equal_rerank_scores_fall_back_to_merged_score_then_location(
        self,
        indexed_project: Path,
        block_store: FailingBlockStore,
        embedding_client: FakeEmbeddingClient,
    ) -> None:
        embedding = EmbeddingService(
            embedding_client,
            AdaptiveThrottler('fake-query', base_delay=0.0),
            batch_size=8,
            dimensions=DIMENSIONS,
        )
        service = HybridSearchService(
            embedding, _sparse(), block_store, ConstantReranker(0.5), SearchConfig(default_min_score=0.0)
        )
        result = await _search(service, 'user setup fetch sample', limit=50)

        assert len(result.hits) > 2
        assert {hit.score for hit in result.hits} == {0.5}
        order = [(-hit.merged_score, hit.file_path, hit.start_line) for hit in result.hits]
        assert order == sorted(order)

    async def test_keyword_query_is_identifier_expanded(
        self,
        indexed_project: Path,
        search_service: HybridSearchService,
        sparse_model: FakeSparseModel,
    ) -> None:
        await _search(search_service, 'makeUser')
        assert sparse_model.queries == ['makeUser\nmake user']

    async def test_query_embedding_errors_propagate(self, block_store: FailingBlockStore) -> None:
        class BrokenClient:
            provider = 'broken'

            async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
                raise RuntimeError('embedding backend down')

            async def close(self) -> None:
                pass

        embedding = EmbeddingService(
            BrokenClient(),
            AdaptiveThrottler('broken', base_delay=0.0),
            batch_size=8,
            dimensions=DIMENSIONS,
        )
        service = HybridSearchService(embedding, _sparse(), block_store, FakeReranker(), SearchConfig())
        with pytest.raises(RuntimeError, match='embedding backend down'):
            await service.search('anything')


class TestPreview:
    async def test_preview_skips_rerank(
        self,
        indexed_project: Path,
        search_service: HybridSearchService,
        block_store: FailingBlockStore,
        reranker: FakeReranker,
    ) -> None:
        preview = await search_service.search('user', limit=50, preview_only=True)
        assert isinstance(preview, PreviewSummary)
        assert reranker.calls == 0
        assert preview.candidate_count == await block_store.count()
        assert preview.total_tokens > 0
        assert preview.recommendation == 'ok'
        assert 0 < preview.mean_score <= 1

    async def test_preview_tokens_match_full_search(
        self,
        indexed_project: Path,
        search_service: HybridSearchService,
    ) -> None:
        preview = await search_service.search('user', limit=50, preview_only=True)
        result = await _search(search_service, 'user', limit=50)
        assert isinstance(preview, PreviewSummary)
        assert preview.candidate_count == result.total_candidates
        assert preview.total_tokens == sum(hit.token_count for hit in result.hits)

    async def test_preview_reads_no_block_text(
        self,
        indexed_project: Path,
        search_service: HybridSearchService,
        block_store: FailingBlockStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        requested: list[tuple[str, bool]] = []
        vector_search = block_store.vector_search
        keyword_search = block_store.keyword_search

        async def recording_vector_search(*args: object, with_content: bool = True) -> Sequence[BlockMatch]:
            requested.append(('vector', with_content))
            return await vector_search(*args, with_content=with_content)  # type: ignore[arg-type]

        async def recording_keyword_search(*args: object, with_content: bool = True) -> Sequence[BlockMatch]:
            requested.append(('keyword', with_content))
            return await keyword_search(*args, with_content=with_content)  # type: ignore[arg-type]

        monkeypatch.setattr(block_store, 'vector_search', recording_vector_search)
        monkeypatch.setattr(block_store, 'keyword_search', recording_keyword_search)

        await search_service.search('user', limit=50, preview_only=True)
        assert sorted(requested) == [('keyword', False), ('vector', False)]

        requested.clear()
        await _search(search_service, 'user', limit=50)
        assert sorted(requested) == [('keyword', True), ('vector', True)]

    @pytest.mark.parametrize(
        'total_tokens, expected',
        [(0, 'ok'), (8000, 'ok'), (8001, 'narrow'), (24000, 'narrow'), (24001, 'too_broad')],
    )
    def test_recommendation_thresholds(self, total_tokens: int, expected: str) -> None:
        assert preview_recommendation(total_tokens, 8000) == expected


class TestMergeScores:
    @pytest.mark.parametrize(
        'vector, keyword, weights, expected',
        [
            (0.8, 0.5, (1.0, 0.0), 0.8),
            (0.8, 0.4, (0.5, 0.5), 0.6),
            (0.8, None, (0.5, 0.5), 0.8),
            (None, 0.5, (1.0, 0.0), 0.5),
            (None, None, (1.0, 0.0), 0.0),
        ],
        ids=['both-default-weights', 'both-even-weights', 'vector-only', 'keyword-only', 'neither'],
    )
    def test_merge(
        self,
        vector: float | None,
        keyword: float | None,
        weights: tuple[float, float],
        expected: float,
    ) -> None:
        assert merge_scores(vector, keyword, weights) == pytest.approx(expected)


class TestBestQuestion:
    async def test_block_at_start_line(self, indexed_project: Path, search_service: HybridSearchService) -> None:
        question = await search_service.best_question(str(indexed_project / 'web' / 'client.js'), 2)
        assert question == 'How is "Summary of export async function fetchUser(id) {" used?'

    async def test_block_containing_line(self, indexed_project: Path, search_service: HybridSearchService) -> None:
        question = await search_service.best_question(str(indexed_project / 'web' / 'client.js'), 3)
        assert 'fetchUser' in question

    async def test_no_block_at_line(self, indexed_project: Path, search_service: HybridSearchService) -> None:
        with pytest.raises(ValueError, match='No indexed block'):
            await search_service.best_question(str(indexed_project / 'web' / 'client.js'), 99)

    async def test_requires_summarizer(self, block_store: FailingBlockStore) -> None:
        embedding = EmbeddingService(
            _UnusedClient(),
            AdaptiveThrottler('unused', base_delay=0.0),
            batch_size=8,
            dimensions=DIMENSIONS,
        )
        service = HybridSearchService(embedding, _sparse(), block_store, FakeReranker(), SearchConfig())
        with pytest.raises(ValueError, match='No summarizer configured'):
            await service.best_question('/src/app.py', 1)


class _UnusedClient:
    provider = 'unused'

    async def embed(self, texts: Sequence[str], *, intent: TaskIntent) -> Sequence[Sequence[float]]:
        raise AssertionError('not called')

    async def close(self) -> None:
        pass
