"""Tests for block store maintenance operations and the embedding service."""

from __future__ import annotations

from pathlib import Path

import pytest

from code_search.repositories.memory import InMemoryBlockStore
from code_search.schemas.search import SearchFilters
from code_search.services.embedding import EmbeddingService
from code_search.services.indexing import IndexingService
from code_search.services.throttler import AdaptiveThrottler
from tests.code_search.fakes import DIMENSIONS, FailingBlockStore, FakeEmbeddingClient, bag_of_words_vector


class TestBlockStoreMaintenance:
    async def test_delete_by_file_keeps_requested_ids(
        self,
        indexed_project: Path,
        block_store: FailingBlockStore,
    ) -> None:
        client = str(indexed_project / 'web' / 'client.js')
        blocks = await block_store.blocks_for_file(client)
        assert blocks
        keep = blocks[0].block_id

        await block_store.delete_by_file(client, keep_ids={keep})
        assert [b.block_id for b in await block_store.blocks_for_file(client)] == [keep]

        await block_store.delete_by_file(client)
        assert await block_store.blocks_for_file(client) == []

    async def test_delete_by_project_is_scoped(self, indexed_project: Path, block_store: FailingBlockStore) -> None:
        total = await block_store.count()
        await block_store.delete_by_project('test', 'other')
        assert await block_store.count() == total

        await block_store.delete_by_project('test', 'sample')
        assert await block_store.count() == 0

    async def test_count_with_filters(self, indexed_project: Path, block_store: FailingBlockStore) -> None:
        python_blocks = await block_store.count(SearchFilters(languages=['python']))
        assert 0 < python_blocks < await block_store.count()

    async def test_vector_search_ranks_identical_vector_first(
        self,
        indexed_project: Path,
        block_store: FailingBlockStore,
    ) -> None:
        client = str(indexed_project / 'web' / 'client.js')
        target = (await block_store.blocks_for_file(client))[0]
        matches = await block_store.vector_search(target.vector, SearchFilters(), k=3)
        assert len(matches) == 3
        assert matches[0].score == pytest.approx(1.0)
        assert matches[0].score >= matches[1].score >= matches[2].score

    async def test_keyword_search_without_matching_terms(
        self,
        indexed_project: Path,
        block_store: FailingBlockStore,
    ) -> None:
        assert await block_store.keyword_search(([], []), SearchFilters(), k=5) == []
        assert await block_store.keyword_search(([7], [1.0]), SearchFilters(), k=5) == []

    async def test_keyword_search_ranks_block_with_term_first(
        self,
        indexed_project: Path,
        block_store: FailingBlockStore,
    ) -> None:
        client = str(indexed_project / 'web' / 'client.js')
        target = (await block_store.blocks_for_file(client))[0]
        matches = await block_store.keyword_search(
            (target.sparse_indices, [1.0] * len(target.sparse_indices)), SearchFilters(), k=3
        )
        assert matches[0].block.block_id == target.block_id
        assert all(0 < m.score < 1 for m in matches)

    @pytest.mark.parametrize('search', ['vector', 'keyword'])
    async def test_matches_without_content(
        self,
        indexed_project: Path,
        block_store: FailingBlockStore,
        search: str,
    ) -> None:
        target = (await block_store.blocks_for_file(str(indexed_project / 'pkg' / 'models.py')))[0]
        if search == 'vector':
            matches = await block_store.vector_search(target.vector, SearchFilters(), k=3, with_content=False)
        else:
            query = (target.sparse_indices, [1.0] * len(target.sparse_indices))
            matches = await block_store.keyword_search(query, SearchFilters(), k=3, with_content=False)
        top = matches[0].block
        assert (top.block_id, top.token_count, top.author) == (target.block_id, target.token_count, 'Ada Lovelace')
        assert (top.content, top.comments, top.summary) == ('', '', None)
        assert target.content

    async def test_schema_dimensions_are_fixed(self) -> None:
        store = InMemoryBlockStore()
        await store.ensure_schema(DIMENSIONS)
        await store.ensure_schema(DIMENSIONS)
        with pytest.raises(ValueError, match='holds 16-dim vectors'):
            await store.ensure_schema(DIMENSIONS * 2)

    async def test_compact_keeps_blocks(
        self,
        indexed_project: Path,
        indexing_service: IndexingService,
        block_store: FailingBlockStore,
    ) -> None:
        before = await block_store.count()
        await indexing_service.compact()
        assert await block_store.count() == before


def _service(client: FakeEmbeddingClient, *, batch_size: int) -> EmbeddingService:
    return EmbeddingService(
        client, AdaptiveThrottler('fake', base_delay=0.0), batch_size=batch_size, dimensions=DIMENSIONS
    )


class TestEmbeddingService:
    """Verify batching and response validation."""

    async def test_batches_preserve_order(self) -> None:
        client = FakeEmbeddingClient()
        service = _service(client, batch_size=2)
        texts = ['alpha', 'beta gamma', 'delta', 'epsilon zeta', 'eta']

        vectors = await service.embed_batch(texts)

        assert client.calls == 3
        assert [list(v) for v in vectors] == [bag_of_words_vector(t) for t in texts]

    async def test_embed_text_single_call(self) -> None:
        client = FakeEmbeddingClient()
        service = _service(client, batch_size=8)
        assert list(await service.embed_text('fetch user')) == bag_of_words_vector('fetch user')
        assert client.calls == 1

    async def test_empty_input_skips_backend(self) -> None:
        client = FakeEmbeddingClient()
        service = _service(client, batch_size=8)
        assert await service.embed_batch([]) == []
        assert client.calls == 0

    async def test_dimension_mismatch(self) -> None:
        service = EmbeddingService(
            FakeEmbeddingClient(dimensions=DIMENSIONS),
            AdaptiveThrottler('fake', base_delay=0.0),
            batch_size=8,
            dimensions=DIMENSIONS // 2,
        )
        with pytest.raises(ValueError, match='dimension mismatch'):
            await service.embed_text('anything')
