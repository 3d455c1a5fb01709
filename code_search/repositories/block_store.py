"""Qdrant-backed block storage.

Typed interface over the Qdrant client. All public methods accept and return
strict Pydantic models from schemas.blocks and schemas.search.

One Qdrant collection holds every project's blocks; the logical `collection`
and `project_name` live in the payload and are filtered like any other field.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence, Set
from typing import Any

from qdrant_client.http.models import (
    FieldCondition,
    Filter,
    HasIdCondition,
    MatchAny,
    MatchValue,
    Range,
)

from code_search.clients.qdrant import QdrantClient, ScoredPointDict
from code_search.repositories import keywords
from code_search.schemas.blocks import Block
from code_search.schemas.embeddings import SparseVector
from code_search.schemas.search import BlockMatch, SearchFilters

__all__ = [
    'QdrantBlockStore',
]

logger = logging.getLogger(__name__)

# Payload text left out of content-free matches
TEXT_FIELDS = ('content', 'comments', 'summary')

# Block fields stored as vectors, not payload
_VECTOR_FIELDS = frozenset({'block_id', 'vector', 'sparse_indices', 'sparse_values'})


class QdrantBlockStore:
    """Block storage with dense-vector and IDF-weighted keyword search.

    Each store instance is bound to one Qdrant collection.
    """

    def __init__(self, client: QdrantClient, qdrant_collection: str) -> None:
        """Initialize store.

        Args:
            client: Qdrant client instance.
            qdrant_collection: Name of the Qdrant collection holding all blocks.
        """
        self._client = client
        self._qdrant_collection = qdrant_collection

    async def ensure_schema(self, dimensions: int) -> None:
        await self._client.ensure_collection(self._qdrant_collection, dimensions)

    async def upsert_blocks(self, blocks: Sequence[Block]) -> int:
        """Insert or replace blocks by block_id.

        Args:
            blocks: Blocks with dense and sparse vectors populated.

        Returns:
            Number of points written.
        """
        if not blocks:
            return 0

        points = [
            (block.block_id, block.vector, block.sparse_indices, block.sparse_values, _encode_payload(block))
            for block in blocks
        ]

        written = await self._client.upsert(self._qdrant_collection, points)
        logger.debug(f'[UPSERT] {written} blocks for {blocks[0].file_path}')
        return written

    async def delete_by_file(self, file_path: str, *, keep_ids: Set[str] = frozenset()) -> None:
        points_filter = Filter(
            must=[FieldCondition(key='file_path', match=MatchValue(value=file_path))],
            must_not=[HasIdCondition(has_id=sorted(keep_ids))] if keep_ids else None,
        )
        await self._client.delete_where(self._qdrant_collection, points_filter)

    async def delete_by_project(self, collection: str, project_name: str) -> None:
        points_filter = Filter(
            must=[
                FieldCondition(key='collection', match=MatchValue(value=collection)),
                FieldCondition(key='project_name', match=MatchValue(value=project_name)),
            ]
        )
        await self._client.delete_where(self._qdrant_collection, points_filter)
        logger.info(f'[DELETE] Blocks of {collection}/{project_name}')

    async def vector_search(
        self,
        vector: Sequence[float],
        filters: SearchFilters,
        k: int,
        *,
        with_content: bool = True,
    ) -> Sequence[BlockMatch]:
        hits = await self._client.query_dense(
            self._qdrant_collection,
            vector,
            query_filter=_build_filter(filters),
            limit=k,
            payload_exclude=() if with_content else TEXT_FIELDS,
        )
        return [_decode_hit(hit, hit['score']) for hit in hits]

    async def keyword_search(
        self,
        query: SparseVector,
        filters: SearchFilters,
        k: int,
        *,
        with_content: bool = True,
    ) -> Sequence[BlockMatch]:
        """Top-k blocks by BM25 relevance. Raw scores are squashed onto [0, 1)."""
        indices, values = query
        if not indices:
            return []

        hits = await self._client.query_sparse(
            self._qdrant_collection,
            indices,
            values,
            query_filter=_build_filter(filters),
            limit=k,
            payload_exclude=() if with_content else TEXT_FIELDS,
        )
        return [_decode_hit(hit, keywords.normalize_score(hit['score'])) for hit in hits if hit['score'] > 0]

    async def blocks_for_file(self, file_path: str) -> Sequence[Block]:
        points = await self._client.scroll(
            self._qdrant_collection,
            Filter(must=[FieldCondition(key='file_path', match=MatchValue(value=file_path))]),
        )
        blocks = [_decode_hit(point, 0.0).block for point in points]
        return sorted(blocks, key=lambda b: (b.start_line, b.end_line))

    async def count(self, filters: SearchFilters | None = None) -> int:
        return await self._client.count(self._qdrant_collection, _build_filter(filters) if filters else None)

    async def compact(self) -> None:
        await self._client.vacuum(self._qdrant_collection)
        logger.info(f'[COMPACT] Requested vacuum of {self._qdrant_collection}')


# --- Filter and payload helpers ---


def _build_filter(filters: SearchFilters) -> Filter | None:
    """Translate search filters into a Qdrant filter. None when nothing is filtered."""
    conditions: list[FieldCondition] = []

    if filters.collection is not None:
        conditions.append(FieldCondition(key='collection', match=MatchValue(value=filters.collection)))
    if filters.project_name is not None:
        conditions.append(FieldCondition(key='project_name', match=MatchValue(value=filters.project_name)))
    if filters.categories:
        conditions.append(FieldCondition(key='category', match=MatchAny(any=list(filters.categories))))
    if filters.authors:
        conditions.append(FieldCondition(key='author', match=MatchAny(any=list(filters.authors))))
    if filters.churn_levels:
        conditions.append(FieldCondition(key='churn_level', match=MatchAny(any=list(filters.churn_levels))))
    if filters.languages:
        conditions.append(FieldCondition(key='language', match=MatchAny(any=list(filters.languages))))
    if filters.date_from is not None or filters.date_to is not None:
        # Blocks without a commit timestamp never satisfy a range condition
        conditions.append(
            FieldCondition(
                key='last_commit_ts',
                range=Range(
                    gte=filters.date_from.timestamp() if filters.date_from else None,
                    lte=filters.date_to.timestamp() if filters.date_to else None,
                ),
            )
        )

    return Filter(must=conditions) if conditions else None


def _encode_payload(block: Block) -> Mapping[str, Any]:
    payload = block.model_dump(mode='json', exclude=set(_VECTOR_FIELDS))
    if block.last_commit_date is not None:
        payload['last_commit_ts'] = block.last_commit_date.timestamp()
    return payload


def _decode_hit(hit: ScoredPointDict, score: float) -> BlockMatch:
    payload = dict(hit['payload'])
    payload.pop('last_commit_ts', None)
    # Content-free matches
    payload.setdefault('content', '')
    block = Block.model_validate({**payload, 'block_id': hit['id']}, strict=False)
    return BlockMatch(block=block, score=score)
