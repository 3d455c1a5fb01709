"""Low-level Qdrant vector database client.

Thin wrapper around qdrant-client. Handles API calls only - no business logic.
Block <-> payload translation happens in the repository layer.

Each point carries a dense embedding ('dense') and a sparse term vector
('sparse') whose IDF weighting Qdrant applies server-side, giving vector and
keyword search over the same collection.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, TypedDict

import httpx
import tenacity
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import (
    Distance,
    Filter,
    Modifier,
    OptimizersConfigDiff,
    PayloadSchemaType,
    PayloadSelectorExclude,
    PointStruct,
    SparseVector,
    SparseVectorParams,
    VectorParams,
)

from code_search.clients import _retry

__all__ = [
    'QdrantClient',
    'ScoredPointDict',
]

logger = logging.getLogger(__name__)

# Payload fields filtered during search or deletion
KEYWORD_INDEX_FIELDS = (
    'file_path',
    'collection',
    'project_name',
    'category',
    'author',
    'churn_level',
    'language',
)


class ScoredPointDict(TypedDict):
    """Raw query hit from Qdrant."""

    id: str
    score: float
    payload: Mapping[str, Any]


class QdrantClient:
    """Low-level async Qdrant client.

    Collection name is passed explicitly to each method - no default collection.
    """

    DEFAULT_URL = 'http://localhost:6333'
    DEFAULT_TIMEOUT = 10
    DEFAULT_POOL_SIZE = 32

    def __init__(
        self,
        url: str = DEFAULT_URL,
        timeout: int = DEFAULT_TIMEOUT,
        pool_size: int = DEFAULT_POOL_SIZE,
    ) -> None:
        """Initialize client.

        Args:
            url: Qdrant server URL.
            timeout: HTTP timeout in seconds.
            pool_size: HTTP connection pool size.
        """
        limits = httpx.Limits(max_connections=pool_size, max_keepalive_connections=pool_size)
        self._client = AsyncQdrantClient(url=url, timeout=timeout, limits=limits)

    async def ensure_collection(self, collection_name: str, vector_dimension: int) -> None:
        """Create collection with dense + IDF-weighted sparse vectors if it doesn't exist.

        Payload indexes on filter fields are created idempotently.
        """
        if not await self._client.collection_exists(collection_name):
            await self._client.create_collection(
                collection_name=collection_name,
                vectors_config={'dense': VectorParams(size=vector_dimension, distance=Distance.COSINE)},
                sparse_vectors_config={'sparse': SparseVectorParams(modifier=Modifier.IDF)},
            )
            logger.info(f'[QDRANT] Created collection {collection_name} (dim={vector_dimension})')

        for field in KEYWORD_INDEX_FIELDS:
            await self._client.create_payload_index(
                collection_name=collection_name,
                field_name=field,
                field_schema=PayloadSchemaType.KEYWORD,
            )
        await self._client.create_payload_index(
            collection_name=collection_name,
            field_name='last_commit_ts',
            field_schema=PayloadSchemaType.FLOAT,
        )

    @_retry.qdrant_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_qdrant_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_qdrant_retry,
        reraise=True,
    )
    async def upsert(
        self,
        collection_name: str,
        points: Sequence[tuple[str, Sequence[float], Sequence[int], Sequence[float], Mapping[str, Any]]],
    ) -> int:
        """Insert or update points.

        Args:
            collection_name: Collection name.
            points: (id, dense_vector, sparse_indices, sparse_values, payload) tuples.

        Returns:
            Number of points upserted.
        """
        point_structs = [
            PointStruct(
                id=point_id,
                vector={
                    'dense': list(dense),
                    'sparse': SparseVector(indices=list(indices), values=list(values)),
                },
                payload=dict(payload),
            )
            for point_id, dense, indices, values, payload in points
        ]
        await self._client.upsert(collection_name=collection_name, points=point_structs, wait=True)
        return len(point_structs)

    @_retry.qdrant_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_qdrant_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_qdrant_retry,
        reraise=True,
    )
    async def query_dense(
        self,
        collection_name: str,
        vector: Sequence[float],
        *,
        query_filter: Filter | None,
        limit: int,
        payload_exclude: Sequence[str] = (),
    ) -> Sequence[ScoredPointDict]:
        """Nearest-neighbour search on the dense vector, skipping payload_exclude fields."""
        results = await self._client.query_points(
            collection_name=collection_name,
            query=list(vector),
            using='dense',
            query_filter=query_filter,
            limit=limit,
            with_payload=_payload_selector(payload_exclude),
        )
        return [
            ScoredPointDict(id=str(hit.id), score=hit.score, payload=hit.payload)
            for hit in results.points
            if hit.payload is not None
        ]

    @_retry.qdrant_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_qdrant_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_qdrant_retry,
        reraise=True,
    )
    async def query_sparse(
        self,
        collection_name: str,
        indices: Sequence[int],
        values: Sequence[float],
        *,
        query_filter: Filter | None,
        limit: int,
        payload_exclude: Sequence[str] = (),
    ) -> Sequence[ScoredPointDict]:
        """Keyword search on the IDF-weighted sparse vector, skipping payload_exclude fields."""
        results = await self._client.query_points(
            collection_name=collection_name,
            query=SparseVector(indices=list(indices), values=list(values)),
            using='sparse',
            query_filter=query_filter,
            limit=limit,
            with_payload=_payload_selector(payload_exclude),
        )
        return [
            ScoredPointDict(id=str(hit.id), score=hit.score, payload=hit.payload)
            for hit in results.points
            if hit.payload is not None
        ]

    @_retry.qdrant_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_qdrant_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_qdrant_retry,
        reraise=True,
    )
    async def delete_where(self, collection_name: str, points_filter: Filter) -> None:
        """Delete every point matching the filter. Idempotent."""
        await self._client.delete(collection_name=collection_name, points_selector=points_filter, wait=True)

    @_retry.qdrant_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_qdrant_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_qdrant_retry,
        reraise=True,
    )
    async def scroll(
        self,
        collection_name: str,
        scroll_filter: Filter,
        *,
        limit: int = 1000,
    ) -> Sequence[ScoredPointDict]:
        """Every point matching the filter, up to limit. Scores are 0."""
        points: list[ScoredPointDict] = []
        offset = None
        while len(points) < limit:
            records, offset = await self._client.scroll(
                collection_name=collection_name,
                scroll_filter=scroll_filter,
                limit=min(256, limit - len(points)),
                offset=offset,
                with_payload=True,
            )
            points.extend(
                ScoredPointDict(id=str(record.id), score=0.0, payload=record.payload)
                for record in records
                if record.payload is not None
            )
            if offset is None:
                break
        return points

    async def count(self, collection_name: str, count_filter: Filter | None = None) -> int:
        """Exact point count, optionally filtered."""
        result = await self._client.count(collection_name=collection_name, count_filter=count_filter, exact=True)
        return result.count

    async def vacuum(self, collection_name: str) -> None:
        """Ask the optimizer to rewrite segments that contain deleted points."""
        await self._client.update_collection(
            collection_name=collection_name,
            optimizers_config=OptimizersConfigDiff(deleted_threshold=0.0, vacuum_min_vector_number=100),
        )

    async def close(self) -> None:
        await self._client.close()


def _payload_selector(exclude: Sequence[str]) -> bool | PayloadSelectorExclude:
    return PayloadSelectorExclude(exclude=list(exclude)) if exclude else True
