"""BM25 sparse embedding service using fastembed.

Generates the sparse vectors behind keyword search. The `Qdrant/bm25` model
emits per-document term weights (term frequency with length normalization);
IDF is applied at query time by the block store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

import numpy as np
from fastembed import SparseTextEmbedding

from code_search.repositories.keywords import expand_identifiers
from code_search.schemas.embeddings import SparseVector
from code_search.utils import Timer

__all__ = [
    'SparseEmbeddingService',
    'SparseModel',
]

logger = logging.getLogger(__name__)

MODEL_NAME = 'Qdrant/bm25'


class _SparseEmbedding(Protocol):
    indices: np.ndarray
    values: np.ndarray


class SparseModel(Protocol):
    """The part of fastembed's SparseTextEmbedding this service uses."""

    def embed(self, documents: Sequence[str]) -> Iterable[_SparseEmbedding]: ...

    def query_embed(self, query: str) -> Iterable[_SparseEmbedding]: ...


class SparseEmbeddingService:
    """BM25 sparse vectors for blocks and queries. The model loads on first use."""

    def __init__(self, model: SparseModel | None = None, model_name: str = MODEL_NAME) -> None:
        """Initialize service.

        Args:
            model: Preloaded model; fastembed's SparseTextEmbedding(model_name) when None.
            model_name: fastembed model to load.
        """
        self.model_name = model_name
        self._model = model
        self._load_lock = asyncio.Lock()

    async def embed_documents(self, texts: Sequence[str]) -> Sequence[SparseVector]:
        """Sparse vectors for keyword texts, in input order."""
        if not texts:
            return []
        model = await self._ensure_model()
        timer = Timer()
        embeddings = await asyncio.to_thread(lambda: list(model.embed(list(texts))))
        logger.debug(f'[SPARSE] {len(texts)} texts in {timer.elapsed_ms()}ms')
        return [_to_vector(embedding) for embedding in embeddings]

    async def embed_query(self, query: str) -> SparseVector:
        """Sparse query vector; identifier parts are expanded as they are for documents."""
        model = await self._ensure_model()
        embeddings = await asyncio.to_thread(lambda: list(model.query_embed(expand_identifiers(query))))
        return _to_vector(embeddings[0]) if embeddings else ([], [])

    async def _ensure_model(self) -> SparseModel:
        async with self._load_lock:
            if self._model is None:
                logger.info(f'[SPARSE] Loading {self.model_name}')
                self._model = await asyncio.to_thread(SparseTextEmbedding, self.model_name)
            return self._model


def _to_vector(embedding: _SparseEmbedding) -> SparseVector:
    return embedding.indices.tolist(), embedding.values.tolist()
