"""Embedding service - typed interface over embedding clients.

Texts are split into provider-sized batches and every batch call runs under
the provider's adaptive throttler.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import more_itertools

from code_search.clients.protocols import EmbeddingClient
from code_search.schemas.embeddings import TaskIntent
from code_search.services.throttler import AdaptiveThrottler
from code_search.utils import Timer

__all__ = [
    'EmbeddingService',
]

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Batched, throttled embedding."""

    def __init__(
        self,
        client: EmbeddingClient,
        throttler: AdaptiveThrottler,
        *,
        batch_size: int,
        dimensions: int,
    ) -> None:
        """Initialize service.

        Args:
            client: Embedding client.
            throttler: Adaptive throttler for the client's provider.
            batch_size: Max texts per API call.
            dimensions: Expected vector size, checked on every response.
        """
        self._client = client
        self._throttler = throttler
        self._batch_size = batch_size
        self.dimensions = dimensions

    @property
    def provider(self) -> str:
        return self._client.provider

    async def embed_text(self, text: str, *, intent: TaskIntent = 'query') -> Sequence[float]:
        """Embed a single text. Query intent by default."""
        vectors = await self.embed_batch([text], intent=intent)
        return vectors[0]

    async def embed_batch(
        self,
        texts: Sequence[str],
        *,
        intent: TaskIntent = 'document',
    ) -> Sequence[Sequence[float]]:
        """Embed texts in provider-sized batches, concurrently within the throttler's ceiling.

        Returns:
            One vector per text, in input order.

        Raises:
            ValueError: If the backend returns the wrong number or size of vectors.
        """
        if not texts:
            return []

        timer = Timer()
        batches = [list(batch) for batch in more_itertools.chunked(texts, self._batch_size)]
        results = await asyncio.gather(*(self._embed_one_batch(batch, intent) for batch in batches))
        vectors = [vector for batch_vectors in results for vector in batch_vectors]

        logger.debug(f'[EMBED] {len(texts)} texts in {len(batches)} batches, {timer.elapsed_ms()}ms')
        return vectors

    async def _embed_one_batch(self, texts: Sequence[str], intent: TaskIntent) -> Sequence[Sequence[float]]:
        vectors = await self._throttler.run(lambda: self._client.embed(texts, intent=intent))
        if len(vectors) != len(texts):
            raise ValueError(f'Embedding count mismatch: sent {len(texts)} texts, got {len(vectors)} vectors')
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise ValueError(f'Embedding dimension mismatch: expected {self.dimensions}, got {len(vector)}')
        return vectors
