"""Cross-encoder reranking service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from rerankers import Reranker as load_reranker

from code_search.utils import Timer

if TYPE_CHECKING:
    from rerankers.models.ranker import BaseRanker

__all__ = [
    'Reranker',
    'RerankerService',
]

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'BAAI/bge-reranker-base'


class Reranker(Protocol):
    async def score(self, query: str, documents: Sequence[str]) -> Sequence[float]:
        """Relevance score per document, in input order."""
        ...


class RerankerService:
    """Cross-encoder reranker. The model loads on first use."""

    def __init__(self, model_name: str = DEFAULT_MODEL) -> None:
        self.model_name = model_name
        self._model: BaseRanker | None = None
        self._load_lock = asyncio.Lock()

    async def score(self, query: str, documents: Sequence[str]) -> Sequence[float]:
        """Score (query, document) pairs with the cross-encoder.

        Args:
            query: Search query.
            documents: Candidate texts.

        Returns:
            One score per document, in input order (higher is more relevant).
        """
        if not documents:
            return []

        model = await self._ensure_model()
        timer = Timer()
        # Run blocking ML inference in thread pool to avoid blocking event loop
        ranked = await asyncio.to_thread(model.rank, query=query, docs=list(documents))

        # ranked.results contains Result objects with doc_id (input index) and score
        scores = [0.0] * len(documents)
        for result in ranked.results:
            scores[result.doc_id] = float(result.score)
        logger.debug(f'[RERANK] {len(documents)} candidates in {timer.elapsed_ms()}ms')
        return scores

    async def _ensure_model(self) -> BaseRanker:
        async with self._load_lock:
            if self._model is None:
                logger.info(f'[RERANK] Loading {self.model_name}')
                self._model = await asyncio.to_thread(
                    load_reranker, self.model_name, model_type='cross-encoder', verbose=0
                )
            return self._model
