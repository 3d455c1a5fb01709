"""Hybrid search - vector and keyword retrieval, merge, filter, rerank.

Pipeline for one query:
1. Validate parameters (SearchConfigError, never retried)
2. Embed the query, dense and BM25 sparse; errors propagate, there is no keyword-only fallback
3. Vector and keyword search concurrently, each over-fetching
   min(limit * over_fetch_factor, max_candidates) candidates
4. Merge by block identity (file_path, start_line, end_line) with configured weights
5. Apply filters, drop candidates below min_score
6. Preview: aggregate stored token counts only, block text is never loaded.
   Otherwise rerank and truncate.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from code_search.exceptions import SearchConfigError
from code_search.repositories.protocols import BlockStore
from code_search.schemas.blocks import Block, BlockKey
from code_search.schemas.config import SearchConfig
from code_search.schemas.search import (
    BlockMatch,
    PreviewRecommendation,
    PreviewSummary,
    SearchFilters,
    SearchHit,
    SearchResult,
)
from code_search.services.embedding import EmbeddingService
from code_search.services.enrichment import EnrichmentService
from code_search.services.reranker import Reranker
from code_search.services.sparse_embedding import SparseEmbeddingService
from code_search.utils import Timer

__all__ = [
    'HybridSearchService',
    'merge_scores',
    'preview_recommendation',
]

logger = logging.getLogger(__name__)

# Preview says "narrow" up to this multiple of the token budget, "too_broad" above
NARROW_BUDGET_MULTIPLE = 3


@dataclass
class _Candidate:
    """One block seen by vector search, keyword search, or both."""

    block: Block
    vector_score: float | None = None
    keyword_score: float | None = None
    merged_score: float = 0.0


class HybridSearchService:
    """Read-only consumer of the block store."""

    def __init__(
        self,
        embedding: EmbeddingService,
        sparse_embedding: SparseEmbeddingService,
        block_store: BlockStore,
        reranker: Reranker,
        config: SearchConfig,
        *,
        enrichment: EnrichmentService | None = None,
    ) -> None:
        """Initialize service.

        Args:
            embedding: Query-side embedding service (its own throttler, not the indexer's).
            sparse_embedding: BM25 query vectors for keyword search.
            block_store: Block storage backend.
            reranker: Cross-encoder used for the final ordering.
            config: Search defaults and merge weights.
            enrichment: Summarizer access for best_question; optional.
        """
        self._embedding = embedding
        self._sparse_embedding = sparse_embedding
        self._block_store = block_store
        self._reranker = reranker
        self._config = config
        self._enrichment = enrichment

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        *,
        limit: int | None = None,
        min_score: float | None = None,
        preview_only: bool = False,
    ) -> SearchResult | PreviewSummary:
        """Search blocks by meaning and keywords.

        Args:
            query: Natural language or keyword query.
            filters: Metadata filters (default: none).
            limit: Max hits returned (default: config.default_limit).
            min_score: Drop candidates whose merged score is below this (default: config.default_min_score).
            preview_only: Return an aggregate summary without reranking or reading content.

        Returns:
            SearchResult, or PreviewSummary when preview_only is set.

        Raises:
            SearchConfigError: Invalid parameters or filter combination.
        """
        filters = filters or SearchFilters()
        limit = self._config.default_limit if limit is None else limit
        min_score = self._config.default_min_score if min_score is None else min_score
        _validate(query, filters, limit, min_score)

        timer = Timer()
        candidates = await self._candidates(query, filters, limit, with_content=not preview_only)
        kept = [c for c in candidates if filters.matches(c.block) and c.merged_score >= min_score]
        logger.debug(f'[SEARCH] {len(candidates)} merged, {len(kept)} after filters and min_score={min_score}')

        if preview_only:
            return self._preview(query, kept)

        scores = await self._reranker.score(query, [_rerank_text(c.block) for c in kept])
        ranked = sorted(
            zip(kept, scores, strict=True),
            key=lambda pair: (-pair[1], -pair[0].merged_score, pair[0].block.file_path, pair[0].block.start_line),
        )
        hits = [_to_hit(candidate, score) for candidate, score in ranked[:limit]]

        logger.info(f'[SEARCH] {query[:60]!r}: {len(hits)}/{len(kept)} hits in {timer.elapsed_ms()}ms')
        return SearchResult(query=query, hits=hits, total_candidates=len(kept))

    async def best_question(self, file_path: str, start_line: int) -> str:
        """Suggested chat starter for the block at (or containing) a line.

        Raises:
            ValueError: No stored block covers the line, or no summarizer is configured.
        """
        if self._enrichment is None or not self._enrichment.can_summarize:
            raise ValueError('No summarizer configured')

        blocks = await self._block_store.blocks_for_file(file_path)
        block = next((b for b in blocks if b.start_line == start_line), None)
        if block is None:
            block = next((b for b in blocks if b.start_line <= start_line <= b.end_line), None)
        if block is None:
            raise ValueError(f'No indexed block at {file_path}:{start_line}')

        return await self._enrichment.best_question(block.content, block.summary or block.name)

    async def _candidates(
        self, query: str, filters: SearchFilters, limit: int, *, with_content: bool
    ) -> Sequence[_Candidate]:
        k = min(limit * self._config.over_fetch_factor, self._config.max_candidates)
        vector, sparse = await asyncio.gather(
            self._embedding.embed_text(query, intent='query'),
            self._sparse_embedding.embed_query(query),
        )
        vector_hits, keyword_hits = await asyncio.gather(
            self._block_store.vector_search(vector, filters, k, with_content=with_content),
            self._block_store.keyword_search(sparse, filters, k, with_content=with_content),
        )
        return self._merge(vector_hits, keyword_hits)

    def _merge(self, vector_hits: Sequence[BlockMatch], keyword_hits: Sequence[BlockMatch]) -> Sequence[_Candidate]:
        merged: dict[BlockKey, _Candidate] = {}
        for match in vector_hits:
            candidate = merged.setdefault(match.block.key, _Candidate(block=match.block))
            if candidate.vector_score is None or match.score > candidate.vector_score:
                candidate.vector_score = match.score
        for match in keyword_hits:
            candidate = merged.setdefault(match.block.key, _Candidate(block=match.block))
            if candidate.keyword_score is None or match.score > candidate.keyword_score:
                candidate.keyword_score = match.score

        weights = (self._config.vector_weight, self._config.keyword_weight)
        for candidate in merged.values():
            candidate.merged_score = merge_scores(candidate.vector_score, candidate.keyword_score, weights)
        return list(merged.values())

    def _preview(self, query: str, kept: Sequence[_Candidate]) -> PreviewSummary:
        budget = self._config.preview_token_budget
        total_tokens = sum(c.block.token_count for c in kept)
        mean_score = sum(c.merged_score for c in kept) / len(kept) if kept else 0.0
        recommendation = preview_recommendation(total_tokens, budget)

        match recommendation:
            case 'ok':
                message = f'{len(kept)} blocks, ~{total_tokens:,} tokens. Fits the budget.'
            case 'narrow':
                message = f'{len(kept)} blocks, ~{total_tokens:,} tokens. Consider a lower limit or more filters.'
            case 'too_broad':
                message = (
                    f'{len(kept)} blocks, ~{total_tokens:,} tokens is over {NARROW_BUDGET_MULTIPLE}x the budget. '
                    f'Narrow the query or filter by project, category or language.'
                )

        return PreviewSummary(
            query=query,
            candidate_count=len(kept),
            total_tokens=total_tokens,
            mean_score=round(mean_score, 4),
            token_budget=budget,
            recommendation=recommendation,
            message=message,
        )


def merge_scores(vector: float | None, keyword: float | None, weights: tuple[float, float]) -> float:
    """Weighted sum when both searches found the block, otherwise the one score present."""
    if vector is not None and keyword is not None:
        return weights[0] * vector + weights[1] * keyword
    if vector is not None:
        return vector
    return keyword or 0.0


def preview_recommendation(total_tokens: int, budget: int) -> PreviewRecommendation:
    """ok up to the budget, narrow up to 3x, too_broad beyond."""
    if total_tokens <= budget:
        return 'ok'
    if total_tokens <= budget * NARROW_BUDGET_MULTIPLE:
        return 'narrow'
    return 'too_broad'


def _validate(query: str, filters: SearchFilters, limit: int, min_score: float) -> None:
    if not query.strip():
        raise SearchConfigError('Query must not be empty')
    if limit < 1:
        raise SearchConfigError(f'limit must be >= 1, got {limit}')
    if not 0.0 <= min_score <= 1.0:
        raise SearchConfigError(f'min_score must be in [0, 1], got {min_score}')
    if filters.date_from is not None and filters.date_to is not None and filters.date_from > filters.date_to:
        raise SearchConfigError(
            f'date_from ({filters.date_from:%Y-%m-%d}) is after date_to ({filters.date_to:%Y-%m-%d})'
        )


def _rerank_text(block: Block) -> str:
    return f'{block.name}\n{block.content}'


def _to_hit(candidate: _Candidate, score: float) -> SearchHit:
    block = candidate.block
    return SearchHit(
        name=block.name,
        kind=block.kind,
        category=block.category,
        file_path=block.file_path,
        start_line=block.start_line,
        end_line=block.end_line,
        content=block.content,
        summary=block.summary,
        parent_name=block.parent_name,
        project_name=block.project_name,
        collection=block.collection,
        token_count=block.token_count,
        score=score,
        merged_score=candidate.merged_score,
        vector_score=candidate.vector_score,
        keyword_score=candidate.keyword_score,
        author=block.author,
        last_commit_date=block.last_commit_date,
        churn_level=block.churn_level,
    )
