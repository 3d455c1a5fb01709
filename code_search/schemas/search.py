"""Search request and response schemas."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from code_search.schemas.base import JsonDatetime, StrictModel
from code_search.schemas.blocks import Block, BlockCategory, BlockKind
from code_search.schemas.files import ChurnLevel

__all__ = [
    'BlockMatch',
    'PreviewRecommendation',
    'PreviewSummary',
    'SearchFilters',
    'SearchHit',
    'SearchResult',
]

type PreviewRecommendation = Literal['ok', 'narrow', 'too_broad']


class SearchFilters(StrictModel):
    """Metadata filters. Empty fields do not filter."""

    collection: str | None = None
    project_name: str | None = None
    categories: Sequence[BlockCategory] = ()
    authors: Sequence[str] = ()
    date_from: JsonDatetime | None = None  # Inclusive, compared with last commit date
    date_to: JsonDatetime | None = None  # Inclusive
    churn_levels: Sequence[ChurnLevel] = ()
    languages: Sequence[str] = ()

    def matches(self, block: Block) -> bool:
        """Check a stored block against every set filter."""
        if self.collection is not None and block.collection != self.collection:
            return False
        if self.project_name is not None and block.project_name != self.project_name:
            return False
        if self.categories and block.category not in self.categories:
            return False
        if self.authors and block.author not in self.authors:
            return False
        if self.churn_levels and block.churn_level not in self.churn_levels:
            return False
        if self.languages and block.language not in self.languages:
            return False
        if self.date_from is not None or self.date_to is not None:
            if block.last_commit_date is None:
                return False
            if self.date_from is not None and block.last_commit_date < self.date_from:
                return False
            if self.date_to is not None and block.last_commit_date > self.date_to:
                return False
        return True


class BlockMatch(StrictModel):
    """Raw storage hit: a block and the backend's similarity score."""

    block: Block
    score: float


class SearchHit(StrictModel):
    """One reranked search result."""

    name: str
    kind: BlockKind
    category: BlockCategory
    file_path: str
    start_line: int
    end_line: int
    content: str
    summary: str | None = None
    parent_name: str | None = None
    project_name: str
    collection: str
    token_count: int

    score: float  # Final score (rerank score when reranked)
    merged_score: float  # Score after vector/keyword merge, before rerank
    vector_score: float | None = None
    keyword_score: float | None = None

    author: str | None = None
    last_commit_date: JsonDatetime | None = None
    churn_level: ChurnLevel | None = None


class SearchResult(StrictModel):
    """Reranked results, truncated to the requested limit."""

    query: str
    hits: Sequence[SearchHit]
    total_candidates: int  # Merged and filtered candidates before truncation


class PreviewSummary(StrictModel):
    """Aggregate view of a search without reranking or reading content."""

    query: str
    candidate_count: int
    total_tokens: int  # Sum of stored token counts over candidates
    mean_score: float
    token_budget: int
    recommendation: PreviewRecommendation
    message: str
