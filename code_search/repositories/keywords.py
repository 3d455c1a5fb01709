"""Keyword text and sparse-vector scoring helpers for full-text block search.

The BM25 model tokenizes on word characters, so `parseConfig` and
`parse_config` would each be a single term. Keyword text is expanded with the
snake_case and camelCase parts of compound identifiers so a query for
"parse config" matches both. The same expansion is applied to queries.

Qdrant applies IDF to stored sparse vectors (Modifier.IDF); the in-memory
store does the same with `score_documents`.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterator, Mapping, Sequence

from code_search.schemas.blocks import ExtractedBlock
from code_search.schemas.embeddings import SparseVector

__all__ = [
    'expand_identifiers',
    'identifier_parts',
    'idf',
    'keyword_text',
    'normalize_score',
    'score_documents',
]

# Raw score at which the normalized score reaches 0.5
SCORE_HALF_POINT = 2.0

_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])')


def _split_identifier(word: str) -> Iterator[str]:
    for part in word.split('_'):
        yield from _CAMEL_BOUNDARY.split(part)


def identifier_parts(text: str) -> Sequence[str]:
    """Lowercased parts of every compound identifier in text, in order."""
    parts: list[str] = []
    for match in _IDENTIFIER.finditer(text):
        pieces = [p.lower() for p in _split_identifier(match.group()) if len(p) >= 2]
        if len(pieces) > 1:
            parts.extend(pieces)
    return parts


def expand_identifiers(text: str) -> str:
    """Text followed by the parts of its compound identifiers."""
    parts = identifier_parts(text)
    return f'{text}\n{" ".join(parts)}' if parts else text


def keyword_text(block: ExtractedBlock, file_path: str, summary: str | None) -> str:
    """Text indexed for keyword search: name, file name, content, comments, summary."""
    parts = [block.name, file_path.rsplit('/', 1)[-1], block.content]
    if block.comments:
        parts.append(block.comments)
    if summary:
        parts.append(summary)
    return expand_identifiers('\n'.join(parts))


def idf(document_count: int, containing: int) -> float:
    """BM25 inverse document frequency, same formula Qdrant applies for Modifier.IDF."""
    return math.log(1 + (document_count - containing + 0.5) / (containing + 0.5))


def normalize_score(raw: float) -> float:
    """Map an unbounded relevance score onto [0, 1)."""
    if raw <= 0:
        return 0.0
    return raw / (raw + SCORE_HALF_POINT)


def score_documents(query: SparseVector, documents: Mapping[str, SparseVector]) -> Mapping[str, float]:
    """Score in-process sparse documents against a sparse query, IDF over the given documents.

    Returns:
        Normalized scores of documents sharing at least one query term.
    """
    q_indices, q_values = query
    if not q_indices or not documents:
        return {}

    doc_weights = {doc_id: dict(zip(indices, values)) for doc_id, (indices, values) in documents.items()}
    total = len(doc_weights)
    scores: dict[str, float] = {}
    for term, query_weight in zip(q_indices, q_values):
        containing = [doc_id for doc_id, weights in doc_weights.items() if term in weights]
        if not containing:
            continue
        term_idf = idf(total, len(containing))
        for doc_id in containing:
            scores[doc_id] = scores.get(doc_id, 0.0) + query_weight * term_idf * doc_weights[doc_id][term]
    return {doc_id: normalize_score(raw) for doc_id, raw in scores.items() if raw > 0}
