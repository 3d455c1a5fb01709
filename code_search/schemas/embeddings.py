"""Embedding request types shared by clients and services."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

__all__ = [
    'SparseVector',
    'TaskIntent',
]

# 'document' for indexing, 'query' for search. Providers translate to their own task types.
type TaskIntent = Literal['document', 'query']

# (term indices, term weights) from the BM25 sparse model
type SparseVector = tuple[Sequence[int], Sequence[float]]
