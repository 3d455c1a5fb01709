"""Hierarchical chunking - flattens extractor output into indexable blocks.

Blocks longer than the split threshold are replaced by line-range sub-chunks
that keep a link to their parent. Sub-chunk ranges are disjoint and
contiguous, and together cover the parent range exactly.

Boundary policy with threshold T for a block spanning [start, end]:
    sub-chunk i covers [start + i*T, min(start + (i+1)*T - 1, end)]
A block of exactly T lines is not split. Lines 1-120 with T=50 become
[1-50], [51-100], [101-120].
"""

from __future__ import annotations

import hashlib
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from code_search.schemas.blocks import ExtractedBlock, ExtractionResult

__all__ = [
    'ChunkedFile',
    'HierarchicalChunker',
    'block_id_for',
    'count_tokens',
]

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_THRESHOLD = 50

# Rough characters-per-token ratio used for budget estimates
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class ChunkedFile:
    """Chunker output for one file."""

    blocks: Sequence[ExtractedBlock]  # Blocks to store, in extraction order
    parents: Sequence[ExtractedBlock]  # Split originals, not stored but summarized for context


class HierarchicalChunker:
    """Splits oversized blocks into parent-linked line-range sub-chunks."""

    def __init__(self, split_threshold: int = DEFAULT_SPLIT_THRESHOLD) -> None:
        if split_threshold < 1:
            raise ValueError(f'split_threshold must be >= 1, got {split_threshold}')
        self._threshold = split_threshold

    @property
    def split_threshold(self) -> int:
        return self._threshold

    def chunk(self, extraction: ExtractionResult, file_path: str) -> ChunkedFile:
        blocks: list[ExtractedBlock] = []
        parents: list[ExtractedBlock] = []

        for block in extraction.blocks:
            if block.line_count <= self._threshold:
                blocks.append(block)
                continue

            sub_chunks = self.split(block)
            if sub_chunks:
                parents.append(block)
                blocks.extend(sub_chunks)

        if parents:
            logger.debug(
                f'[CHUNK] {file_path}: split {len(parents)} blocks, {len(blocks)} blocks total '
                f'(threshold={self._threshold})'
            )
        return ChunkedFile(blocks=blocks, parents=parents)

    def split(self, block: ExtractedBlock) -> Sequence[ExtractedBlock]:
        """Line-range sub-chunks of one block.

        A whitespace-only range is merged into the preceding sub-chunk (or the
        following one, at the start) so coverage stays gap-free.
        """
        lines = block.content.split('\n')
        count = math.ceil(block.line_count / self._threshold)

        # (start_line, end_line) of kept ranges
        ranges: list[tuple[int, int]] = []
        pending_start: int | None = None
        for i in range(count):
            start = block.start_line + i * self._threshold
            end = min(block.start_line + (i + 1) * self._threshold - 1, block.end_line)
            if pending_start is not None:
                start = pending_start
            if not _slice(lines, block.start_line, start, end).strip():
                if ranges:
                    ranges[-1] = (ranges[-1][0], end)
                else:
                    pending_start = start
                continue
            ranges.append((start, end))
            pending_start = None

        if pending_start is not None and ranges:
            ranges[-1] = (ranges[-1][0], block.end_line)

        return [
            ExtractedBlock(
                name=f'{block.name} (Chunk {number})',
                kind='chunk',
                category=block.category,
                start_line=start,
                end_line=end,
                content=_slice(lines, block.start_line, start, end),
                comments=block.comments,
                parent_name=block.name,
            )
            for number, (start, end) in enumerate(ranges, start=1)
        ]


def count_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def block_id_for(file_path: str, start_line: int, end_line: int, name: str) -> str:
    """Deterministic UUID from block provenance.

    Same file + line range + name = same id, so re-indexing unchanged blocks
    overwrites rather than duplicates.
    """
    key = f'{file_path}|{start_line}|{end_line}|{name}'
    return str(UUID(bytes=hashlib.sha256(key.encode()).digest()[:16]))


def _slice(lines: Sequence[str], block_start: int, start: int, end: int) -> str:
    return '\n'.join(lines[start - block_start : end - block_start + 1])
