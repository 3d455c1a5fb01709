"""Extractor interface and shared helpers.

An extractor turns one file's text into named, line-ranged blocks plus
file-level metadata (imports, exports, framework). Extractors never raise on
malformed input: a parse failure yields one whole-file fallback block and
sets `metadata.error`.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import PurePath
from typing import Protocol

from code_search.schemas.blocks import (
    BlockCategory,
    ExtractedBlock,
    ExtractionMetadata,
    ExtractionResult,
)

__all__ = [
    'Extractor',
    'fallback_result',
    'leading_comments',
    'slice_lines',
]


class Extractor(Protocol):
    """Parse file text into blocks. Implementations are stateless."""

    def extract(self, content: str, file_path: str) -> ExtractionResult: ...


def slice_lines(lines: Sequence[str], start_line: int, end_line: int) -> str:
    """Text of an inclusive 1-indexed line range."""
    return '\n'.join(lines[start_line - 1 : end_line])


def leading_comments(lines: Sequence[str], start_line: int, prefixes: Sequence[str]) -> str:
    """Contiguous comment lines directly above start_line, top to bottom."""
    collected: list[str] = []
    index = start_line - 2
    while index >= 0:
        stripped = lines[index].strip()
        if not stripped or not stripped.startswith(tuple(prefixes)):
            break
        collected.append(stripped)
        index -= 1
    return '\n'.join(reversed(collected))


def fallback_result(
    content: str,
    file_path: str,
    *,
    category: BlockCategory,
    error: str | None = None,
    name: str | None = None,
    metadata: ExtractionMetadata | None = None,
) -> ExtractionResult:
    """One block spanning the whole file. No blocks for blank files.

    File-level metadata (imports, exports, framework) is kept when given, so a
    module with no definitions still records its dependency edges.
    """
    if metadata is None:
        metadata = ExtractionMetadata(error=error)
    elif error is not None:
        metadata = metadata.model_copy(update={'error': error})
    if not content.strip():
        return ExtractionResult(blocks=[], metadata=metadata)

    block = ExtractedBlock(
        name=name or PurePath(file_path).name,
        kind='file',
        category=category,
        start_line=1,
        end_line=max(1, len(content.splitlines())),
        content=content,
    )
    return ExtractionResult(blocks=[block], metadata=metadata)
