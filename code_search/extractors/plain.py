"""Whole-file extraction for languages without a dedicated extractor."""

from __future__ import annotations

from code_search.extractors.base import fallback_result
from code_search.schemas.blocks import BlockCategory, ExtractionResult

__all__ = [
    'PlainTextExtractor',
]


class PlainTextExtractor:
    """One block per file. Oversized files are line-split by the chunker."""

    def __init__(self, category: BlockCategory = 'code') -> None:
        self._category = category

    def extract(self, content: str, file_path: str) -> ExtractionResult:
        return fallback_result(content, file_path, category=self._category)
