"""Markdown extraction: one block per heading section.

A section runs from its heading line to the line before the next heading of
any level. Text before the first heading becomes a block named after the
file. Headings inside fenced code blocks are ignored.
"""

from __future__ import annotations

import re
from pathlib import PurePath

from code_search.extractors.base import fallback_result, slice_lines
from code_search.schemas.blocks import ExtractedBlock, ExtractionMetadata, ExtractionResult, ImportRecord

__all__ = [
    'MarkdownExtractor',
]

_ATX_HEADING = re.compile(r'^ {0,3}#{1,6}\s+(?P<title>.+?)\s*#*\s*$')
_FENCE = re.compile(r'^ {0,3}(```|~~~)')
_LINK_TARGET = re.compile(r'\]\((?P<target>[^)\s#]+)(?:#[^)]*)?\)')


class MarkdownExtractor:
    """Heading-split documentation blocks named "Doc: {heading}"."""

    def extract(self, content: str, file_path: str) -> ExtractionResult:
        lines = content.splitlines()
        headings = _headings(lines)
        file_name = PurePath(file_path).name
        # Relative links are the documentation equivalent of imports
        links = sorted({m.group('target') for m in _LINK_TARGET.finditer(content) if _is_relative(m.group('target'))})
        metadata = ExtractionMetadata(imports=[ImportRecord(source=link) for link in links])

        if not headings:
            return fallback_result(
                content, file_path, category='documentation', name=f'Doc: {file_name}', metadata=metadata
            )

        # (line, title) boundaries, with the preamble under the file name
        boundaries = list(headings)
        if headings[0][0] > 1 and slice_lines(lines, 1, headings[0][0] - 1).strip():
            boundaries.insert(0, (1, file_name))

        blocks: list[ExtractedBlock] = []
        for index, (start_line, title) in enumerate(boundaries):
            end_line = boundaries[index + 1][0] - 1 if index + 1 < len(boundaries) else len(lines)
            blocks.append(
                ExtractedBlock(
                    name=f'Doc: {title}',
                    kind='section',
                    category='documentation',
                    start_line=start_line,
                    end_line=end_line,
                    content=slice_lines(lines, start_line, end_line),
                )
            )

        return ExtractionResult(blocks=blocks, metadata=metadata)


def _headings(lines: list[str]) -> list[tuple[int, str]]:
    headings: list[tuple[int, str]] = []
    in_fence = False
    for number, line in enumerate(lines, start=1):
        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        if match := _ATX_HEADING.match(line):
            headings.append((number, match.group('title')))
    return headings


def _is_relative(target: str) -> bool:
    return '://' not in target and not target.startswith('mailto:')

