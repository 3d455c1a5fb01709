"""Extractor registry keyed by file extension.

The registry is built once at startup; lookups never import or construct
extractors per call.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import PurePath

from code_search.extractors.base import Extractor
from code_search.extractors.javascript import JavaScriptExtractor
from code_search.extractors.markdown import MarkdownExtractor
from code_search.extractors.plain import PlainTextExtractor
from code_search.extractors.python import PythonExtractor

__all__ = [
    'Extractor',
    'ExtractorRegistry',
    'JavaScriptExtractor',
    'MarkdownExtractor',
    'PlainTextExtractor',
    'PythonExtractor',
    'RegisteredExtractor',
    'default_registry',
]


@dataclass(frozen=True)
class RegisteredExtractor:
    """Extractor plus the language name recorded on its blocks."""

    extractor: Extractor
    language: str


class ExtractorRegistry:
    """Resolves the extractor for a path by its lowercased suffix."""

    def __init__(self, entries: Mapping[str, RegisteredExtractor]) -> None:
        self._entries = {ext.lower(): entry for ext, entry in entries.items()}

    @property
    def extensions(self) -> frozenset[str]:
        return frozenset(self._entries)

    def supports(self, path: str) -> bool:
        return PurePath(path).suffix.lower() in self._entries

    def resolve(self, path: str) -> RegisteredExtractor | None:
        return self._entries.get(PurePath(path).suffix.lower())


def default_registry() -> ExtractorRegistry:
    """Registry covering every language the indexer understands."""
    python = RegisteredExtractor(PythonExtractor(), 'python')
    javascript = RegisteredExtractor(JavaScriptExtractor('javascript'), 'javascript')
    typescript = RegisteredExtractor(JavaScriptExtractor('typescript'), 'typescript')
    tsx = RegisteredExtractor(JavaScriptExtractor('tsx'), 'typescript')
    markdown = RegisteredExtractor(MarkdownExtractor(), 'markdown')

    entries: dict[str, RegisteredExtractor] = {
        '.py': python,
        '.pyi': python,
        '.js': javascript,
        '.jsx': javascript,
        '.mjs': javascript,
        '.cjs': javascript,
        '.ts': typescript,
        '.tsx': tsx,
        '.mts': typescript,
        '.cts': typescript,
        '.md': markdown,
        '.markdown': markdown,
        '.mdx': markdown,
    }

    # Whole-file blocks for the remaining languages
    plain_code = PlainTextExtractor('code')
    plain_docs = PlainTextExtractor('documentation')
    for extension, language in {
        '.go': 'go',
        '.java': 'java',
        '.kt': 'kotlin',
        '.dart': 'dart',
        '.rs': 'rust',
        '.rb': 'ruby',
        '.sh': 'shell',
        '.sql': 'sql',
    }.items():
        entries[extension] = RegisteredExtractor(plain_code, language)
    for extension, language in {
        '.json': 'json',
        '.toml': 'toml',
        '.yaml': 'yaml',
        '.yml': 'yaml',
        '.xml': 'xml',
        '.txt': 'text',
        '.rst': 'rst',
    }.items():
        entries[extension] = RegisteredExtractor(plain_docs, language)

    return ExtractorRegistry(entries)
