"""Block schemas: extractor output and stored, indexable units."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

import pydantic

from code_search.schemas.base import JsonDatetime, StrictModel
from code_search.schemas.files import ChurnLevel

__all__ = [
    'Block',
    'BlockCategory',
    'BlockKey',
    'BlockKind',
    'ExtractedBlock',
    'ExtractionMetadata',
    'ExtractionResult',
    'ImportRecord',
]

type BlockCategory = Literal['code', 'documentation']

type BlockKind = Literal[
    'function',
    'class',
    'method',
    'interface',
    'type',
    'variable',
    'section',
    'template',
    'file',
    'chunk',
]

# Block identity used for merge and dedup: (file_path, start_line, end_line)
type BlockKey = tuple[str, int, int]


class ExtractedBlock(StrictModel):
    """One named, line-ranged unit returned by an extractor."""

    name: str
    kind: BlockKind
    category: BlockCategory
    start_line: int  # 1-indexed, inclusive
    end_line: int  # 1-indexed, inclusive
    content: str
    comments: str = ''
    parent_name: str | None = None  # Set only for sub-chunks

    @pydantic.model_validator(mode='after')
    def _check_range(self) -> ExtractedBlock:
        if self.start_line < 1 or self.end_line < self.start_line:
            raise ValueError(f'Invalid line range {self.start_line}-{self.end_line} for {self.name!r}')
        return self

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


class ImportRecord(StrictModel):
    """One import statement: module source and the symbols it binds."""

    source: str
    symbols: Sequence[str] = ()


class ExtractionMetadata(StrictModel):
    """File-level facts gathered alongside blocks."""

    imports: Sequence[ImportRecord] = ()
    exports: Sequence[str] = ()
    framework: str | None = None
    error: str | None = None  # Set when the extractor fell back to a whole-file block


class ExtractionResult(StrictModel):
    """Extractor output for one file."""

    blocks: Sequence[ExtractedBlock]
    metadata: ExtractionMetadata = pydantic.Field(default_factory=ExtractionMetadata)


class Block(StrictModel):
    """A stored block: extracted unit plus enrichment, vector and search metadata."""

    block_id: str  # Deterministic UUID string
    name: str
    kind: BlockKind
    category: BlockCategory
    file_path: str  # Absolute path
    start_line: int
    end_line: int
    content: str
    comments: str = ''
    summary: str | None = None
    parent_name: str | None = None
    token_count: int
    vector: Sequence[float] = ()
    # BM25 term weights for keyword search, indexed by the sparse model's term ids
    sparse_indices: Sequence[int] = ()
    sparse_values: Sequence[float] = ()

    # Search metadata (denormalized for filtering)
    collection: str
    project_name: str
    language: str
    author: str | None = None
    last_commit_date: JsonDatetime | None = None
    churn_level: ChurnLevel | None = None

    @property
    def key(self) -> BlockKey:
        return (self.file_path, self.start_line, self.end_line)