"""File-level schemas: index records, git metadata, dependency edges.

FileRecord drives incremental indexing: its fingerprint is compared with the
current content hash to decide whether a file is reprocessed.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from code_search.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'ChangeSet',
    'ChurnLevel',
    'DependencyEdge',
    'DependencyGraph',
    'FileDependencies',
    'FileRecord',
    'GitMetadata',
    'GraphEdge',
    'ProjectRecord',
    'churn_level_for',
]

type ChurnLevel = Literal['low', 'medium', 'high']

# Commit-count upper bounds (inclusive) over the rolling window
LOW_CHURN_MAX_COMMITS = 3
MEDIUM_CHURN_MAX_COMMITS = 10


def churn_level_for(commit_count: int) -> ChurnLevel:
    """Classify commit frequency: low <= 3, medium <= 10, high above."""
    if commit_count <= LOW_CHURN_MAX_COMMITS:
        return 'low'
    if commit_count <= MEDIUM_CHURN_MAX_COMMITS:
        return 'medium'
    return 'high'


class GitMetadata(StrictModel):
    """Last-commit facts for a file. Best-effort, absent outside git repos."""

    author: str
    email: str
    date: JsonDatetime
    commit_hash: str
    message: str
    commit_count: int  # Commits touching the file in the rolling window
    churn_level: ChurnLevel


class FileRecord(StrictModel):
    """Persistent state of one indexed file.

    The fingerprint always matches the last successfully stored content.
    """

    file_path: str  # Absolute path
    collection: str
    project_name: str
    fingerprint: str  # SHA256 of raw bytes
    file_size: int  # Bytes, for quick change detection
    block_count: int
    indexed_at: JsonDatetime
    git: GitMetadata | None = None


class ProjectRecord(StrictModel):
    """Grouping key for blocks, created on first successful index."""

    collection: str
    project_name: str
    root_path: str
    indexed_at: JsonDatetime
    file_count: int = 0


class DependencyEdge(StrictModel):
    """One import from a source file."""

    source_file: str
    imported_module: str
    imported_symbols: Sequence[str] = ()


class FileDependencies(StrictModel):
    """All dependency facts for one file, replaced wholesale on reindex."""

    file_path: str
    collection: str
    project_name: str
    imports: Sequence[DependencyEdge] = ()
    exports: Sequence[str] = ()


class ChangeSet(StrictModel):
    """Classification of a project's files against stored records."""

    to_process: Sequence[str]  # New or fingerprint mismatch
    unchanged: Sequence[str]  # Fingerprint matches
    to_delete: Sequence[str]  # Stored but missing on disk or now ignored
    ignored_count: int = 0

    @property
    def total(self) -> int:
        """Files present on disk (processed + unchanged)."""
        return len(self.to_process) + len(self.unchanged)


class GraphEdge(StrictModel):
    """Resolved import between two files of the same project."""

    source: str  # Importing file
    target: str  # Imported file
    symbols: Sequence[str] = ()


class DependencyGraph(StrictModel):
    """File-level import graph of one project."""

    collection: str
    project_name: str
    nodes: Sequence[str]  # Every indexed file, sorted
    edges: Sequence[GraphEdge]
    external: Sequence[str] = ()  # Imported modules that resolve to no project file
