"""Storage interfaces consumed by the indexing and search services.

Field names are snake_case throughout; backends must not rely on mixed-case
column names.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence, Set
from typing import Protocol

from code_search.schemas.blocks import Block
from code_search.schemas.embeddings import SparseVector
from code_search.schemas.files import FileDependencies, FileRecord, ProjectRecord
from code_search.schemas.search import BlockMatch, SearchFilters

__all__ = [
    'BlockStore',
    'IndexStore',
]


class BlockStore(Protocol):
    """Vector + keyword searchable block storage."""

    async def ensure_schema(self, dimensions: int) -> None:
        """Create or migrate the block table for vectors of the given size."""
        ...

    async def upsert_blocks(self, blocks: Sequence[Block]) -> int:
        """Insert or replace blocks by block_id. Returns number written."""
        ...

    async def delete_by_file(self, file_path: str, *, keep_ids: Set[str] = frozenset()) -> None:
        """Delete a file's blocks, except those whose id is in keep_ids."""
        ...

    async def delete_by_project(self, collection: str, project_name: str) -> None: ...

    async def vector_search(
        self,
        vector: Sequence[float],
        filters: SearchFilters,
        k: int,
        *,
        with_content: bool = True,
    ) -> Sequence[BlockMatch]:
        """Top-k blocks by vector similarity, best first.

        Without content, matched blocks carry empty content, comments and summary
        and the backend skips loading them.
        """
        ...

    async def keyword_search(
        self,
        query: SparseVector,
        filters: SearchFilters,
        k: int,
        *,
        with_content: bool = True,
    ) -> Sequence[BlockMatch]:
        """Top-k blocks by BM25 relevance to a sparse query, best first. Scores are in [0, 1)."""
        ...

    async def blocks_for_file(self, file_path: str) -> Sequence[Block]:
        """Stored blocks of one file ordered by start line. Vectors may be omitted."""
        ...

    async def count(self, filters: SearchFilters | None = None) -> int: ...

    async def compact(self) -> None:
        """Reclaim space left by deleted blocks."""
        ...


class IndexStore(Protocol):
    """File records, dependency edges and project records."""

    # --- File records ---

    async def get_record(self, file_path: str) -> FileRecord | None: ...

    async def get_project_records(self, collection: str, project_name: str) -> Mapping[str, FileRecord]:
        """All file records of a project keyed by path."""
        ...

    async def put_record(self, record: FileRecord) -> None: ...

    async def delete_record(self, file_path: str) -> None: ...

    # --- Dependency edges ---

    async def put_dependencies(self, dependencies: FileDependencies) -> None:
        """Replace all dependency facts for a file."""
        ...

    async def get_dependencies(self, file_path: str) -> FileDependencies | None: ...

    async def delete_dependencies(self, file_path: str) -> None: ...

    async def all_dependencies(
        self, collection: str | None = None, project_name: str | None = None
    ) -> Sequence[FileDependencies]: ...

    # --- Projects ---

    async def put_project(self, project: ProjectRecord) -> None: ...

    async def get_project(self, collection: str, project_name: str) -> ProjectRecord | None: ...

    async def list_projects(self) -> Sequence[ProjectRecord]: ...

    async def delete_project(self, collection: str, project_name: str) -> int:
        """Delete project record plus its file records and edges. Returns files removed."""
        ...
