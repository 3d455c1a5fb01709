"""In-process storage backends.

Used for ephemeral indexes (`storage.backend = 'memory'`) and as the storage
layer in tests. Semantics match the Qdrant/Redis backends: deterministic
block ids, IDF-weighted scores over the blocks' stored BM25 vectors
normalized to [0, 1), cosine similarity for vector search, and content-free
matches when content is not requested.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence, Set

import numpy as np

from code_search.repositories import keywords
from code_search.schemas.blocks import Block
from code_search.schemas.embeddings import SparseVector
from code_search.schemas.files import FileDependencies, FileRecord, ProjectRecord
from code_search.schemas.search import BlockMatch, SearchFilters

__all__ = [
    'InMemoryBlockStore',
    'InMemoryIndexStore',
]

logger = logging.getLogger(__name__)

# Field values of a block loaded without its text
CONTENT_FREE = {'content': '', 'comments': '', 'summary': None}


class InMemoryBlockStore:
    """Block storage in a dict, with brute-force vector and keyword search."""

    def __init__(self) -> None:
        self._blocks: dict[str, Block] = {}
        self.dimensions: int | None = None
        self.write_count = 0  # Upserts and deletes that changed stored data

    async def ensure_schema(self, dimensions: int) -> None:
        if self.dimensions is not None and self.dimensions != dimensions:
            raise ValueError(f'Block store holds {self.dimensions}-dim vectors, got {dimensions}')
        self.dimensions = dimensions

    async def upsert_blocks(self, blocks: Sequence[Block]) -> int:
        for block in blocks:
            self._blocks[block.block_id] = block
        if blocks:
            self.write_count += 1
        return len(blocks)

    async def delete_by_file(self, file_path: str, *, keep_ids: Set[str] = frozenset()) -> None:
        stale = [bid for bid, b in self._blocks.items() if b.file_path == file_path and bid not in keep_ids]
        self._remove(stale)

    async def delete_by_project(self, collection: str, project_name: str) -> None:
        stale = [
            bid for bid, b in self._blocks.items() if b.collection == collection and b.project_name == project_name
        ]
        self._remove(stale)

    async def vector_search(
        self,
        vector: Sequence[float],
        filters: SearchFilters,
        k: int,
        *,
        with_content: bool = True,
    ) -> Sequence[BlockMatch]:
        candidates = [b for b in self._blocks.values() if b.vector and filters.matches(b)]
        if not candidates:
            return []

        query = np.asarray(vector, dtype=np.float32)
        matrix = np.asarray([b.vector for b in candidates], dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.divide(matrix @ query, norms, out=np.zeros(len(candidates), dtype=np.float32), where=norms > 0)

        matches = [BlockMatch(block=b, score=float(s)) for b, s in zip(candidates, scores)]
        return _top_k(matches, k, with_content=with_content)

    async def keyword_search(
        self,
        query: SparseVector,
        filters: SearchFilters,
        k: int,
        *,
        with_content: bool = True,
    ) -> Sequence[BlockMatch]:
        documents = {
            bid: (b.sparse_indices, b.sparse_values) for bid, b in self._blocks.items() if filters.matches(b)
        }
        scores = keywords.score_documents(query, documents)
        matches = [BlockMatch(block=self._blocks[bid], score=score) for bid, score in scores.items()]
        return _top_k(matches, k, with_content=with_content)

    async def count(self, filters: SearchFilters | None = None) -> int:
        if filters is None:
            return len(self._blocks)
        return sum(1 for b in self._blocks.values() if filters.matches(b))

    async def compact(self) -> None:
        """Nothing to reclaim in memory."""

    async def blocks_for_file(self, file_path: str) -> Sequence[Block]:
        blocks = (b for b in self._blocks.values() if b.file_path == file_path)
        return sorted(blocks, key=lambda b: (b.start_line, b.end_line))

    def _remove(self, block_ids: Sequence[str]) -> None:
        for bid in block_ids:
            del self._blocks[bid]
        if block_ids:
            self.write_count += 1


class InMemoryIndexStore:
    """File records, dependency edges and projects in dicts."""

    def __init__(self) -> None:
        self._records: dict[str, FileRecord] = {}
        self._dependencies: dict[str, FileDependencies] = {}
        self._projects: dict[tuple[str, str], ProjectRecord] = {}
        self.write_count = 0  # Puts and deletes that changed stored data

    async def get_record(self, file_path: str) -> FileRecord | None:
        return self._records.get(file_path)

    async def get_project_records(self, collection: str, project_name: str) -> Mapping[str, FileRecord]:
        return {
            path: record
            for path, record in self._records.items()
            if record.collection == collection and record.project_name == project_name
        }

    async def put_record(self, record: FileRecord) -> None:
        self._records[record.file_path] = record
        self.write_count += 1

    async def delete_record(self, file_path: str) -> None:
        if self._records.pop(file_path, None) is not None:
            self.write_count += 1

    async def put_dependencies(self, dependencies: FileDependencies) -> None:
        self._dependencies[dependencies.file_path] = dependencies
        self.write_count += 1

    async def get_dependencies(self, file_path: str) -> FileDependencies | None:
        return self._dependencies.get(file_path)

    async def delete_dependencies(self, file_path: str) -> None:
        if self._dependencies.pop(file_path, None) is not None:
            self.write_count += 1

    async def all_dependencies(
        self, collection: str | None = None, project_name: str | None = None
    ) -> Sequence[FileDependencies]:
        return [
            deps
            for deps in self._dependencies.values()
            if (collection is None or deps.collection == collection)
            and (project_name is None or deps.project_name == project_name)
        ]

    async def put_project(self, project: ProjectRecord) -> None:
        self._projects[(project.collection, project.project_name)] = project
        self.write_count += 1

    async def get_project(self, collection: str, project_name: str) -> ProjectRecord | None:
        return self._projects.get((collection, project_name))

    async def list_projects(self) -> Sequence[ProjectRecord]:
        return sorted(self._projects.values(), key=lambda p: (p.collection, p.project_name))

    async def delete_project(self, collection: str, project_name: str) -> int:
        paths = list(await self.get_project_records(collection, project_name))
        for path in paths:
            del self._records[path]
        for path, deps in list(self._dependencies.items()):
            if deps.collection == collection and deps.project_name == project_name:
                del self._dependencies[path]
        if self._projects.pop((collection, project_name), None) is not None or paths:
            self.write_count += 1
        return len(paths)


def _top_k(matches: Sequence[BlockMatch], k: int, *, with_content: bool) -> Sequence[BlockMatch]:
    ordered = sorted(matches, key=lambda m: (-m.score, m.block.file_path, m.block.start_line))[:k]
    if with_content:
        return ordered
    return [BlockMatch(block=m.block.model_copy(update=CONTENT_FREE), score=m.score) for m in ordered]
