"""Dependency index queries - imports of a file, importers of a symbol, project graph.

Edges are stored as written in the source (`./utils`, `..models`,
`code_search.schemas`). Resolution to project files happens at query time
against the set of indexed files, so the graph never holds dangling paths.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping, Sequence
from pathlib import PurePosixPath

from code_search.repositories.protocols import IndexStore
from code_search.schemas.files import DependencyEdge, DependencyGraph, GraphEdge

__all__ = [
    'DependencyService',
    'ModuleResolver',
]

logger = logging.getLogger(__name__)

# Tried in order when an import names a path without its extension
RESOLVE_SUFFIXES = ('.py', '.pyi', '.ts', '.tsx', '.mts', '.cts', '.js', '.jsx', '.mjs', '.cjs', '.md')
PACKAGE_ENTRY_STEMS = ('__init__', 'index')

_DOTTED_MODULE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$')
_PYTHON_SUFFIXES = ('.py', '.pyi')


class DependencyService:
    """Read-side queries over stored dependency edges."""

    def __init__(self, index_store: IndexStore) -> None:
        self._index_store = index_store

    async def dependencies_of(self, file_path: str) -> Sequence[DependencyEdge]:
        """Imports of one file, in source order. Empty for unknown files."""
        dependencies = await self._index_store.get_dependencies(file_path)
        return list(dependencies.imports) if dependencies is not None else []

    async def exports_of(self, file_path: str) -> Sequence[str]:
        dependencies = await self._index_store.get_dependencies(file_path)
        return list(dependencies.exports) if dependencies is not None else []

    async def usages_of(
        self,
        symbol: str,
        *,
        collection: str | None = None,
        project_name: str | None = None,
    ) -> Sequence[str]:
        """Files importing a symbol by name, or a module whose last segment is the symbol.

        Returns:
            Sorted, de-duplicated file paths.
        """
        usages = {
            deps.file_path
            for deps in await self._index_store.all_dependencies(collection, project_name)
            if any(_imports_symbol(edge, symbol) for edge in deps.imports)
        }
        logger.debug(f'[DEPS] {symbol!r} used by {len(usages)} files')
        return sorted(usages)

    async def dependency_graph(self, collection: str, project_name: str) -> DependencyGraph:
        """File-to-file import graph of a project. Unresolvable imports are listed as external."""
        all_deps = await self._index_store.all_dependencies(collection, project_name)
        resolver = ModuleResolver(deps.file_path for deps in all_deps)

        edges: list[GraphEdge] = []
        external: set[str] = set()
        for deps in sorted(all_deps, key=lambda d: d.file_path):
            for edge in deps.imports:
                target = resolver.resolve(edge.imported_module, deps.file_path)
                if target is None:
                    external.add(edge.imported_module)
                elif target != deps.file_path:
                    edges.append(GraphEdge(source=deps.file_path, target=target, symbols=list(edge.imported_symbols)))

        return DependencyGraph(
            collection=collection,
            project_name=project_name,
            nodes=sorted(resolver.files),
            edges=edges,
            external=sorted(external),
        )


class ModuleResolver:
    """Maps import sources to files of one project."""

    def __init__(self, files: Iterable[str]) -> None:
        self.files = frozenset(files)
        # Extension-less path -> file; package entry files also register their directory
        self._by_stem: Mapping[str, str] = _stem_index(self.files)

    def resolve(self, source: str, from_file: str) -> str | None:
        base = PurePosixPath(from_file).parent

        # Path as written: './utils.js', 'docs/setup.md', '../lib'
        if not source.startswith('.') or source.startswith(('./', '../')):
            if (found := self._lookup_path(_join(base, source))) is not None:
                return found

        # Python relative: '.', '.models', '..pkg.mod'
        if source.startswith('.') and not source.startswith(('./', '../')):
            level = len(source) - len(source.lstrip('.'))
            package = base
            for _ in range(level - 1):
                package = package.parent
            module = source[level:]
            target = package / module.replace('.', '/') if module else package
            return self._lookup_path(str(target))

        # Python absolute: 'pkg.mod' anywhere in the project, nearest to the importer first
        if from_file.endswith(_PYTHON_SUFFIXES) and _DOTTED_MODULE.match(source):
            return self._lookup_dotted(source, from_file)
        return None

    def _lookup_path(self, candidate: str) -> str | None:
        if candidate in self.files:
            return candidate
        return self._by_stem.get(candidate)

    def _lookup_dotted(self, module: str, from_file: str) -> str | None:
        tail = '/' + module.replace('.', '/')
        matches = [path for stem, path in self._by_stem.items() if stem.endswith(tail)]
        if not matches:
            return None
        importer_dir = str(PurePosixPath(from_file).parent)
        return min(matches, key=lambda path: (-len(os.path.commonpath([importer_dir, path])), path))


def _imports_symbol(edge: DependencyEdge, symbol: str) -> bool:
    source = edge.imported_module
    return (
        symbol in edge.imported_symbols
        or source == symbol
        or source.endswith(f'.{symbol}')
        or source.endswith(f'/{symbol}')
    )


def _stem_index(files: frozenset[str]) -> Mapping[str, str]:
    index: dict[str, str] = {}
    for path in sorted(files):
        pure = PurePosixPath(path)
        if pure.suffix not in RESOLVE_SUFFIXES:
            continue
        stem_path = str(pure.with_suffix(''))
        index.setdefault(stem_path, path)
        if pure.stem in PACKAGE_ENTRY_STEMS:
            index.setdefault(str(pure.parent), path)
    return index


def _join(base: PurePosixPath, source: str) -> str:
    return os.path.normpath(str(base / source))
