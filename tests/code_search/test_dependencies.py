"""Tests for dependency queries and import resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from code_search.repositories.memory import InMemoryIndexStore
from code_search.services.dependencies import DependencyService, ModuleResolver
from code_search.services.indexing import IndexingService
from tests.code_search.fakes import write_tree


@pytest.fixture
def dependency_service(index_store: InMemoryIndexStore) -> DependencyService:
    return DependencyService(index_store)


class TestDependencyService:
    """Verify queries over the indexed sample project."""

    async def test_dependencies_of(self, indexed_project: Path, dependency_service: DependencyService) -> None:
        edges = await dependency_service.dependencies_of(str(indexed_project / 'pkg' / 'service.py'))
        assert [(e.imported_module, list(e.imported_symbols)) for e in edges] == [
            ('os', []),
            ('.models', ['User', 'make_user']),
        ]

    async def test_unknown_file(self, indexed_project: Path, dependency_service: DependencyService) -> None:
        assert await dependency_service.dependencies_of('/nowhere/file.py') == []
        assert await dependency_service.exports_of('/nowhere/file.py') == []

    async def test_exports_of(self, indexed_project: Path, dependency_service: DependencyService) -> None:
        assert list(await dependency_service.exports_of(str(indexed_project / 'web' / 'client.js'))) == ['fetchUser']

    @pytest.mark.parametrize(
        'symbol, expected',
        [
            ('User', ['pkg/service.py']),
            ('fetchUser', ['web/api.js']),
            ('models', ['pkg/service.py']),
            ('renderCard', []),
        ],
        ids=['python-symbol', 'js-symbol', 'module-name', 'not-imported'],
    )
    async def test_usages_of(
        self,
        indexed_project: Path,
        dependency_service: DependencyService,
        symbol: str,
        expected: list[str],
    ) -> None:
        usages = await dependency_service.usages_of(symbol, collection='test', project_name='sample')
        assert [Path(p).relative_to(indexed_project).as_posix() for p in usages] == expected

    async def test_usages_scoped_to_project(self, indexed_project: Path, dependency_service: DependencyService) -> None:
        assert await dependency_service.usages_of('User', collection='test', project_name='other') == []

    async def test_dependency_graph(self, indexed_project: Path, dependency_service: DependencyService) -> None:
        graph = await dependency_service.dependency_graph('test', 'sample')

        def relative(path: str) -> str:
            return Path(path).relative_to(indexed_project).as_posix()

        assert [relative(node) for node in graph.nodes] == [
            'README.md',
            'docs/setup.md',
            'pkg/__init__.py',
            'pkg/models.py',
            'pkg/service.py',
            'web/api.js',
            'web/client.js',
        ]
        assert [(relative(e.source), relative(e.target), list(e.symbols)) for e in graph.edges] == [
            ('README.md', 'docs/setup.md', []),
            ('pkg/service.py', 'pkg/models.py', ['User', 'make_user']),
            ('web/api.js', 'web/client.js', ['fetchUser']),
        ]
        assert list(graph.external) == ['os']

    async def test_deleting_imported_file_removes_the_edge(
        self,
        tmp_path: Path,
        indexing_service: IndexingService,
        dependency_service: DependencyService,
    ) -> None:
        root = tmp_path.resolve() / 'three'
        write_tree(
            root,
            {
                'a.py': 'def helper():\n    return 1\n',
                'b.py': 'from a import helper\n\n\ndef use():\n    return helper()\n',
                'c.py': 'def other():\n    return 2\n',
            },
        )
        importer = str(root / 'b.py')

        await indexing_service.start_index(root, 'three', 'test')
        await indexing_service.wait()
        edges = await dependency_service.dependencies_of(importer)
        assert [(e.imported_module, list(e.imported_symbols)) for e in edges] == [('a', ['helper'])]
        graph = await dependency_service.dependency_graph('test', 'three')
        assert [(Path(e.source).name, Path(e.target).name) for e in graph.edges] == [('b.py', 'a.py')]

        (root / 'a.py').unlink()
        await indexing_service.reset()
        await indexing_service.start_index(root, 'three', 'test')
        job = await indexing_service.wait()

        assert job.status == 'completed'
        assert await dependency_service.dependencies_of(importer) == []
        graph = await dependency_service.dependency_graph('test', 'three')
        assert list(graph.edges) == []
        assert list(graph.external) == []


FILES = (
    '/p/app.py',
    '/p/docs/setup.md',
    '/p/pkg/__init__.py',
    '/p/pkg/models.py',
    '/p/pkg/sub/util.py',
    '/p/web/client.ts',
    '/p/web/lib/index.js',
)


class TestModuleResolver:
    @pytest.mark.parametrize(
        'source, from_file, expected',
        [
            ('.models', '/p/pkg/service.py', '/p/pkg/models.py'),
            ('..models', '/p/pkg/sub/util.py', '/p/pkg/models.py'),
            ('.', '/p/pkg/models.py', '/p/pkg/__init__.py'),
            ('./client', '/p/web/app.ts', '/p/web/client.ts'),
            ('./lib', '/p/web/app.ts', '/p/web/lib/index.js'),
            ('../docs/setup.md', '/p/web/app.ts', '/p/docs/setup.md'),
            ('pkg.sub.util', '/p/app.py', '/p/pkg/sub/util.py'),
            ('pkg', '/p/app.py', '/p/pkg/__init__.py'),
            ('react', '/p/web/app.ts', None),
            ('os', '/p/app.py', None),
            ('.missing', '/p/pkg/models.py', None),
        ],
        ids=[
            'python-relative',
            'python-parent-relative',
            'python-package-itself',
            'js-relative-no-extension',
            'js-directory-index',
            'markdown-link',
            'python-dotted',
            'python-package',
            'js-bare-package',
            'python-stdlib',
            'python-relative-missing',
        ],
    )
    def test_resolve(self, source: str, from_file: str, expected: str | None) -> None:
        assert ModuleResolver(FILES).resolve(source, from_file) == expected

    def test_dotted_prefers_nearest_match(self) -> None:
        resolver = ModuleResolver(['/p/a/util.py', '/p/b/util.py'])
        assert resolver.resolve('util', '/p/b/main.py') == '/p/b/util.py'
