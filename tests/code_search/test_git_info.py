"""Tests for git metadata collection against a real repository."""

from __future__ import annotations

from pathlib import Path

import git
import pytest

from code_search.schemas.files import ChurnLevel, churn_level_for
from code_search.services.git_info import GitPythonCollector


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    root = tmp_path.resolve() / 'repo'
    root.mkdir()
    repo = git.Repo.init(root)
    author = git.Actor('Ada Lovelace', 'ada@example.com')

    (root / 'models.py').write_text('class User:\n    pass\n')
    repo.index.add(['models.py'])
    repo.index.commit('Add user model', author=author, committer=author)

    (root / 'models.py').write_text('class User:\n    name = ""\n')
    repo.index.add(['models.py'])
    repo.index.commit('Add name field', author=author, committer=author)
    return root


class TestGitPythonCollector:
    async def test_last_commit_and_churn(self, repo_root: Path) -> None:
        metadata = await GitPythonCollector().info_for(repo_root / 'models.py')
        assert metadata is not None
        assert (metadata.author, metadata.email) == ('Ada Lovelace', 'ada@example.com')
        assert metadata.message == 'Add name field'
        assert len(metadata.commit_hash) == 7
        assert metadata.commit_count == 2
        assert metadata.churn_level == 'low'
        assert metadata.date.tzinfo is not None

    async def test_untracked_file(self, repo_root: Path) -> None:
        (repo_root / 'scratch.py').write_text('x = 1\n')
        assert await GitPythonCollector().info_for(repo_root / 'scratch.py') is None

    async def test_outside_repository(self, tmp_path: Path) -> None:
        plain = tmp_path / 'plain'
        plain.mkdir()
        (plain / 'app.py').write_text('x = 1\n')
        assert await GitPythonCollector().info_for(plain / 'app.py') is None


@pytest.mark.parametrize(
    'commit_count, expected',
    [(0, 'low'), (3, 'low'), (4, 'medium'), (10, 'medium'), (11, 'high')],
)
def test_churn_level_for(commit_count: int, expected: ChurnLevel) -> None:
    assert churn_level_for(commit_count) == expected
