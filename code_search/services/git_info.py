"""Git metadata collection - last commit and churn per file.

Best-effort: files outside a repository, untracked files or a missing git
binary all yield None rather than failing indexing.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol

import git

from code_search.schemas.files import GitMetadata, churn_level_for

__all__ = [
    'GitMetadataCollector',
    'GitPythonCollector',
]

logger = logging.getLogger(__name__)

# Rolling window for churn classification
CHURN_WINDOW = timedelta(days=182)


class GitMetadataCollector(Protocol):
    async def info_for(self, file_path: Path) -> GitMetadata | None: ...


class GitPythonCollector:
    """Reads commit history with gitpython, off the event loop."""

    def __init__(self, churn_window: timedelta = CHURN_WINDOW) -> None:
        self._churn_window = churn_window

    async def info_for(self, file_path: Path) -> GitMetadata | None:
        try:
            return await asyncio.to_thread(self._collect, file_path)
        except (git.GitError, OSError, ValueError) as e:
            logger.debug(f'[GIT] No metadata for {file_path}: {type(e).__name__}: {e}')
            return None

    def _collect(self, file_path: Path) -> GitMetadata | None:
        repo = _repo_for(str(file_path.parent))
        if repo is None or repo.working_tree_dir is None:
            return None

        relative = file_path.resolve().relative_to(Path(repo.working_tree_dir).resolve()).as_posix()
        last = next(repo.iter_commits(paths=relative, max_count=1), None)
        if last is None:
            return None

        since = datetime.now(UTC) - self._churn_window
        commit_count = sum(1 for _ in repo.iter_commits(paths=relative, since=since.isoformat()))
        message = last.summary if isinstance(last.summary, str) else last.summary.decode(errors='replace')

        return GitMetadata(
            author=last.author.name or '',
            email=last.author.email or '',
            date=last.committed_datetime.astimezone(UTC),
            commit_hash=last.hexsha[:7],
            message=message,
            commit_count=commit_count,
            churn_level=churn_level_for(commit_count),
        )


@functools.lru_cache(maxsize=128)
def _repo_for(directory: str) -> git.Repo | None:
    """Repository containing this directory. Cached."""
    try:
        return git.Repo(directory, search_parent_directories=True)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError):
        return None
