"""Watch list schemas."""

from __future__ import annotations

from collections.abc import Sequence

from code_search.schemas.base import StrictModel

__all__ = [
    'WatchList',
    'Watcher',
]


class Watcher(StrictModel):
    """A project kept live by re-indexing files as they change on disk."""

    folder_path: str  # Absolute path
    project_name: str
    collection: str


class WatchList(StrictModel):
    """Persisted watch list."""

    watchers: Sequence[Watcher] = ()
