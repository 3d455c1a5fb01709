"""Watch list persistence with file locking.

Shared between the MCP server and any other process that manages watchers.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import filelock

from code_search.paths import WATCHERS_LOCK_PATH, WATCHERS_STATE_PATH
from code_search.schemas.watchers import Watcher, WatchList

__all__ = [
    'WatchListManager',
]


class WatchListManager:
    """Manages the persisted watch list with file locking.

    Watchers are keyed by folder path: one watcher per folder.
    """

    def __init__(
        self,
        state_path: Path = WATCHERS_STATE_PATH,
        lock_path: Path = WATCHERS_LOCK_PATH,
    ) -> None:
        self._state_path = state_path
        self._lock_path = lock_path
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = filelock.FileLock(lock_path)

    def load(self) -> WatchList:
        """Load watch list from file. Returns empty list if not exists."""
        if not self._state_path.exists():
            return WatchList()
        data = json.loads(self._state_path.read_text())
        return WatchList.model_validate(data)

    def list_watchers(self) -> Sequence[Watcher]:
        return list(self.load().watchers)

    def get(self, folder_path: str) -> Watcher | None:
        return next((w for w in self.load().watchers if w.folder_path == folder_path), None)

    def add(self, watcher: Watcher) -> bool:
        """Add or replace the watcher for a folder. Returns True if the folder was new."""
        with self._lock:
            existing = self.load().watchers
            remaining = [w for w in existing if w.folder_path != watcher.folder_path]
            self._save_unlocked(WatchList(watchers=[*remaining, watcher]))
            return len(remaining) == len(existing)

    def remove(self, folder_path: str) -> bool:
        """Remove a folder's watcher. Returns True if removed, False if not found."""
        with self._lock:
            existing = self.load().watchers
            remaining = [w for w in existing if w.folder_path != folder_path]
            if len(remaining) == len(existing):
                return False
            self._save_unlocked(WatchList(watchers=remaining))
            return True

    def remove_project(self, collection: str, project_name: str) -> int:
        """Remove every watcher of a project. Returns number removed."""
        with self._lock:
            existing = self.load().watchers
            remaining = [w for w in existing if (w.collection, w.project_name) != (collection, project_name)]
            if len(remaining) != len(existing):
                self._save_unlocked(WatchList(watchers=remaining))
            return len(existing) - len(remaining)

    def _save_unlocked(self, watch_list: WatchList) -> None:
        """Save without acquiring lock. Caller must hold lock."""
        self._state_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._state_path.with_suffix('.tmp')
        temp_path.write_text(json.dumps(watch_list.model_dump(mode='json'), indent=2) + '\n')
        temp_path.rename(self._state_path)
