"""Tests for the file-locked watch list."""

from __future__ import annotations

from pathlib import Path

import pytest

from code_search.repositories.watch_list import WatchListManager
from code_search.schemas.watchers import Watcher


@pytest.fixture
def manager(tmp_path: Path) -> WatchListManager:
    return WatchListManager(tmp_path / 'state' / 'watchers.json', tmp_path / 'state' / 'watchers.lock')


def _watcher(folder: str, project: str = 'sample', collection: str = 'test') -> Watcher:
    return Watcher(folder_path=folder, project_name=project, collection=collection)


class TestWatchListManager:
    def test_empty_when_no_file(self, manager: WatchListManager) -> None:
        assert manager.list_watchers() == []
        assert manager.get('/src/app') is None

    def test_add_is_keyed_by_folder(self, manager: WatchListManager) -> None:
        assert manager.add(_watcher('/src/app')) is True
        assert manager.add(_watcher('/src/app', project='renamed')) is False
        watchers = manager.list_watchers()
        assert len(watchers) == 1
        assert watchers[0].project_name == 'renamed'

    def test_remove(self, manager: WatchListManager) -> None:
        manager.add(_watcher('/src/app'))
        assert manager.remove('/src/app') is True
        assert manager.remove('/src/app') is False
        assert manager.list_watchers() == []

    def test_remove_project(self, manager: WatchListManager) -> None:
        manager.add(_watcher('/src/a'))
        manager.add(_watcher('/src/b'))
        manager.add(_watcher('/src/c', project='other'))
        assert manager.remove_project('test', 'sample') == 2
        assert [w.folder_path for w in manager.list_watchers()] == ['/src/c']
        assert manager.remove_project('test', 'sample') == 0

    def test_persists_across_instances(self, tmp_path: Path, manager: WatchListManager) -> None:
        manager.add(_watcher('/src/app'))
        reopened = WatchListManager(tmp_path / 'state' / 'watchers.json', tmp_path / 'state' / 'watchers.lock')
        assert reopened.get('/src/app') == _watcher('/src/app')

    def test_no_temp_file_left_behind(self, tmp_path: Path, manager: WatchListManager) -> None:
        manager.add(_watcher('/src/app'))
        assert sorted(p.name for p in (tmp_path / 'state').iterdir() if p.suffix != '.lock') == ['watchers.json']
