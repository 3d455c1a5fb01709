"""Watcher service - keeps watched projects live as files change on disk.

The watch list is persisted (WatchListManager) and survives restarts; each
entry gets one awatch task. Added or modified files are re-indexed through
IndexingService.index_file, deleted files are pruned with remove_file. Both
take the same per-file lock as the job workers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

import watchfiles
from watchfiles import Change

from code_search.extractors import ExtractorRegistry
from code_search.repositories.watch_list import WatchListManager
from code_search.schemas.watchers import Watcher
from code_search.services.ignore import IgnorePolicy
from code_search.services.indexing import IndexingService

__all__ = [
    'SourceFilter',
    'WatcherService',
]

logger = logging.getLogger(__name__)

# Milliseconds to collect a burst of changes (editor save, git checkout) into one batch
DEFAULT_DEBOUNCE_MS = 1600

type FileChange = tuple[Change, str]


class SourceFilter(watchfiles.DefaultFilter):
    """Passes only indexable files that the project's ignore policy keeps."""

    def __init__(self, registry: ExtractorRegistry, policy: IgnorePolicy) -> None:
        super().__init__()
        self._registry = registry
        self._policy = policy

    def __call__(self, change: Change, path: str) -> bool:
        return (
            self._registry.supports(path)
            and not self._policy.is_ignored(Path(path))
            and super().__call__(change, path)
        )


class WatcherService:
    """Owns the persisted watch list and one watch task per folder."""

    def __init__(
        self,
        indexing: IndexingService,
        watch_list: WatchListManager,
        registry: ExtractorRegistry,
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        enrich: bool = True,
    ) -> None:
        self._indexing = indexing
        self._watch_list = watch_list
        self._registry = registry
        self._debounce_ms = debounce_ms
        self._enrich = enrich
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop_events: dict[str, asyncio.Event] = {}

    async def start(self) -> int:
        """Start watching every persisted folder that still exists. Returns watchers started."""
        watchers = await asyncio.to_thread(self._watch_list.list_watchers)
        started = 0
        for watcher in watchers:
            if not Path(watcher.folder_path).is_dir():
                logger.warning(f'[WATCH] Skipping missing folder {watcher.folder_path}')
                continue
            self._spawn(watcher)
            started += 1
        logger.info(f'[WATCH] Watching {started} folders')
        return started

    async def add_watcher(self, folder_path: Path, project_name: str, collection: str) -> Watcher:
        """Persist and start a watcher. Replaces an existing watcher on the same folder.

        Raises:
            ValueError: folder_path is not a directory.
        """
        root = folder_path.expanduser().resolve()
        if not root.is_dir():
            raise ValueError(f'Not a directory: {root}')

        watcher = Watcher(folder_path=str(root), project_name=project_name, collection=collection)
        await asyncio.to_thread(self._watch_list.add, watcher)
        await self._cancel(watcher.folder_path)
        self._spawn(watcher)
        logger.info(f'[WATCH] Added {root} -> {collection}/{project_name}')
        return watcher

    async def remove_watcher(self, folder_path: Path) -> bool:
        """Stop and forget a folder's watcher. Returns False if none was registered."""
        key = str(folder_path.expanduser().resolve())
        removed = await asyncio.to_thread(self._watch_list.remove, key)
        await self._cancel(key)
        if removed:
            logger.info(f'[WATCH] Removed {key}')
        return removed

    async def remove_project(self, collection: str, project_name: str) -> int:
        """Stop and forget every watcher of a project."""
        watchers = [
            w
            for w in await self.list_watchers()
            if (w.collection, w.project_name) == (collection, project_name)
        ]
        await asyncio.to_thread(self._watch_list.remove_project, collection, project_name)
        for watcher in watchers:
            await self._cancel(watcher.folder_path)
        return len(watchers)

    async def list_watchers(self) -> Sequence[Watcher]:
        return await asyncio.to_thread(self._watch_list.list_watchers)

    def is_running(self, folder_path: str) -> bool:
        task = self._tasks.get(folder_path)
        return task is not None and not task.done()

    async def stop(self) -> None:
        """Stop every watch task. The persisted list is kept."""
        for key in list(self._tasks):
            await self._cancel(key)

    async def handle_changes(self, watcher: Watcher, changes: Iterable[FileChange]) -> None:
        """Apply one batch of file changes to the index, in path order."""
        root = Path(watcher.folder_path)
        for change, path_str in sorted(changes, key=lambda c: (c[1], c[0].value)):
            path = Path(path_str)
            match change:
                case Change.added | Change.modified:
                    if not path.is_file():
                        continue
                    outcome = await self._indexing.index_file(
                        path,
                        watcher.project_name,
                        watcher.collection,
                        root_path=root,
                        enrich=self._enrich,
                    )
                    logger.info(f'[WATCH] {change.name} {path.name}: {outcome.status}')
                case Change.deleted:
                    await self._indexing.remove_file(path)
                    logger.info(f'[WATCH] deleted {path.name}: removed from index')

    def _spawn(self, watcher: Watcher) -> None:
        stop_event = asyncio.Event()
        self._stop_events[watcher.folder_path] = stop_event
        self._tasks[watcher.folder_path] = asyncio.create_task(
            self._watch(watcher, stop_event),
            name=f'watch:{watcher.folder_path}',
        )

    async def _cancel(self, key: str) -> None:
        stop_event = self._stop_events.pop(key, None)
        task = self._tasks.pop(key, None)
        if stop_event is not None:
            stop_event.set()
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _watch(self, watcher: Watcher, stop_event: asyncio.Event) -> None:
        root = Path(watcher.folder_path)
        policy = await asyncio.to_thread(IgnorePolicy.for_root, root)
        async for changes in watchfiles.awatch(
            root,
            watch_filter=SourceFilter(self._registry, policy),
            debounce=self._debounce_ms,
            stop_event=stop_event,
            recursive=True,
            ignore_permission_denied=True,
        ):
            try:
                await self.handle_changes(watcher, changes)
            except (OSError, ValueError) as e:
                # Keep watching after a failed batch
                logger.warning(f'[WATCH] {root}: change batch failed: {type(e).__name__}: {e}')
