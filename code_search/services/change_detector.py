"""Change detection - classifies a project's files against stored records.

Fingerprints are SHA-256 digests of raw file bytes. Modification times are
never consulted, so a fresh clone of unchanged content is still `unchanged`.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from code_search.extractors import ExtractorRegistry
from code_search.repositories.protocols import IndexStore
from code_search.schemas.files import ChangeSet, FileRecord
from code_search.services.ignore import IgnorePolicy
from code_search.utils import Timer

__all__ = [
    'ChangeDetector',
    'DiscoveredFiles',
    'discover_files',
    'file_fingerprint',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredFiles:
    """Result of walking a project root."""

    paths: Sequence[Path]  # Sorted absolute paths with a registered extension
    ignored_count: int  # Files with a registered extension excluded by the ignore policy


class ChangeDetector:
    """Classifies discovered files as to_process / unchanged / to_delete."""

    def __init__(self, registry: ExtractorRegistry, index_store: IndexStore) -> None:
        self._registry = registry
        self._index_store = index_store

    async def detect(
        self,
        root: Path,
        *,
        collection: str,
        project_name: str,
        force: bool = False,
    ) -> ChangeSet:
        """Classify every file under root against the project's stored records.

        Args:
            root: Project root directory.
            collection: Collection the project belongs to.
            project_name: Project name.
            force: Put every discovered file in to_process without reading fingerprints.

        Returns:
            ChangeSet of paths to process, keep and delete.
        """
        root = root.resolve()
        if not root.is_dir():
            raise ValueError(f'Not a directory: {root}')

        timer = Timer()
        policy = await asyncio.to_thread(IgnorePolicy.for_root, root)
        discovered = await asyncio.to_thread(discover_files, root, self._registry.extensions, policy)
        logger.info(
            f'[SCAN] Discovered {len(discovered.paths):,} files under {root}'
            + (f' ({discovered.ignored_count:,} ignored)' if discovered.ignored_count else '')
        )

        records = await self._index_store.get_project_records(collection, project_name)
        to_process, unchanged = await asyncio.to_thread(
            _classify, discovered.paths, {} if force else records
        )

        on_disk = {str(p) for p in discovered.paths}
        to_delete = sorted(path for path in records if path not in on_disk)

        logger.info(
            f'[SCAN] Classified in {timer.elapsed():.2f}s: {len(to_process)} to process, '
            f'{len(unchanged)} unchanged, {len(to_delete)} to delete'
        )
        return ChangeSet(
            to_process=to_process,
            unchanged=unchanged,
            to_delete=to_delete,
            ignored_count=discovered.ignored_count,
        )


def discover_files(root: Path, extensions: frozenset[str], policy: IgnorePolicy) -> DiscoveredFiles:
    """Walk root, pruning ignored directories. Symlinked directories are not followed."""
    root = root.resolve()
    paths: list[Path] = []
    ignored = 0
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(d for d in dirnames if not policy.is_ignored(current / d, is_dir=True))
        for filename in filenames:
            path = current / filename
            if path.suffix.lower() not in extensions or not path.is_file():
                continue
            if policy.is_ignored(path):
                ignored += 1
                continue
            paths.append(path)
    return DiscoveredFiles(paths=sorted(paths), ignored_count=ignored)


def file_fingerprint(path: Path) -> str:
    """Streaming SHA-256 of file contents."""
    hasher = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            hasher.update(chunk)
    return hasher.hexdigest()


def _classify(
    paths: Sequence[Path],
    records: Mapping[str, FileRecord],
) -> tuple[Sequence[str], Sequence[str]]:
    to_process: list[str] = []
    unchanged: list[str] = []
    for path in paths:
        key = str(path)
        record = records.get(key)
        if record is None:
            # New files are hashed once, by the worker that indexes them
            to_process.append(key)
            continue
        try:
            changed = record.file_size != path.stat().st_size or record.fingerprint != file_fingerprint(path)
        except OSError as e:
            # Unreadable now; the worker records the failure
            logger.debug(f'[SCAN] Could not hash {key}: {e}')
            changed = True

        if changed:
            to_process.append(key)
        else:
            unchanged.append(key)

    return to_process, unchanged
