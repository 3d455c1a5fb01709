"""Redis-backed file records, dependency edges and project records.

Key patterns:
    {prefix}:file:{absolute_path}                    file record hash
    {prefix}:deps:{absolute_path}                    dependency hash
    {prefix}:project:{collection}:{project_name}     project record hash
    {prefix}:members:{collection}:{project_name}     set of member file paths
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from code_search.clients.redis import RedisClient
from code_search.schemas.files import (
    DependencyEdge,
    FileDependencies,
    FileRecord,
    GitMetadata,
    ProjectRecord,
)

__all__ = [
    'RedisIndexStore',
]

logger = logging.getLogger(__name__)


class RedisIndexStore:
    """Index state backed by Redis hashes.

    File records and dependencies are keyed by absolute path, so a path
    belongs to at most one project at a time. Project membership sets make
    per-project enumeration a single SMEMBERS plus one pipelined round-trip.
    """

    def __init__(self, redis: RedisClient, prefix: str = 'cs') -> None:
        self._redis = redis
        self._prefix = prefix

    # --- File records ---

    async def get_record(self, file_path: str) -> FileRecord | None:
        raw = await self._redis.hgetall(self._file_key(file_path))
        if not raw:
            return None
        return _decode_record(file_path, raw)

    async def get_project_records(self, collection: str, project_name: str) -> Mapping[str, FileRecord]:
        """Pre-load every record of a project in one round-trip."""
        paths = sorted(await self._redis.smembers(self._members_key(collection, project_name)))
        if not paths:
            return {}

        pipe = self._redis.pipeline()
        for path in paths:
            pipe.hgetall(self._file_key(path))
        results = await pipe.execute()

        return {path: _decode_record(path, raw) for path, raw in zip(paths, results) if raw}

    async def put_record(self, record: FileRecord) -> None:
        """Store a record and register it with its project. Replaces any prior record."""
        previous = await self.get_record(record.file_path)
        if previous is not None and (previous.collection, previous.project_name) != (
            record.collection,
            record.project_name,
        ):
            await self._redis.srem(self._members_key(previous.collection, previous.project_name), record.file_path)

        key = self._file_key(record.file_path)
        await self._redis.delete(key)
        await self._redis.hset(key, _encode_record(record))
        await self._redis.sadd(self._members_key(record.collection, record.project_name), record.file_path)

    async def delete_record(self, file_path: str) -> None:
        previous = await self.get_record(file_path)
        if previous is not None:
            await self._redis.srem(self._members_key(previous.collection, previous.project_name), file_path)
        await self._redis.delete(self._file_key(file_path))

    # --- Dependency edges ---

    async def put_dependencies(self, dependencies: FileDependencies) -> None:
        await self._redis.hset(self._deps_key(dependencies.file_path), _encode_dependencies(dependencies))

    async def get_dependencies(self, file_path: str) -> FileDependencies | None:
        raw = await self._redis.hgetall(self._deps_key(file_path))
        if not raw:
            return None
        return _decode_dependencies(file_path, raw)

    async def delete_dependencies(self, file_path: str) -> None:
        await self._redis.delete(self._deps_key(file_path))

    async def all_dependencies(
        self, collection: str | None = None, project_name: str | None = None
    ) -> Sequence[FileDependencies]:
        """Dependency facts, optionally narrowed to a collection or project.

        Two-phase: SCAN for dependency keys, then pipeline HGETALL.
        """
        key_prefix = f'{self._prefix}:deps:'
        keys = [key async for key in self._redis.scan_iter(match=f'{key_prefix}*', count=1000)]
        if not keys:
            return []

        pipe = self._redis.pipeline()
        for key in keys:
            pipe.hgetall(key)
        results = await pipe.execute()

        entries: list[FileDependencies] = []
        for key, raw in zip(keys, results):
            if not raw:
                continue
            deps = _decode_dependencies(key[len(key_prefix) :], raw)
            if collection is not None and deps.collection != collection:
                continue
            if project_name is not None and deps.project_name != project_name:
                continue
            entries.append(deps)
        return sorted(entries, key=lambda d: d.file_path)

    # --- Projects ---

    async def put_project(self, project: ProjectRecord) -> None:
        await self._redis.hset(
            self._project_key(project.collection, project.project_name),
            {
                'root_path': project.root_path,
                'indexed_at': project.indexed_at.isoformat(),
                'file_count': str(project.file_count),
            },
        )

    async def get_project(self, collection: str, project_name: str) -> ProjectRecord | None:
        raw = await self._redis.hgetall(self._project_key(collection, project_name))
        if not raw:
            return None
        return ProjectRecord(
            collection=collection,
            project_name=project_name,
            root_path=raw['root_path'],
            indexed_at=datetime.fromisoformat(raw['indexed_at']),
            file_count=int(raw['file_count']),
        )

    async def list_projects(self) -> Sequence[ProjectRecord]:
        key_prefix = f'{self._prefix}:project:'
        projects: list[ProjectRecord] = []
        async for key in self._redis.scan_iter(match=f'{key_prefix}*', count=1000):
            # Collection names cannot contain ':'; project names may
            collection, _, project_name = key[len(key_prefix) :].partition(':')
            project = await self.get_project(collection, project_name)
            if project is not None:
                projects.append(project)
        return sorted(projects, key=lambda p: (p.collection, p.project_name))

    async def delete_project(self, collection: str, project_name: str) -> int:
        members_key = self._members_key(collection, project_name)
        paths = sorted(await self._redis.smembers(members_key))

        pipe = self._redis.pipeline()
        for path in paths:
            pipe.delete(self._file_key(path))
            pipe.delete(self._deps_key(path))
        pipe.delete(members_key)
        pipe.delete(self._project_key(collection, project_name))
        await pipe.execute()

        logger.info(f'[DELETE] {len(paths)} file records of {collection}/{project_name}')
        return len(paths)

    # --- Private ---

    def _file_key(self, file_path: str) -> str:
        return f'{self._prefix}:file:{file_path}'

    def _deps_key(self, file_path: str) -> str:
        return f'{self._prefix}:deps:{file_path}'

    def _project_key(self, collection: str, project_name: str) -> str:
        return f'{self._prefix}:project:{collection}:{project_name}'

    def _members_key(self, collection: str, project_name: str) -> str:
        return f'{self._prefix}:members:{collection}:{project_name}'


# --- Encode/decode helpers ---


def _encode_record(record: FileRecord) -> Mapping[str, str]:
    """Encode FileRecord to Redis hash fields (all string values)."""
    fields = {
        'collection': record.collection,
        'project_name': record.project_name,
        'fingerprint': record.fingerprint,
        'file_size': str(record.file_size),
        'block_count': str(record.block_count),
        'indexed_at': record.indexed_at.isoformat(),
    }
    if record.git is not None:
        fields['git'] = record.git.model_dump_json()
    return fields


def _decode_record(file_path: str, raw: Mapping[str, str]) -> FileRecord:
    git = raw.get('git')
    return FileRecord(
        file_path=file_path,
        collection=raw['collection'],
        project_name=raw['project_name'],
        fingerprint=raw['fingerprint'],
        file_size=int(raw['file_size']),
        block_count=int(raw['block_count']),
        indexed_at=datetime.fromisoformat(raw['indexed_at']),
        git=GitMetadata.model_validate_json(git) if git else None,
    )


def _encode_dependencies(dependencies: FileDependencies) -> Mapping[str, str]:
    return {
        'collection': dependencies.collection,
        'project_name': dependencies.project_name,
        'imports': json.dumps(
            [{'module': edge.imported_module, 'symbols': list(edge.imported_symbols)} for edge in dependencies.imports]
        ),
        'exports': json.dumps(list(dependencies.exports)),
    }


def _decode_dependencies(file_path: str, raw: Mapping[str, str]) -> FileDependencies:
    return FileDependencies(
        file_path=file_path,
        collection=raw['collection'],
        project_name=raw['project_name'],
        imports=[
            DependencyEdge(source_file=file_path, imported_module=item['module'], imported_symbols=item['symbols'])
            for item in json.loads(raw['imports'])
        ],
        exports=json.loads(raw['exports']),
    )
