"""Async Redis client for file records, dependency edges and project records.

Thin wrapper around redis.asyncio with connection pooling and concurrency control.
Text mode (decode_responses=True): every stored value is JSON or plain text.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping

import redis.asyncio as aioredis

__all__ = [
    'RedisClient',
]

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client with connection pooling.

    All single-key operations are gated by a semaphore so a burst of worker
    writes cannot exhaust the connection pool.
    """

    def __init__(
        self,
        host: str = '127.0.0.1',
        port: int = 6379,
        *,
        max_connections: int = 50,
        max_concurrent: int = 20,
        socket_timeout: float = 30.0,
        socket_connect_timeout: float = 2.0,
    ) -> None:
        pool = aioredis.ConnectionPool(
            host=host,
            port=port,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            decode_responses=True,
        )
        self._client = aioredis.Redis(connection_pool=pool)
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def ping(self) -> bool:
        """Verify Redis connectivity."""
        return await self._client.ping()

    # --- Hash operations ---

    async def hset(self, name: str, mapping: Mapping[str, str]) -> int:
        """Set multiple hash fields atomically."""
        async with self._semaphore:
            return await self._client.hset(name, mapping=dict(mapping))

    async def hgetall(self, name: str) -> Mapping[str, str]:
        """Get all fields and values from a hash."""
        async with self._semaphore:
            return await self._client.hgetall(name)

    async def hget(self, name: str, field: str) -> str | None:
        async with self._semaphore:
            return await self._client.hget(name, field)

    # --- Set operations (project membership) ---

    async def sadd(self, name: str, *values: str) -> int:
        if not values:
            return 0
        async with self._semaphore:
            return await self._client.sadd(name, *values)

    async def srem(self, name: str, *values: str) -> int:
        if not values:
            return 0
        async with self._semaphore:
            return await self._client.srem(name, *values)

    async def smembers(self, name: str) -> set[str]:
        async with self._semaphore:
            return await self._client.smembers(name)

    # --- Key management ---

    async def delete(self, *names: str) -> int:
        """Delete one or more keys."""
        if not names:
            return 0
        async with self._semaphore:
            return await self._client.delete(*names)

    async def scan_iter(self, *, match: str, count: int = 500) -> AsyncIterator[str]:
        """Iterate keys matching a glob pattern.

        SCAN is cursor-based and non-blocking. The semaphore is not held
        across the full iteration.
        """
        async for key in self._client.scan_iter(match=match, count=count):
            yield key

    def pipeline(self) -> aioredis.client.Pipeline:
        """Get a non-transactional pipeline. Caller executes it."""
        return self._client.pipeline(transaction=False)

    async def close(self) -> None:
        """Close connection pool."""
        await self._client.aclose()
