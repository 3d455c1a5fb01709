"""Small timing and locking helpers."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator

__all__ = [
    'KeyedLocks',
    'Timer',
    'humanize_seconds',
]


class Timer:
    """Stopwatch measuring elapsed time since construction."""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed(self) -> float:
        """Elapsed time in seconds."""
        return time.perf_counter() - self._start

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)


def humanize_seconds(seconds: float) -> str:
    """Format a duration with an abbreviated unit: '45 sec', '1.5 min', '2 hr'."""
    for unit, size in (('hr', 3600), ('min', 60), ('sec', 1)):
        if seconds >= size:
            value = f'{seconds / size:.1f}'.rstrip('0').rstrip('.')
            return f'{value} {unit}'
    return f'{int(seconds * 1000)} ms'


class KeyedLocks:
    """One asyncio lock per key, created on first use.

    A key's lock is dropped when its last holder or waiter leaves, so the map
    only holds keys that are in use.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: object) -> bool:
        return key in self._locks

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]
