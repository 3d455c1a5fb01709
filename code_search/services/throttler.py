"""Adaptive concurrency throttling for rate-limited backends.

Additive increase, multiplicative decrease: the ceiling grows by one after a
run of consecutive successes and halves (floor 1) whenever a call fails with
a throttling signature. The ceiling is independent of the file worker pool,
so extraction and hashing are never slowed by a provider's rate limits.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from code_search.exceptions import ThrottledError
from code_search.schemas.config import ThrottlingConfig

__all__ = [
    'AdaptiveThrottler',
    'is_throttling_error',
]

logger = logging.getLogger(__name__)

_T = TypeVar('_T')

MIN_CONCURRENCY = 1


def is_throttling_error(exc: BaseException, signatures: Sequence[str]) -> bool:
    """Match the error text against throttling signatures, case-insensitively."""
    message = str(exc).lower()
    return any(signature.lower() in message for signature in signatures)


class AdaptiveThrottler:
    """Concurrency ceiling for one backend provider.

    Safe without extra locks: all callers are asyncio tasks in a single thread
    and every ceiling update happens between await points.
    """

    def __init__(
        self,
        name: str,
        *,
        initial: int = 4,
        max_concurrency: int = 16,
        increase_threshold: int = 10,
        max_retries: int = 3,
        base_delay: float = 1.0,
        signatures: Sequence[str] = (),
    ) -> None:
        if not MIN_CONCURRENCY <= initial <= max_concurrency:
            raise ValueError(f'initial must be in [{MIN_CONCURRENCY}, {max_concurrency}], got {initial}')
        self.name = name
        self._ceiling = initial
        self._max = max_concurrency
        self._increase_threshold = increase_threshold
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._signatures = tuple(signatures)
        self._active = 0
        self._success_run = 0
        self._slot_freed = asyncio.Condition()

    @classmethod
    def from_config(
        cls,
        name: str,
        config: ThrottlingConfig,
        *,
        max_concurrency: int | None = None,
    ) -> AdaptiveThrottler:
        """Build a throttler whose ceiling never exceeds max_concurrency (defaults to config)."""
        ceiling = min(config.max_concurrency, max_concurrency) if max_concurrency else config.max_concurrency
        return cls(
            name,
            initial=min(config.initial, ceiling),
            max_concurrency=ceiling,
            increase_threshold=config.increase_threshold,
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            signatures=config.signatures,
        )

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @property
    def active(self) -> int:
        return self._active

    async def run(self, call: Callable[[], Awaitable[_T]]) -> _T:
        """Run a backend call within the ceiling, retrying on throttling errors.

        Args:
            call: Zero-argument coroutine factory; invoked once per attempt.

        Returns:
            The call's result.

        Raises:
            ThrottledError: Still throttled after max_retries retries.
            Exception: Any non-throttling error from the call, unchanged.
        """
        attempt = 0
        while True:
            await self._acquire()
            try:
                result = await call()
            except Exception as e:
                if not is_throttling_error(e, self._signatures):
                    raise
                self._on_throttled()
                if attempt >= self._max_retries:
                    raise ThrottledError(self.name, attempt + 1, e) from e
            else:
                self._on_success()
                return result
            finally:
                await self._release()

            delay = self._base_delay * 2**attempt
            logger.debug(f'[THROTTLE] {self.name}: retry {attempt + 1}/{self._max_retries} in {delay:.1f}s')
            await asyncio.sleep(delay)
            attempt += 1

    async def _acquire(self) -> None:
        async with self._slot_freed:
            await self._slot_freed.wait_for(lambda: self._active < self._ceiling)
            self._active += 1

    async def _release(self) -> None:
        async with self._slot_freed:
            self._active -= 1
            self._slot_freed.notify_all()

    def _on_success(self) -> None:
        self._success_run += 1
        if self._success_run >= self._increase_threshold and self._ceiling < self._max:
            self._ceiling += 1
            self._success_run = 0
            logger.debug(f'[THROTTLE] {self.name}: ceiling raised to {self._ceiling}')

    def _on_throttled(self) -> None:
        self._success_run = 0
        previous = self._ceiling
        self._ceiling = max(MIN_CONCURRENCY, self._ceiling // 2)
        if previous != self._ceiling:
            logger.warning(f'[THROTTLE] {self.name}: rate limited, ceiling {previous} -> {self._ceiling}')
