"""Tests for the adaptive concurrency throttler."""

from __future__ import annotations

import asyncio

import pytest

from code_search.exceptions import ThrottledError
from code_search.schemas.config import ThrottlingConfig
from code_search.services.throttler import AdaptiveThrottler, is_throttling_error


class CapacityLimitedBackend:
    """Rejects calls with a 429 whenever more than `capacity` are in flight."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.in_flight = 0
        self.peak = 0
        self.calls = 0
        self.rejected = 0

    async def call(self) -> str:
        self.calls += 1
        self.in_flight += 1
        try:
            self.peak = max(self.peak, self.in_flight)
            if self.in_flight > self.capacity:
                self.rejected += 1
                raise RuntimeError('429 Too Many Requests')
            await asyncio.sleep(0)
            return 'ok'
        finally:
            self.in_flight -= 1


def _throttler(**overrides: object) -> AdaptiveThrottler:
    options: dict[str, object] = {
        'initial': 4,
        'max_concurrency': 16,
        'increase_threshold': 10,
        'max_retries': 3,
        'base_delay': 0.0,
        'signatures': ('429', 'rate limit'),
    }
    options.update(overrides)
    return AdaptiveThrottler('test', **options)  # type: ignore[arg-type]


class TestAdaptiveThrottler:
    """Verify ceiling adjustment and retry behavior."""

    async def test_converges_below_backend_capacity(self) -> None:
        backend = CapacityLimitedBackend(capacity=3)
        throttler = _throttler(initial=16, max_concurrency=16, increase_threshold=1000, max_retries=5)

        results = await asyncio.gather(*(throttler.run(backend.call) for _ in range(60)))

        assert results == ['ok'] * 60
        assert backend.rejected > 0
        assert throttler.ceiling <= 3
        assert throttler.active == 0

    async def test_concurrency_never_exceeds_ceiling(self) -> None:
        backend = CapacityLimitedBackend(capacity=100)
        throttler = _throttler(initial=2, max_concurrency=2)
        await asyncio.gather(*(throttler.run(backend.call) for _ in range(10)))
        assert backend.peak == 2

    async def test_ceiling_rises_after_consecutive_successes(self) -> None:
        backend = CapacityLimitedBackend(capacity=100)
        throttler = _throttler(initial=1, max_concurrency=3, increase_threshold=2)
        for _ in range(8):
            await throttler.run(backend.call)
        assert throttler.ceiling == 3

    async def test_throttling_halves_ceiling(self) -> None:
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError('Rate limit exceeded')
            return 'done'

        throttler = _throttler(initial=8)
        assert await throttler.run(flaky) == 'done'
        assert throttler.ceiling == 4
        assert attempts == 2

    async def test_gives_up_after_max_retries(self) -> None:
        calls = 0

        async def always_throttled() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError('HTTP 429')

        throttler = _throttler(initial=4, max_retries=2)
        with pytest.raises(ThrottledError) as exc_info:
            await throttler.run(always_throttled)
        assert calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.provider == 'test'
        assert throttler.ceiling == 1
        assert throttler.active == 0

    async def test_without_retries_first_throttle_is_final(self) -> None:
        async def throttled() -> None:
            raise RuntimeError('rate limit reached')

        throttler = _throttler(initial=4, max_retries=0)
        with pytest.raises(ThrottledError) as exc_info:
            await throttler.run(throttled)
        assert exc_info.value.attempts == 1
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert throttler.active == 0

    async def test_other_errors_propagate_unchanged(self) -> None:
        async def broken() -> None:
            raise KeyError('embedding')

        throttler = _throttler(initial=4)
        with pytest.raises(KeyError):
            await throttler.run(broken)
        assert throttler.ceiling == 4
        assert throttler.active == 0

    @pytest.mark.parametrize('initial', [0, 17], ids=['zero', 'above-max'])
    def test_initial_out_of_range(self, initial: int) -> None:
        with pytest.raises(ValueError, match='initial must be in'):
            _throttler(initial=initial)


class TestFromConfig:
    def test_caps_to_pool_size(self) -> None:
        config = ThrottlingConfig(initial=4, max_concurrency=16)
        throttler = AdaptiveThrottler.from_config('gemini', config, max_concurrency=2)
        assert throttler.ceiling == 2

    def test_uses_config_bounds(self) -> None:
        throttler = AdaptiveThrottler.from_config('gemini', ThrottlingConfig(initial=6))
        assert throttler.ceiling == 6


class TestIsThrottlingError:
    @pytest.mark.parametrize(
        'message, expected',
        [
            ('429 Too Many Requests', True),
            ('RESOURCE_EXHAUSTED: quota', True),
            ('error 1214: 并发数过高', True),
            ('500 Internal Server Error', False),
        ],
        ids=['http-429', 'grpc-exhausted', 'zhipu', 'server-error'],
    )
    def test_default_signatures(self, message: str, expected: bool) -> None:
        assert is_throttling_error(RuntimeError(message), ThrottlingConfig().signatures) is expected
