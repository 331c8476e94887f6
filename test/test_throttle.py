"""TTLThrottleStore window behaviour."""

import pytest

from app.cache.throttle import TTLThrottleStore
from conftest import FakeTimer


@pytest.mark.asyncio
async def test_second_write_inside_window_is_refused():
    timer = FakeTimer()
    throttle = TTLThrottleStore(500, timer=timer)

    assert await throttle.try_acquire("user-1") is True
    timer.value += 0.499
    assert await throttle.try_acquire("user-1") is False


@pytest.mark.asyncio
async def test_write_allowed_after_window():
    timer = FakeTimer()
    throttle = TTLThrottleStore(500, timer=timer)

    await throttle.try_acquire("user-1")
    timer.value += 0.5
    assert await throttle.try_acquire("user-1") is True


@pytest.mark.asyncio
async def test_keys_are_independent():
    throttle = TTLThrottleStore(500, timer=FakeTimer())

    assert await throttle.try_acquire("user-1") is True
    assert await throttle.try_acquire("user-2") is True


@pytest.mark.asyncio
async def test_refused_attempt_does_not_extend_window():
    timer = FakeTimer()
    throttle = TTLThrottleStore(500, timer=timer)

    await throttle.try_acquire("user-1")
    timer.value += 0.3
    assert await throttle.try_acquire("user-1") is False
    timer.value += 0.3
    assert await throttle.try_acquire("user-1") is True


@pytest.mark.asyncio
async def test_expired_keys_are_evicted():
    timer = FakeTimer()
    throttle = TTLThrottleStore(500, maxsize=2, timer=timer)

    for key in ("a", "b"):
        await throttle.try_acquire(key)
    timer.value += 1
    await throttle.try_acquire("c")

    assert len(throttle._cache) == 1
