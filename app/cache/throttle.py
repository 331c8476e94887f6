"""
Write throttling
Minimum-interval gate keyed by resource, held in an expiring cache
"""
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable

from cachetools import TTLCache


class ThrottleStore(ABC):
    """Remembers the last write per key for a fixed window"""

    window_ms: int

    @abstractmethod
    async def try_acquire(self, key: str) -> bool:
        """True if a write for `key` may proceed now, recording it; False while throttled"""


class TTLThrottleStore(ThrottleStore):
    """
    Process-local throttle backed by cachetools.TTLCache.
    Keys expire on their own after the window, so the map stays bounded.
    """

    def __init__(self, window_ms: int, maxsize: int = 10000, timer: Callable[[], float] = time.monotonic):
        self.window_ms = window_ms
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=window_ms / 1000.0, timer=timer)
        self._lock = asyncio.Lock()

    async def try_acquire(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                return False
            self._cache[key] = True
            return True
