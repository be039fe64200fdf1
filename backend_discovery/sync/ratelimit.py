"""Per-item exponential backoff combined with a shared token bucket."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class ItemBackoff:
    """Delay before retrying an item that has failed *failures* times."""

    def __init__(self, base_delay: float, max_delay: float):
        self._base = base_delay
        self._max = max_delay

    def when(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self._base * (2 ** (failures - 1)), self._max)


class TokenBucket:
    """Thread-safe token bucket; ``reserve`` returns how long to wait for a token."""

    def __init__(self, qps: float, burst: int, clock: Callable[[], float] = time.monotonic):
        self._rate = qps
        self._burst = burst
        self._tokens = float(burst)
        self._clock = clock
        self._last = clock()
        self._lock = threading.Lock()

    def reserve(self) -> float:
        with self._lock:
            now = self._clock()
            self._tokens = min(self._burst, self._tokens + (now - self._last) * self._rate)
            self._last = now
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self._rate


class RateLimiter:
    """Largest of the item backoff and the overall bucket delay."""

    def __init__(self, backoff: ItemBackoff, bucket: TokenBucket):
        self._backoff = backoff
        self._bucket = bucket

    @classmethod
    def from_settings(cls, base_delay: float, max_delay: float, qps: float, burst: int) -> RateLimiter:
        return cls(ItemBackoff(base_delay, max_delay), TokenBucket(qps, burst))

    def when(self, failures: int) -> float:
        return max(self._backoff.when(failures), self._bucket.reserve())
