"""Request limiter shared by every worker talking to the GraphQL endpoint.

Two guards in one context manager: a bounded semaphore caps requests in
flight, and a token bucket caps the sustained request rate.
"""

from __future__ import annotations

import threading
import time
from typing import Callable


class TokenBucket:
    """Classic token bucket; ``acquire`` blocks until a token is available."""

    def __init__(
        self,
        rate_per_second: float,
        capacity: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        self.rate = rate_per_second
        self.capacity = capacity if capacity is not None else max(rate_per_second, 1.0)
        self._tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._last = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last
        self._last = now
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)

    def acquire(self) -> float:
        """Take one token. Returns the total seconds spent waiting."""
        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return waited
                delay = (1 - self._tokens) / self.rate
            self._sleep(delay)
            waited += delay


class RequestLimiter:
    """Concurrent-request cap plus token bucket.

    Usage::

        with limiter:
            session.post(...)
    """

    def __init__(
        self,
        max_concurrent: int = 4,
        rate_per_second: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._bucket = TokenBucket(rate_per_second, clock=clock, sleep=sleep)

    def __enter__(self) -> "RequestLimiter":
        self._slots.acquire()
        try:
            self._bucket.acquire()
        except BaseException:
            self._slots.release()
            raise
        return self

    def __exit__(self, *exc_info) -> None:
        self._slots.release()
