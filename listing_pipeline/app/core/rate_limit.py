from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional


class TokenBucket:
    """Token bucket for requests-per-minute rate limiting."""

    def __init__(self, rate_per_minute: int, capacity: Optional[int] = None, poll_interval: float = 0.05):
        self.rate = rate_per_minute / 60.0
        self.capacity = capacity or rate_per_minute
        self.tokens = float(self.capacity)
        self.poll_interval = poll_interval
        self.last = time.monotonic()
        self.lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.last) * self.rate)
        self.last = now

    async def acquire(self, n: int = 1) -> None:
        async with self.lock:
            self._refill()
            while self.tokens < n:
                await asyncio.sleep(self.poll_interval)
                self._refill()
            self.tokens -= n


class SourceLimiter:
    """Caps in-flight fetches per source with a semaphore and a token bucket.

    Sources never share a lock: a slow marketplace cannot hold up the others.
    """

    def __init__(self, concurrency: int, rate_per_minute: Optional[int] = None):
        self.concurrency = max(1, concurrency)
        self.rate_per_minute = rate_per_minute
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._buckets: Dict[str, TokenBucket] = {}
        self._in_flight: Dict[str, int] = {}

    def in_flight(self, source: str) -> int:
        return self._in_flight.get(source, 0)

    @asynccontextmanager
    async def slot(self, source: str) -> AsyncIterator[None]:
        semaphore = self._semaphores.setdefault(source, asyncio.Semaphore(self.concurrency))
        async with semaphore:
            if self.rate_per_minute:
                bucket = self._buckets.setdefault(source, TokenBucket(self.rate_per_minute))
                await bucket.acquire(1)
            self._in_flight[source] = self._in_flight.get(source, 0) + 1
            try:
                yield
            finally:
                self._in_flight[source] -= 1
