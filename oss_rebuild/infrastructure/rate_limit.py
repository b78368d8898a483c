from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Optional


class TokenBucket:
    """Async token bucket. `rate` tokens are added per second up to `capacity`."""

    def __init__(
        self,
        rate: float,
        capacity: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], "asyncio.Future"] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = float(rate)
        self.capacity = float(capacity if capacity is not None else max(1.0, rate))
        self._tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                await self._sleep((1.0 - self._tokens) / self.rate)


class RateLimiters:
    """Per-ecosystem buckets shared by every worker in the process."""

    def __init__(self, rates: Dict[str, float]) -> None:
        self._buckets = {eco: TokenBucket(rate) for eco, rate in rates.items()}

    def bucket(self, ecosystem: str) -> Optional[TokenBucket]:
        return self._buckets.get(ecosystem)

    async def acquire(self, ecosystem: str) -> None:
        bucket = self._buckets.get(ecosystem)
        if bucket is not None:
            await bucket.acquire()
