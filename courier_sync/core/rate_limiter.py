"""
Rate limiters for sequential per-courier calls to the mirror system.

The mirror API enforces a request quota, so batch loops call
``await limiter.wait()`` between couriers. Tests inject NoDelayRateLimiter.
"""
import asyncio
from typing import Protocol


class RateLimiter(Protocol):
    async def wait(self) -> None:
        ...


class FixedDelayRateLimiter:
    """Sleeps a fixed amount of time on every wait()"""

    def __init__(self, delay_ms: int) -> None:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self.delay_seconds = delay_ms / 1000

    async def wait(self) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)


class NoDelayRateLimiter:
    """Counts waits without sleeping"""

    def __init__(self) -> None:
        self.calls = 0

    async def wait(self) -> None:
        self.calls += 1
