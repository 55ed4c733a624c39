"""Token bucket used to keep the outgoing request rate below what the server tolerates."""

import asyncio
import time
from collections import deque
from math import floor
from typing import Awaitable, Callable, Optional

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

WINDOW = 1.0


class TokenBucket:
    """
    Capacity `max(1, max_rate)` tokens, refilled continuously at `max_rate` tokens per second.
    ---

    A full bucket alone would allow a burst on top of the steady rate.
    The grants of the last second are therefore also remembered, and never more than
    max(1, floor(max_rate)) of them fit in any one second.

    `max_rate=None` means: no limit at all.
    """

    def __init__(
        self,
        max_rate: Optional[float],
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.max_rate = max_rate
        self._clock = clock
        self._sleep = sleep

        self.tokens: float = self.capacity
        self.last_refill = clock()
        self._granted: deque[float] = deque()

    @property
    def unlimited(self) -> bool:
        return self.max_rate is None

    @property
    def capacity(self) -> float:
        """Always room for one whole token, also for rates below one per second"""
        if self.max_rate is None:
            return 0.0
        return max(1.0, self.max_rate)

    @property
    def window_limit(self) -> int:
        return max(1, floor(self.max_rate or 1))

    def reset(self) -> None:
        self.tokens = self.capacity
        self.last_refill = self._clock()
        self._granted.clear()

    def try_acquire(self) -> bool:
        """Take a token if one is available right now"""
        if self.unlimited:
            return True

        now = self._clock()
        self._refill(now)
        self._forget_old_grants(now)

        if self.tokens < 1 or len(self._granted) >= self.window_limit:
            return False

        self.tokens -= 1
        self._granted.append(now)
        return True

    async def acquire(self) -> None:
        """Wait until a token is available, then take it"""
        while not self.try_acquire():
            await self._sleep(self._wait_time())

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.max_rate)
        self.last_refill = now

    def _forget_old_grants(self, now: float) -> None:
        while self._granted and now - self._granted[0] >= WINDOW:
            self._granted.popleft()

    def _wait_time(self) -> float:
        """Time until the next token could be handed out"""
        now = self._clock()
        waits = [0.0]
        if self.tokens < 1:
            waits.append((1 - self.tokens) / self.max_rate)
        if len(self._granted) >= self.window_limit:
            waits.append(self._granted[0] + WINDOW - now)
        # never spin: wait at least a sliver
        return max(max(waits), 1e-3)
