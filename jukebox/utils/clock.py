"""Time source used by the transport, the token manager and the player.

Everything that waits or reads the wall clock goes through a ``Clock`` so
tests can swap in a virtual one and run without real delays.
"""

import asyncio
import time
from typing import List


class Clock:
    """Wall clock in epoch milliseconds with an awaitable sleep."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep_ms(self, delay_ms: float) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)


class FakeClock(Clock):
    """Virtual clock: sleeping advances time instantly and is recorded."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self._now_ms = start_ms
        self.sleeps: List[float] = []

    def now_ms(self) -> int:
        return self._now_ms

    def advance(self, delta_ms: float) -> None:
        self._now_ms += int(delta_ms)

    async def sleep_ms(self, delay_ms: float) -> None:
        self.sleeps.append(delay_ms)
        self.advance(delay_ms)
        # Yield so concurrently scheduled intents can interleave
        await asyncio.sleep(0)


SYSTEM_CLOCK = Clock()
