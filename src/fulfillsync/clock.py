"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Injectable clocks for poll scheduling, alert expiry and retry backoff.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Time source used by every timed component."""

    def monotonic(self) -> float:
        """Return current monotonic time in seconds."""
        ...

    async def sleep(self, delay_s: float) -> None:
        """Suspend the calling task for `delay_s` seconds."""
        ...


class SystemClock:
    """Wall-clock implementation backed by the running event loop."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, delay_s: float) -> None:
        await asyncio.sleep(max(0.0, delay_s))


class ManualClock:
    """
    Virtual clock advanced explicitly by the caller.

    Sleepers are parked on futures and woken in deadline order by
    ``advance``; the event loop is drained between wake-ups so that work
    scheduled by a woken task (including new sleeps) settles before time
    moves further.
    """

    def __init__(self, start_s: float = 0.0, *, drain_iterations: int = 50) -> None:
        self._now = start_s
        self._drain_iterations = drain_iterations
        self._seq = itertools.count()
        self._sleepers: list[tuple[float, int, asyncio.Future[None]]] = []

    def monotonic(self) -> float:
        return self._now

    async def sleep(self, delay_s: float) -> None:
        if delay_s <= 0:
            await asyncio.sleep(0)
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + delay_s, next(self._seq), future))
        await future

    @property
    def pending_sleepers(self) -> int:
        """Number of sleepers still waiting on a future deadline."""
        return sum(1 for _, _, future in self._sleepers if not future.done())

    async def advance(self, delta_s: float) -> None:
        """Move time forward by `delta_s`, waking every sleeper that comes due."""
        if delta_s < 0:
            raise ValueError("delta_s must be >= 0")
        target = self._now + delta_s
        await self.drain()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self._now = max(self._now, deadline)
            if not future.done():
                future.set_result(None)
            await self.drain()
        self._now = target
        await self.drain()

    async def drain(self) -> None:
        """Yield to the event loop until ready callbacks have had a chance to run."""
        for _ in range(self._drain_iterations):
            await asyncio.sleep(0)
