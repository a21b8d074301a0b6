"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/timeouts.py.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from ..clock import Clock
from ..errors import NetworkError

T = TypeVar("T")


async def await_with_timeout(
    awaitable: Awaitable[T],
    timeout_s: float | None,
    *,
    clock: Clock | None = None,
) -> T:
    """
    Await value with optional timeout; expiry surfaces as ``NetworkError``.

    With a `clock`, the deadline is measured by ``clock.sleep`` so virtual
    clocks drive it; otherwise wall-clock ``asyncio.wait_for`` is used.
    """
    if timeout_s is None:
        return await awaitable
    if clock is None:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout_s)
        except asyncio.TimeoutError as exc:
            raise NetworkError(f"Request timed out after {timeout_s:g}s") from exc

    work = asyncio.ensure_future(awaitable)
    timer = asyncio.ensure_future(clock.sleep(timeout_s))
    try:
        await asyncio.wait({work, timer}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for pending in (work, timer):
            if not pending.done():
                pending.cancel()
        await asyncio.gather(work, timer, return_exceptions=True)
    if work.cancelled() and timer.done() and not timer.cancelled():
        raise NetworkError(f"Request timed out after {timeout_s:g}s")
    return work.result()
