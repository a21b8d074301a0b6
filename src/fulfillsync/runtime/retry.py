"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/retry.py.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..clock import Clock, SystemClock
from ..errors import SyncError, classify_error, is_retryable
from .contracts import RetryPolicy

T = TypeVar("T")

logger = logging.getLogger("fulfillsync.retry")


def backoff_delay(attempt: int, policy: RetryPolicy, *, rng: random.Random | None = None) -> float:
    """Exponential delay for `attempt` (0-based), capped, plus proportional jitter."""
    delay = min(
        policy.backoff_base_s * (policy.backoff_factor**attempt),
        policy.backoff_max_s,
    )
    jitter = (rng or random).random() * delay * policy.backoff_jitter_ratio
    return delay + jitter


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    clock: Clock | None = None,
    label: str = "request",
) -> T:
    """Execute callable under bounded retry policy; only retryable errors repeat."""
    sleeper = clock or SystemClock()
    last: SyncError | None = None
    for attempt in range(policy.max_retries + 1):
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            classified = classify_error(error)
            last = classified
            if is_retryable(classified) and attempt < policy.max_retries:
                delay = backoff_delay(attempt, policy)
                logger.info(
                    "Retry attempt %d/%d for %s after %.0fms: %s",
                    attempt + 1,
                    policy.max_retries,
                    label,
                    delay * 1000,
                    classified,
                )
                await sleeper.sleep(delay)
                continue
            if classified is error:
                raise
            raise classified from error
    raise SyncError("Retry loop exhausted") from last
