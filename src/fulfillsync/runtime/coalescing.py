"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/coalescing.py.

In-flight request coalescing. An entry lives only while its producer is
unsettled; it is not a time-based cache.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ..clock import Clock, SystemClock
from ..metrics import NoOpSyncMetrics, SyncMetrics

T = TypeVar("T")

logger = logging.getLogger("fulfillsync.coalescing")


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            str(key): _normalize(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(item) for item in value), key=repr)
    return value


def request_key(operation: str, params: Mapping[str, Any] | None = None) -> str:
    """
    Build a canonical dedup key for one logical request.

    Parameters are serialized with sorted keys and `None` values dropped, so
    identical requests built with different insertion order share a key.
    """
    normalized = json.dumps(
        _normalize(params or {}),
        ensure_ascii=True,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return f"{operation}|{normalized}"


@dataclass(slots=True, eq=False)
class InFlightEntry(Generic[T]):
    """Coalescing record for one unsettled producer."""

    key: str
    task: asyncio.Task[T]
    created_at: float
    waiters: int = field(default=0)


class RequestKeyCache:
    """Deduplicate identical in-flight requests by key."""

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        metrics: SyncMetrics | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._metrics: SyncMetrics = metrics or NoOpSyncMetrics()
        self._entries: dict[str, InFlightEntry[Any]] = {}
        self._disposed = False

    @classmethod
    def create(
        cls,
        *,
        clock: Clock | None = None,
        metrics: SyncMetrics | None = None,
    ) -> "RequestKeyCache":
        return cls(clock=clock, metrics=metrics)

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def in_flight(self) -> tuple[str, ...]:
        """Keys whose producer is still unsettled."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def dedupe(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """
        Await the shared result for `key`, starting `producer` only when no
        call for the same key is in flight.

        Every concurrent waiter receives the same value or the same exception.
        When all waiters are cancelled, the producer is cancelled too.
        A producer must not await `dedupe` on its own key.
        """
        if self._disposed:
            raise RuntimeError("RequestKeyCache has been disposed")

        entry = self._entries.get(key)
        if entry is None or entry.task.done():
            task: asyncio.Task[T] = asyncio.ensure_future(producer())
            entry = InFlightEntry(key=key, task=task, created_at=self._clock.monotonic())
            self._entries[key] = entry
            task.add_done_callback(lambda _t, _entry=entry: self._settle(_entry))
            self._metrics.incr("sync_requests_total", tags={"outcome": "started"})
        else:
            logger.debug("Coalesced request onto in-flight key %s", key)
            self._metrics.incr("sync_requests_total", tags={"outcome": "coalesced"})

        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.task.done():
                logger.debug("All waiters left key %s; cancelling producer", key)
                # Later callers must start a fresh producer, not join the dying one.
                if self._entries.get(key) is entry:
                    del self._entries[key]
                entry.task.cancel()

    def _settle(self, entry: InFlightEntry[Any]) -> None:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
        if entry.task.cancelled():
            return
        # Shielded waiters may all be gone; mark the exception as observed.
        entry.task.exception()

    async def dispose(self) -> None:
        """Cancel every in-flight producer and refuse further calls."""
        self._disposed = True
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.task.cancel()
        if entries:
            await asyncio.gather(*(entry.task for entry in entries), return_exceptions=True)
