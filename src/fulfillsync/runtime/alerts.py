"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Ephemeral, auto-expiring notification queue.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from ..clock import Clock, SystemClock
from ..metrics import NoOpSyncMetrics, SyncMetrics
from .contracts import AlertPolicy

logger = logging.getLogger("fulfillsync.alerts")

AlertVariant = Literal["danger", "warning", "success", "info", "custom"]
AlertListener = Callable[[tuple["Alert", ...]], None]

_VARIANTS: frozenset[str] = frozenset({"danger", "warning", "success", "info", "custom"})


@dataclass(frozen=True, slots=True)
class Alert:
    """One user-visible notification."""

    key: int
    title: str
    variant: AlertVariant
    created_at: float
    ttl_s: float


class AlertQueue:
    """
    Ordered list of alerts, each removed automatically after its ttl.

    Keys come from a monotonic counter, so alerts pushed within the same
    loop iteration never collide. ``push`` must be called from a running
    event loop because expiry is scheduled as a task.
    """

    def __init__(
        self,
        *,
        policy: AlertPolicy | None = None,
        clock: Clock | None = None,
        metrics: SyncMetrics | None = None,
    ) -> None:
        self._policy = policy or AlertPolicy()
        self._clock = clock or SystemClock()
        self._metrics: SyncMetrics = metrics or NoOpSyncMetrics()
        self._counter = itertools.count(1)
        self._alerts: dict[int, Alert] = {}
        self._timers: dict[int, asyncio.Task[None]] = {}
        self._listeners: list[AlertListener] = []
        self._version = 0

    @property
    def alerts(self) -> tuple[Alert, ...]:
        """Current alerts in push order."""
        return tuple(self._alerts.values())

    @property
    def version(self) -> int:
        """Monotonic counter bumped on every change."""
        return self._version

    def __len__(self) -> int:
        return len(self._alerts)

    def __contains__(self, key: object) -> bool:
        return key in self._alerts

    def push(
        self,
        title: str,
        variant: AlertVariant = "danger",
        ttl_s: float | None = None,
    ) -> int:
        """Add an alert and schedule its expiry; return its key."""
        if variant not in _VARIANTS:
            raise ValueError(f"Unknown alert variant '{variant}'")
        ttl = self._policy.ttl_s if ttl_s is None else ttl_s
        if ttl <= 0:
            raise ValueError("ttl_s must be > 0")

        key = next(self._counter)
        self._alerts[key] = Alert(
            key=key,
            title=title,
            variant=variant,
            created_at=self._clock.monotonic(),
            ttl_s=ttl,
        )
        self._timers[key] = asyncio.get_running_loop().create_task(self._expire(key, ttl))
        self._metrics.incr("sync_alerts_total", tags={"variant": variant})
        logger.debug("Alert %d pushed (%s): %s", key, variant, title)

        max_alerts = self._policy.max_alerts
        if max_alerts is not None:
            while len(self._alerts) > max_alerts:
                self._drop(next(iter(self._alerts)))
        self._changed()
        return key

    def remove(self, key: int) -> None:
        """Remove an alert; unknown or already-removed keys are ignored."""
        if self._drop(key):
            self._changed()

    def clear(self) -> None:
        if not self._alerts:
            return
        for key in list(self._alerts):
            self._drop(key)
        self._changed()

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def dispose(self) -> None:
        """Cancel pending expiry timers and drop every alert."""
        timers = list(self._timers.values())
        self._timers.clear()
        self._alerts.clear()
        self._listeners.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

    async def _expire(self, key: int, ttl_s: float) -> None:
        await self._clock.sleep(ttl_s)
        self._timers.pop(key, None)
        if self._alerts.pop(key, None) is not None:
            logger.debug("Alert %d expired", key)
            self._changed()

    def _drop(self, key: int) -> bool:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        return self._alerts.pop(key, None) is not None

    def _changed(self) -> None:
        self._version += 1
        snapshot = self.alerts
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Alert listener failed")
