"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Runtime facade wiring one cache, alert queue, coordinator and resolver.

Instances are created explicitly and passed to consumers; nothing is kept in
module-level state, so tests and sessions never share in-flight entries.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, TypeVar

from ..clock import Clock, SystemClock
from ..metrics import NoOpSyncMetrics, SyncMetrics
from ..settings import SyncSettings
from ..types import ListEnvelope
from .alerts import AlertQueue, AlertVariant
from .coalescing import RequestKeyCache
from .correlation import CorrelationResolver, CorrelationResult, Extractor, RefId, Resolver
from .polling import EnrichFn, FetchFn, PollingCoordinator, PollSession

T = TypeVar("T")

logger = logging.getLogger("fulfillsync.engine")


class SyncRuntime:
    """Explicit-lifecycle container for the synchronization layer."""

    def __init__(
        self,
        *,
        settings: SyncSettings,
        clock: Clock,
        metrics: SyncMetrics,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.metrics = metrics
        self.cache = RequestKeyCache.create(clock=clock, metrics=metrics)
        self.alerts = AlertQueue(policy=settings.alert_policy(), clock=clock, metrics=metrics)
        self.coordinator = PollingCoordinator(
            cache=self.cache,
            alerts=self.alerts,
            policy=settings.polling_policy(),
            timeout_policy=settings.timeout_policy(),
            clock=clock,
            metrics=metrics,
        )
        self.resolver = CorrelationResolver(self.cache, metrics=metrics)
        self._disposed = False

    @classmethod
    def create(
        cls,
        settings: SyncSettings | None = None,
        *,
        clock: Clock | None = None,
        metrics: SyncMetrics | None = None,
    ) -> "SyncRuntime":
        return cls(
            settings=settings or SyncSettings(),
            clock=clock or SystemClock(),
            metrics=metrics or NoOpSyncMetrics(),
        )

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def dedupe(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        return await self.cache.dedupe(key, producer)

    def use_polled_resource(
        self,
        resource_id: str,
        fetch_fn: FetchFn,
        *,
        interval_s: float | None = None,
        retry_threshold: int | None = None,
        response_model: type[ListEnvelope] = ListEnvelope,
        enrich: EnrichFn | None = None,
        alert_title: str | None = None,
    ) -> PollSession[Any]:
        if self._disposed:
            raise RuntimeError("SyncRuntime has been disposed")
        return self.coordinator.use_polled_resource(
            resource_id,
            fetch_fn,
            interval_s=interval_s,
            retry_threshold=retry_threshold,
            response_model=response_model,
            enrich=enrich,
            alert_title=alert_title,
        )

    async def resolve_correlated(
        self,
        items: Iterable[Any],
        extractor: Extractor,
        resolver: Resolver,
        *,
        namespace: str = "ref",
        project: Callable[[Any, Mapping[RefId, Any]], Any] | None = None,
    ) -> CorrelationResult[Any]:
        return await self.resolver.resolve(
            items, extractor, resolver, namespace=namespace, project=project
        )

    def push_alert(
        self, title: str, variant: AlertVariant = "danger", ttl_s: float | None = None
    ) -> int:
        return self.alerts.push(title, variant, ttl_s)

    def remove_alert(self, key: int) -> None:
        self.alerts.remove(key)

    async def dispose(self) -> None:
        """Stop every session, cancel alert timers and in-flight requests."""
        if self._disposed:
            return
        self._disposed = True
        await self.coordinator.stop_all()
        await self.alerts.dispose()
        await self.cache.dispose()
        logger.debug("SyncRuntime disposed")

    async def __aenter__(self) -> "SyncRuntime":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()
