"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Polling coordinator: keeps resources fresh on an interval.

Lifecycle of one session::

    Initializing --first settle--> Steady --stop()--> Stopped

``loading`` is only true while initializing. Failures in the first fetch are
blocking errors; later ("background") failures keep the last good snapshot
and are reported through the alert queue once ``retry_threshold``
consecutive failures accumulate.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Generic, TypeVar

from ..clock import Clock, SystemClock
from ..errors import AuthError, MalformedResponseError, SyncError, classify_error
from ..metrics import NoOpSyncMetrics, SyncMetrics
from ..types import ListEnvelope, parse_envelope
from .alerts import AlertQueue
from .coalescing import RequestKeyCache, request_key
from .contracts import PollingPolicy, TimeoutPolicy
from .timeouts import await_with_timeout

T = TypeVar("T")

logger = logging.getLogger("fulfillsync.polling")

FetchFn = Callable[[], Awaitable[Any]]
EnrichFn = Callable[[tuple[Any, ...]], Awaitable[Sequence[Any]]]


class PollPhase(str, Enum):
    INITIALIZING = "initializing"
    STEADY = "steady"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class ResourceSnapshot(Generic[T]):
    """Last known-good materialization of a polled resource."""

    items: tuple[T, ...]
    total: int
    size: int
    fetched_at: float


@dataclass(frozen=True, slots=True)
class PolledResourceState(Generic[T]):
    """
    Consumer-visible view of one poll session.

    Attributes:
        data: Last successful snapshot, or None before the first success.
        loading: True only while the session is initializing.
        error: Blocking error (no data to fall back to, or auth failure).
        background_error: Most recent failure since the last success.
        consecutive_failures: Background failures since the last success; a
            failed initial load is reported through `error` and not counted.
        version: Bumped on every published change.
    """

    resource_id: str
    phase: PollPhase
    data: ResourceSnapshot[T] | None = None
    loading: bool = True
    error: SyncError | None = None
    background_error: SyncError | None = None
    consecutive_failures: int = 0
    version: int = 0

    @property
    def last_error(self) -> SyncError | None:
        return self.error or self.background_error


StateListener = Callable[[PolledResourceState[Any]], None]


class PollSession(Generic[T]):
    """Handle for one polled resource; created by ``PollingCoordinator``."""

    def __init__(
        self,
        coordinator: PollingCoordinator,
        resource_id: str,
        fetch_fn: FetchFn,
        *,
        policy: PollingPolicy,
        response_model: type[ListEnvelope],
        enrich: EnrichFn | None,
        alert_title: str,
    ) -> None:
        self._coordinator = coordinator
        self._clock = coordinator.clock
        self._metrics = coordinator.metrics
        self._resource_id = resource_id
        self._fetch_fn = fetch_fn
        self._policy = policy
        self._response_model = response_model
        self._enrich = enrich
        self._alert_title = alert_title
        self._request_key = request_key(f"poll:{resource_id}")

        self._state: PolledResourceState[T] = PolledResourceState(
            resource_id=resource_id,
            phase=PollPhase.INITIALIZING,
        )
        self._active = True
        self._fetching = False
        self._wake = asyncio.Event()
        self._changed = asyncio.Event()
        self._listeners: list[StateListener] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def resource_id(self) -> str:
        return self._resource_id

    @property
    def interval_s(self) -> float:
        return self._policy.interval_s

    @property
    def retry_threshold(self) -> int:
        return self._policy.retry_threshold

    @property
    def phase(self) -> PollPhase:
        return self._state.phase

    @property
    def state(self) -> PolledResourceState[T]:
        return self._state

    @property
    def active(self) -> bool:
        return self._active

    @property
    def fetching(self) -> bool:
        """True while a fetch for this session is outstanding."""
        return self._fetching

    def _start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"poll:{self._resource_id}"
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def refresh(self) -> None:
        """
        Request an immediate fetch.

        Ignored while a fetch is outstanding; ticks are never queued.
        """
        if self._active and not self._fetching:
            self._wake.set()

    async def wait_for_version(self, version: int) -> PolledResourceState[T]:
        """Wait until the published state reaches `version` or the session stops."""
        while self._state.version < version and self._state.phase is not PollPhase.STOPPED:
            changed = self._changed
            await changed.wait()
        return self._state

    async def stop(self) -> None:
        """Tear down: stop scheduling, cancel the in-flight fetch, discard late results."""
        if not self._active:
            return
        self._active = False
        self._wake.set()
        self._publish(phase=PollPhase.STOPPED, loading=False)

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._coordinator._forget(self)  # noqa: SLF001
        self._listeners.clear()
        logger.info("Stopped polling %s", self._resource_id)

    async def _run(self) -> None:
        interval = self._policy.interval_s
        while self._active:
            started = self._clock.monotonic()
            await self._poll_once()
            if not self._active:
                return
            elapsed = self._clock.monotonic() - started
            skipped = int(elapsed // interval)
            if skipped:
                self._metrics.incr(
                    "sync_poll_ticks_skipped_total",
                    skipped,
                    tags={"resource": self._resource_id},
                )
                logger.debug(
                    "Fetch for %s took %.3fs; skipped %d tick(s)",
                    self._resource_id,
                    elapsed,
                    skipped,
                )
            await self._wait(interval - (elapsed % interval))

    async def _wait(self, delay_s: float) -> None:
        self._wake.clear()
        sleeper = asyncio.ensure_future(self._clock.sleep(delay_s))
        waker = asyncio.ensure_future(self._wake.wait())
        try:
            await asyncio.wait({sleeper, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waker):
                if not pending.done():
                    pending.cancel()
            await asyncio.gather(sleeper, waker, return_exceptions=True)

    async def _poll_once(self) -> None:
        self._fetching = True
        try:
            snapshot = await self._coordinator.cache.dedupe(self._request_key, self._fetch)
        except asyncio.CancelledError:
            raise
        except Exception as error:  # noqa: BLE001
            if not self._active:
                self._record("discarded")
                return
            self._on_failure(classify_error(error))
        else:
            if not self._active:
                self._record("discarded")
                return
            self._on_success(snapshot)
        finally:
            self._fetching = False

    async def _fetch(self) -> ResourceSnapshot[T]:
        payload = await await_with_timeout(
            self._fetch_fn(),
            self._coordinator.timeout_policy.request_timeout_s,
            clock=self._clock,
        )
        envelope = parse_envelope(payload, self._response_model)
        items = tuple(envelope.items)
        if self._enrich is not None:
            items = tuple(await self._enrich(items))
        return ResourceSnapshot(
            items=items,
            total=envelope.total,
            size=envelope.size,
            fetched_at=self._clock.monotonic(),
        )

    def _on_success(self, snapshot: ResourceSnapshot[T]) -> None:
        if self._state.phase is PollPhase.INITIALIZING:
            logger.info("Initial load of %s complete (%d items)", self._resource_id, len(snapshot.items))
        elif self._state.consecutive_failures:
            logger.info(
                "Refresh of %s recovered after %d failure(s)",
                self._resource_id,
                self._state.consecutive_failures,
            )
        self._record("success")
        self._publish(
            phase=PollPhase.STEADY,
            data=snapshot,
            loading=False,
            error=None,
            background_error=None,
            consecutive_failures=0,
        )

    def _on_failure(self, error: SyncError) -> None:
        self._record("failure")
        initializing = self._state.phase is PollPhase.INITIALIZING

        if isinstance(error, AuthError):
            logger.error("Authentication failed while polling %s: %s", self._resource_id, error)
            already_reported = isinstance(self._state.error, AuthError)
            self._publish(
                phase=PollPhase.STEADY,
                loading=False,
                error=error,
                background_error=error,
            )
            if not already_reported:
                self._coordinator.alerts.push(
                    f"Session expired. Sign in again to load {self._alert_title}.",
                    "danger",
                )
            return

        if isinstance(error, MalformedResponseError):
            logger.error("Malformed response while polling %s: %s", self._resource_id, error)
        elif initializing:
            logger.error("Initial load of %s failed: %s", self._resource_id, error)
        else:
            logger.warning("Background refresh of %s failed: %s", self._resource_id, error)

        failures = 0 if initializing else self._state.consecutive_failures + 1
        has_data = self._state.data is not None
        self._publish(
            phase=PollPhase.STEADY,
            loading=False,
            error=None if has_data else error,
            background_error=error,
            consecutive_failures=failures,
        )
        if initializing or failures % self._policy.retry_threshold:
            return
        if has_data:
            title = f"Failed to refresh {self._alert_title}. Showing cached data."
        else:
            title = f"Failed to load {self._alert_title}"
        self._coordinator.alerts.push(title, "danger")

    def _record(self, result: str) -> None:
        self._metrics.incr(
            "sync_poll_fetch_total",
            tags={"resource": self._resource_id, "result": result},
        )

    def _publish(self, **changes: Any) -> None:
        self._state = replace(self._state, version=self._state.version + 1, **changes)
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:  # noqa: BLE001
                logger.exception("Poll state listener failed for %s", self._resource_id)


class PollingCoordinator:
    """Owns poll sessions and the collaborators they share."""

    def __init__(
        self,
        *,
        cache: RequestKeyCache,
        alerts: AlertQueue,
        policy: PollingPolicy | None = None,
        timeout_policy: TimeoutPolicy | None = None,
        clock: Clock | None = None,
        metrics: SyncMetrics | None = None,
    ) -> None:
        self.cache = cache
        self.alerts = alerts
        self.policy = policy or PollingPolicy()
        self.timeout_policy = timeout_policy or TimeoutPolicy(request_timeout_s=None)
        self.clock = clock or SystemClock()
        self.metrics: SyncMetrics = metrics or NoOpSyncMetrics()
        self._sessions: list[PollSession[Any]] = []

    @property
    def sessions(self) -> tuple[PollSession[Any], ...]:
        return tuple(self._sessions)

    def use_polled_resource(
        self,
        resource_id: str,
        fetch_fn: FetchFn,
        *,
        interval_s: float | None = None,
        retry_threshold: int | None = None,
        policy: PollingPolicy | None = None,
        response_model: type[ListEnvelope] = ListEnvelope,
        enrich: EnrichFn | None = None,
        alert_title: str | None = None,
    ) -> PollSession[Any]:
        """
        Start keeping `resource_id` fresh and return its session handle.

        `fetch_fn` must return a list envelope ``{items, total, size}``.
        Sessions sharing a `resource_id` share in-flight fetches.
        Must be called from a running event loop.
        """
        base = policy or self.policy
        resolved = PollingPolicy(
            interval_s=base.interval_s if interval_s is None else interval_s,
            retry_threshold=base.retry_threshold if retry_threshold is None else retry_threshold,
        )
        session: PollSession[Any] = PollSession(
            self,
            resource_id,
            fetch_fn,
            policy=resolved,
            response_model=response_model,
            enrich=enrich,
            alert_title=alert_title or resource_id.replace("_", " "),
        )
        self._sessions.append(session)
        session._start()  # noqa: SLF001
        logger.info(
            "Polling %s every %gs (alert after %d failures)",
            resource_id,
            resolved.interval_s,
            resolved.retry_threshold,
        )
        return session

    async def stop_all(self) -> None:
        for session in list(self._sessions):
            await session.stop()

    def _forget(self, session: PollSession[Any]) -> None:
        if session in self._sessions:
            self._sessions.remove(session)
