"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Client-side data synchronization for the fulfillment console.

Quick start::

    from fulfillsync import SyncRuntime, request_key

    async with SyncRuntime.create() as runtime:
        session = runtime.use_polled_resource("clusters", api.list_clusters)
        state = await session.wait_for_version(1)
"""

from .auth import StaticTokenProvider, TokenProvider, require_token
from .clock import Clock, ManualClock, SystemClock
from .errors import (
    AuthError,
    HTTPError,
    MalformedResponseError,
    NetworkError,
    PartialResolutionError,
    SyncError,
    classify_error,
)
from .metrics import InMemorySyncMetrics, NoOpSyncMetrics, PrometheusSyncMetrics, SyncMetrics
from .runtime import (
    Alert,
    AlertPolicy,
    AlertQueue,
    Correlated,
    CorrelationResolver,
    CorrelationResult,
    PolledResourceState,
    PollingCoordinator,
    PollingPolicy,
    PollPhase,
    PollSession,
    RequestKeyCache,
    ResourceSnapshot,
    RetryPolicy,
    TimeoutPolicy,
    Unresolved,
    is_unresolved,
    request_key,
    resolve_correlated,
)
from .runtime.engine import SyncRuntime
from .settings import SyncSettings
from .types import ListEnvelope

__all__ = [
    "SyncRuntime",
    "SyncSettings",
    "RequestKeyCache",
    "request_key",
    "AlertQueue",
    "Alert",
    "PollingCoordinator",
    "PollSession",
    "PollPhase",
    "PolledResourceState",
    "ResourceSnapshot",
    "CorrelationResolver",
    "CorrelationResult",
    "Correlated",
    "Unresolved",
    "is_unresolved",
    "resolve_correlated",
    "AlertPolicy",
    "PollingPolicy",
    "RetryPolicy",
    "TimeoutPolicy",
    "ListEnvelope",
    "Clock",
    "SystemClock",
    "ManualClock",
    "TokenProvider",
    "StaticTokenProvider",
    "require_token",
    "SyncMetrics",
    "NoOpSyncMetrics",
    "InMemorySyncMetrics",
    "PrometheusSyncMetrics",
    "SyncError",
    "AuthError",
    "NetworkError",
    "HTTPError",
    "MalformedResponseError",
    "PartialResolutionError",
    "classify_error",
]


def __getattr__(name: str):
    """Lazily expose the REST helpers, which pull in the transport stack."""
    if name in ("FulfillmentAPI", "FulfillmentClient"):
        from . import api

        return getattr(api, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
