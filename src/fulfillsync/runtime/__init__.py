"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/__init__.py.
"""

from .alerts import Alert, AlertQueue, AlertVariant
from .coalescing import InFlightEntry, RequestKeyCache, request_key
from .contracts import AlertPolicy, PollingPolicy, RetryPolicy, TimeoutPolicy
from .correlation import (
    Correlated,
    CorrelationResolver,
    CorrelationResult,
    Unresolved,
    is_unresolved,
    resolve_correlated,
)
from .polling import (
    PolledResourceState,
    PollingCoordinator,
    PollPhase,
    PollSession,
    ResourceSnapshot,
)
from .retry import backoff_delay, call_with_retry
from .timeouts import await_with_timeout

__all__ = [
    "Alert",
    "AlertQueue",
    "AlertVariant",
    "InFlightEntry",
    "RequestKeyCache",
    "request_key",
    "AlertPolicy",
    "PollingPolicy",
    "RetryPolicy",
    "TimeoutPolicy",
    "Correlated",
    "CorrelationResolver",
    "CorrelationResult",
    "Unresolved",
    "is_unresolved",
    "resolve_correlated",
    "PolledResourceState",
    "PollingCoordinator",
    "PollPhase",
    "PollSession",
    "ResourceSnapshot",
    "backoff_delay",
    "call_with_retry",
    "await_with_timeout",
]
