"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Typed runtime policies for polling, alerting and transport execution.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PollingPolicy:
    """Refresh cadence and alert gating for one polled resource."""

    interval_s: float = 30.0
    retry_threshold: int = 3

    def __post_init__(self) -> None:
        if self.interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        if self.retry_threshold < 1:
            raise ValueError("retry_threshold must be >= 1")


@dataclass(frozen=True, slots=True)
class AlertPolicy:
    """Lifetime and capacity of ephemeral alerts."""

    ttl_s: float = 5.0
    max_alerts: int | None = None

    def __post_init__(self) -> None:
        if self.ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        if self.max_alerts is not None and self.max_alerts < 1:
            raise ValueError("max_alerts must be >= 1 when set")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff semantics for one request path."""

    max_retries: int = 3
    backoff_base_s: float = 1.0
    backoff_max_s: float = 10.0
    backoff_factor: float = 2.0
    backoff_jitter_ratio: float = 0.3


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    """Per-fetch timeout layered on top of the transport."""

    request_timeout_s: float | None = 30.0
