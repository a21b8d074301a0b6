"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Synchronization-layer settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .runtime.contracts import AlertPolicy, PollingPolicy, RetryPolicy, TimeoutPolicy


def _env_first(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty environment variable in `names`."""
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


@dataclass(frozen=True, slots=True)
class SyncSettings:
    """Explicit settings used by the transport, poller and alert queue."""

    api_base_url: str | None = None

    poll_interval_s: float = 30.0
    retry_threshold: int = 3
    alert_ttl_s: float = 5.0

    request_timeout_s: float | None = 30.0
    read_max_retries: int = 3
    write_max_retries: int = 2
    backoff_base_s: float = 1.0
    backoff_max_s: float = 10.0
    backoff_factor: float = 2.0
    backoff_jitter_ratio: float = 0.3

    @staticmethod
    def from_env() -> "SyncSettings":
        """Load settings from `FULFILLSYNC_*` environment variables."""
        timeout_raw = _env_first("FULFILLSYNC_REQUEST_TIMEOUT_S", default="30")
        return SyncSettings(
            api_base_url=_env_first("FULFILLSYNC_API_URL"),
            poll_interval_s=float(_env_first("FULFILLSYNC_POLL_INTERVAL_S", default="30") or "30"),
            retry_threshold=int(_env_first("FULFILLSYNC_RETRY_THRESHOLD", default="3") or "3"),
            alert_ttl_s=float(_env_first("FULFILLSYNC_ALERT_TTL_S", default="5") or "5"),
            request_timeout_s=(
                None if timeout_raw in (None, "none", "0") else float(timeout_raw)
            ),
            read_max_retries=int(_env_first("FULFILLSYNC_READ_MAX_RETRIES", default="3") or "3"),
            write_max_retries=int(_env_first("FULFILLSYNC_WRITE_MAX_RETRIES", default="2") or "2"),
            backoff_base_s=float(_env_first("FULFILLSYNC_BACKOFF_BASE_S", default="1.0") or "1.0"),
            backoff_max_s=float(_env_first("FULFILLSYNC_BACKOFF_MAX_S", default="10") or "10"),
            backoff_factor=float(_env_first("FULFILLSYNC_BACKOFF_FACTOR", default="2") or "2"),
            backoff_jitter_ratio=float(
                _env_first("FULFILLSYNC_BACKOFF_JITTER_RATIO", default="0.3") or "0.3"
            ),
        )

    def polling_policy(self) -> PollingPolicy:
        return PollingPolicy(
            interval_s=self.poll_interval_s,
            retry_threshold=self.retry_threshold,
        )

    def alert_policy(self) -> AlertPolicy:
        return AlertPolicy(ttl_s=self.alert_ttl_s)

    def timeout_policy(self) -> TimeoutPolicy:
        return TimeoutPolicy(request_timeout_s=self.request_timeout_s)

    def read_retry_policy(self) -> RetryPolicy:
        """Retry policy for GET requests."""
        return self._retry_policy(self.read_max_retries)

    def write_retry_policy(self) -> RetryPolicy:
        """Retry policy for mutations; fewer attempts than reads."""
        return self._retry_policy(self.write_max_retries)

    def _retry_policy(self, max_retries: int) -> RetryPolicy:
        return RetryPolicy(
            max_retries=max_retries,
            backoff_base_s=self.backoff_base_s,
            backoff_max_s=self.backoff_max_s,
            backoff_factor=self.backoff_factor,
            backoff_jitter_ratio=self.backoff_jitter_ratio,
        )
