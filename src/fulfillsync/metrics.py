"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for synchronization-layer observability.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol


class SyncMetrics(Protocol):
    """Minimal metrics interface for cache, poller and transport instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""


class NoOpSyncMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags


class PrometheusSyncMetrics(SyncMetrics):
    """
    Prometheus-backed metrics adapter.

    Requires `prometheus_client` package.
    """

    def __init__(self, *, namespace: str = "fulfillsync", registry=None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusSyncMetrics requires `prometheus_client` to be installed."
            ) from exc

        self._Counter = Counter
        self._namespace = namespace
        self._registry = registry if registry is not None else REGISTRY
        self._counters: dict[str, object] = {}

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        label_names = tuple(sorted((tags or {}).keys()))
        key = f"{name}|{','.join(label_names)}"
        counter = self._counters.get(key)
        if counter is None:
            counter = self._Counter(
                name=name,
                documentation=f"fulfillsync metric {name}",
                namespace=self._namespace,
                labelnames=label_names,
                registry=self._registry,
            )
            self._counters[key] = counter

        if label_names:
            label_values = [str((tags or {})[label]) for label in label_names]
            counter.labels(*label_values).inc(value)
        else:
            counter.inc(value)


class InMemorySyncMetrics:
    """Counter store keyed by name and sorted tags; used in tests and debugging."""

    def __init__(self) -> None:
        self.counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = {}

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        key = (name, tuple(sorted((tags or {}).items())))
        self.counters[key] = self.counters.get(key, 0) + value

    def total(self, name: str, **tags: str) -> int:
        """Sum counters named `name` whose tags include every given tag."""
        wanted = set(tags.items())
        return sum(
            value
            for (metric, labels), value in self.counters.items()
            if metric == name and wanted.issubset(set(labels))
        )
