from __future__ import annotations

import asyncio

import pytest

from fulfillsync import (
    InMemorySyncMetrics,
    ManualClock,
    PollPhase,
    PrometheusSyncMetrics,
    SyncRuntime,
    SyncSettings,
    request_key,
)


def run_async(coro):
    return asyncio.run(coro)


def _page(*names: str) -> dict:
    return {"items": [{"id": name} for name in names]}


def test_runtime_wires_settings_into_each_component():
    async def scenario() -> None:
        clock = ManualClock()
        settings = SyncSettings(poll_interval_s=15.0, retry_threshold=2, alert_ttl_s=3.0)
        runtime = SyncRuntime.create(settings, clock=clock)
        calls = {"count": 0}

        async def fetch():
            calls["count"] += 1
            return _page("a")

        session = runtime.use_polled_resource("clusters", fetch)
        assert session.interval_s == 15.0
        assert session.retry_threshold == 2

        await clock.advance(15.0)
        assert calls["count"] == 2

        key = runtime.push_alert("Cluster deleted", "success")
        assert runtime.alerts.alerts[0].ttl_s == 3.0
        runtime.remove_alert(key)
        assert len(runtime.alerts) == 0

        await runtime.dispose()
        assert session.phase is PollPhase.STOPPED
        assert runtime.disposed

    run_async(scenario())


def test_runtime_context_manager_disposes_everything():
    async def scenario() -> None:
        clock = ManualClock()
        async with SyncRuntime.create(clock=clock) as runtime:
            runtime.push_alert("Host updated", "info")
            blocker = asyncio.Event()

            async def never():
                await blocker.wait()

            pending = asyncio.create_task(runtime.dedupe(request_key("hosts"), never))
            await clock.drain()
            assert request_key("hosts") in runtime.cache

        assert runtime.disposed
        assert runtime.cache.disposed
        assert len(runtime.alerts) == 0
        assert clock.pending_sleepers == 0
        with pytest.raises(asyncio.CancelledError):
            await pending
        with pytest.raises(RuntimeError):
            runtime.use_polled_resource("hosts", lambda: None)
        with pytest.raises(RuntimeError):
            await runtime.dedupe("hosts|{}", lambda: None)

    run_async(scenario())


def test_runtime_resolves_correlated_references_through_its_cache():
    async def scenario() -> None:
        metrics = InMemorySyncMetrics()
        runtime = SyncRuntime.create(clock=ManualClock(), metrics=metrics)

        async def lookup(ref_id):
            return {"id": ref_id}

        result = await runtime.resolve_correlated(
            [{"ref": "x"}, {"ref": "x"}], lambda item: item["ref"], lookup
        )
        assert dict(result.index) == {"x": {"id": "x"}}
        assert metrics.total("sync_requests_total", outcome="started") == 1
        await runtime.dispose()

    run_async(scenario())


def test_prometheus_metrics_adapter_counts_labelled_requests():
    prometheus_client = pytest.importorskip("prometheus_client")
    registry = prometheus_client.CollectorRegistry()
    metrics = PrometheusSyncMetrics(registry=registry)

    metrics.incr("sync_requests_total", tags={"outcome": "started"})
    metrics.incr("sync_requests_total", tags={"outcome": "coalesced"})
    metrics.incr("sync_requests_total", tags={"outcome": "coalesced"})

    value = registry.get_sample_value(
        "fulfillsync_sync_requests_total", {"outcome": "coalesced"}
    )
    assert value == 2.0


def test_runtime_passes_with_different_lookups_keep_their_own_values():
    async def scenario() -> None:
        runtime = SyncRuntime.create(clock=ManualClock())

        async def host_class(ref_id):
            await asyncio.sleep(0)
            return {"id": ref_id, "kind": "host_class"}

        async def template(ref_id):
            await asyncio.sleep(0)
            return {"id": ref_id, "kind": "template"}

        clusters, vms = await asyncio.gather(
            runtime.resolve_correlated([{"ref": "small"}], lambda item: item["ref"], host_class),
            runtime.resolve_correlated([{"ref": "small"}], lambda item: item["ref"], template),
        )
        assert clusters.index["small"]["kind"] == "host_class"
        assert vms.index["small"]["kind"] == "template"
        await runtime.dispose()

    run_async(scenario())
