from __future__ import annotations

import asyncio

import pytest

from fulfillsync import AlertPolicy, AlertQueue, ManualClock


def run_async(coro):
    return asyncio.run(coro)


def test_alerts_pushed_in_the_same_tick_get_distinct_keys():
    async def scenario() -> None:
        clock = ManualClock()
        queue = AlertQueue(clock=clock)

        first = queue.push("Failed to refresh clusters", "danger", 5.0)
        second = queue.push("Failed to refresh clusters", "danger", 5.0)

        assert first != second
        assert second > first
        assert [alert.key for alert in queue.alerts] == [first, second]
        assert queue.alerts[0].created_at == queue.alerts[1].created_at
        await queue.dispose()

    run_async(scenario())


def test_remove_is_idempotent():
    async def scenario() -> None:
        queue = AlertQueue(clock=ManualClock())
        key = queue.push("Saved", "success")

        queue.remove(key)
        version = queue.version
        assert key not in queue

        queue.remove(key)
        queue.remove(9999)
        assert queue.version == version
        assert queue.alerts == ()

    run_async(scenario())


def test_alert_expires_after_ttl():
    async def scenario() -> None:
        clock = ManualClock()
        queue = AlertQueue(clock=clock)
        key = queue.push("Failed to load virtual machines", "danger", 5.0)
        await clock.drain()

        await clock.advance(4.9)
        assert key in queue

        await clock.advance(0.2)
        assert key not in queue
        assert len(queue) == 0

    run_async(scenario())


def test_default_ttl_comes_from_policy():
    async def scenario() -> None:
        clock = ManualClock()
        queue = AlertQueue(policy=AlertPolicy(ttl_s=2.0), clock=clock)
        queue.push("Heads up", "warning")
        assert queue.alerts[0].ttl_s == 2.0

        await clock.advance(2.0)
        assert len(queue) == 0

    run_async(scenario())


def test_removed_alert_does_not_fire_expiry_later():
    async def scenario() -> None:
        clock = ManualClock()
        queue = AlertQueue(clock=clock)
        key = queue.push("Transient", "info", 1.0)
        await clock.drain()
        queue.remove(key)
        version = queue.version

        await clock.advance(5.0)
        assert queue.version == version

    run_async(scenario())


def test_max_alerts_evicts_oldest():
    async def scenario() -> None:
        queue = AlertQueue(policy=AlertPolicy(max_alerts=2), clock=ManualClock())
        first = queue.push("one")
        second = queue.push("two")
        third = queue.push("three")

        keys = [alert.key for alert in queue.alerts]
        assert first not in keys
        assert keys == [second, third]
        await queue.dispose()

    run_async(scenario())


def test_listeners_receive_snapshots_until_unsubscribed():
    async def scenario() -> None:
        queue = AlertQueue(clock=ManualClock())
        seen: list[int] = []
        unsubscribe = queue.subscribe(lambda alerts: seen.append(len(alerts)))

        key = queue.push("one")
        queue.push("two")
        queue.remove(key)
        unsubscribe()
        queue.clear()

        assert seen == [1, 2, 1]
        await queue.dispose()

    run_async(scenario())


def test_invalid_variant_and_ttl_are_rejected():
    async def scenario() -> None:
        queue = AlertQueue(clock=ManualClock())
        with pytest.raises(ValueError):
            queue.push("bad", "critical")  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            queue.push("bad", "danger", 0)
        assert len(queue) == 0

    run_async(scenario())
