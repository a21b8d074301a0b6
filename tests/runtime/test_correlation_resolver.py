from __future__ import annotations

import asyncio

import pytest

from fulfillsync import (
    Correlated,
    CorrelationResolver,
    HTTPError,
    InMemorySyncMetrics,
    PartialResolutionError,
    RequestKeyCache,
    Unresolved,
    is_unresolved,
    resolve_correlated,
)
from fulfillsync.runtime.correlation import extract_ids, resolver_tag


def run_async(coro):
    return asyncio.run(coro)


HOSTS = [
    {"id": "h1", "spec": {"class": "small"}},
    {"id": "h2", "spec": {"class": "large"}},
    {"id": "h3", "spec": {"class": "small"}},
    {"id": "h4", "spec": {"class": "large"}},
    {"id": "h5", "spec": {"class": "small"}},
]


def _class_of(host):
    return host["spec"]["class"]


class _Classes:
    def __init__(self, missing: tuple[str, ...] = (), delay_s: float = 0.0) -> None:
        self.missing = missing
        self.delay_s = delay_s
        self.calls: list[str] = []

    async def get(self, class_id: str) -> dict:
        self.calls.append(class_id)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if class_id in self.missing:
            raise HTTPError(404, "Not Found", url=f"/host_classes/{class_id}")
        return {"id": class_id, "metadata": {"name": f"{class_id}-catalog"}}


def test_each_distinct_reference_is_resolved_once():
    async def scenario() -> None:
        classes = _Classes()
        result = await CorrelationResolver().resolve(HOSTS, _class_of, classes.get)

        assert sorted(classes.calls) == ["large", "small"]
        assert set(result.index) == {"small", "large"}
        assert len(result.projected) == 5
        assert all(isinstance(element, Correlated) for element in result.projected)
        assert result.projected[0].item is HOSTS[0]
        assert result.projected[0].refs["small"]["id"] == "small"
        assert result.projected[1].refs["large"]["id"] == "large"
        assert result.errors == ()
        assert result.unresolved == ()

    run_async(scenario())


def test_failed_reference_is_marked_unresolved_without_failing_the_pass():
    async def scenario() -> None:
        classes = _Classes(missing=("large",))
        metrics = InMemorySyncMetrics()
        resolver = CorrelationResolver(metrics=metrics)

        result = await resolver.resolve(HOSTS, _class_of, classes.get, namespace="host_class")

        marker = result.index["large"]
        assert isinstance(marker, Unresolved)
        assert not marker
        assert marker.ref_id == "large"
        assert isinstance(marker.error, PartialResolutionError)
        assert marker.error.ref_id == "large"
        assert isinstance(marker.error.__cause__, HTTPError)
        assert result.unresolved == ("large",)
        assert len(result.errors) == 1

        assert result.projected[0].resolved is True
        assert result.projected[1].resolved is False
        assert is_unresolved(result.projected[1].refs["large"])
        assert metrics.total("sync_unresolved_refs_total", namespace="host_class") == 1

    run_async(scenario())


def test_rerunning_a_pass_rebuilds_an_equal_index():
    async def scenario() -> None:
        classes = _Classes()
        resolver = CorrelationResolver()
        first = await resolver.resolve(HOSTS, _class_of, classes.get)
        second = await resolver.resolve(HOSTS, _class_of, classes.get)

        assert dict(first.index) == dict(second.index)
        assert first.index is not second.index
        assert len(classes.calls) == 4

    run_async(scenario())


def test_concurrent_passes_share_in_flight_lookups_through_the_cache():
    async def scenario() -> None:
        classes = _Classes(delay_s=0.01)
        cache = RequestKeyCache()
        resolver = CorrelationResolver(cache)

        first, second = await asyncio.gather(
            resolver.resolve(HOSTS, _class_of, classes.get, namespace="host_class"),
            resolver.resolve(HOSTS[:2], _class_of, classes.get, namespace="host_class"),
        )

        assert sorted(classes.calls) == ["large", "small"]
        assert first.index["small"] == second.index["small"]
        assert len(cache) == 0

    run_async(scenario())


def test_extractor_may_return_none_one_id_or_many():
    assert extract_ids(lambda item: None, {}) == ()
    assert extract_ids(lambda item: "small", {}) == ("small",)
    assert extract_ids(lambda item: 7, {}) == (7,)
    assert extract_ids(lambda item: ["a", "b", "a", None], {}) == ("a", "b")

    async def scenario() -> None:
        items = [{"refs": None}, {"refs": "a"}, {"refs": ["a", "b"]}]
        classes = _Classes()
        result = await resolve_correlated(items, lambda item: item["refs"], classes.get)

        assert sorted(classes.calls) == ["a", "b"]
        assert dict(result.projected[0].refs) == {}
        assert list(result.projected[2].refs) == ["a", "b"]

    run_async(scenario())


def test_two_level_chain_marks_missing_catalog_names_unresolved():
    async def scenario() -> None:
        classes = _Classes()
        catalog = {"small-catalog": {"title": "Small"}}
        lookups: list[str] = []

        async def catalog_entry(name: str) -> dict:
            lookups.append(name)
            if name not in catalog:
                raise KeyError(name)
            return catalog[name]

        first, second = await CorrelationResolver().resolve_chain(
            HOSTS,
            _class_of,
            classes.get,
            lambda host_class: host_class["metadata"]["name"],
            catalog_entry,
            namespace="host_class",
            then_namespace="catalog",
        )

        assert sorted(lookups) == ["large-catalog", "small-catalog"]
        assert second.index["small-catalog"] == {"title": "Small"}
        assert isinstance(second.index["large-catalog"], Unresolved)

        small_host = first.projected[0]
        assert small_host.chained["small"]["small-catalog"] == {"title": "Small"}
        large_host = first.projected[1]
        assert is_unresolved(large_host.chained["large"]["large-catalog"])

    run_async(scenario())


def test_project_hook_shapes_each_element():
    async def scenario() -> None:
        classes = _Classes(missing=("large",))

        def project(host, refs):
            value = refs[_class_of(host)]
            return {"host": host["id"], "class": value["id"] if value else None}

        result = await CorrelationResolver().resolve(
            HOSTS, _class_of, classes.get, project=project
        )
        assert result.projected[0] == {"host": "h1", "class": "small"}
        assert result.projected[1] == {"host": "h2", "class": None}

    run_async(scenario())


def test_cancellation_is_not_captured_as_unresolved():
    async def scenario() -> None:
        async def cancelled(ref_id):
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await CorrelationResolver().resolve(HOSTS[:1], _class_of, cancelled)

    run_async(scenario())


def test_concurrent_passes_with_different_resolvers_never_share_results():
    async def scenario() -> None:
        cache = RequestKeyCache()
        resolver = CorrelationResolver(cache)

        async def host_class(ref_id):
            await asyncio.sleep(0.01)
            return {"id": ref_id, "kind": "host_class"}

        async def template(ref_id):
            await asyncio.sleep(0.01)
            return {"id": ref_id, "kind": "template"}

        classes, templates = await asyncio.gather(
            resolver.resolve(["small"], lambda item: item, host_class),
            resolver.resolve(["small"], lambda item: item, template),
        )

        assert classes.index["small"]["kind"] == "host_class"
        assert templates.index["small"]["kind"] == "template"

    run_async(scenario())


def test_bound_methods_of_one_instance_share_a_resolver_identity():
    first, second = _Classes(), _Classes()
    assert resolver_tag(first.get) == resolver_tag(first.get)
    assert resolver_tag(first.get) != resolver_tag(second.get)
    by_id, by_name = (lambda ref_id: ref_id), (lambda ref_id: ref_id)
    assert resolver_tag(by_id) != resolver_tag(by_name)
