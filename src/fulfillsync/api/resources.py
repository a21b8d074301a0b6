"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Resource helpers for hosts, host classes, clusters, virtual machines and
templates. Reads coalesce through the request cache; writes never do.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import MalformedResponseError
from ..runtime.coalescing import RequestKeyCache, request_key
from ..runtime.correlation import CorrelationResolver, CorrelationResult
from ..types import JSONObject, ListEnvelope, parse_envelope
from .transport import FulfillmentClient

logger = logging.getLogger("fulfillsync.api")

HOSTS_PATH = "/api/private/v1/hosts"
HOST_CLASSES_PATH = "/api/private/v1/host_classes"
HOST_CLASS_CATALOG_PATH = "/api/host-classes"
CLUSTERS_PATH = "/api/private/v1/clusters"
CLUSTER_TEMPLATES_PATH = "/api/fulfillment/v1/cluster_templates"
VIRTUAL_MACHINES_PATH = "/api/fulfillment/v1/virtual_machines"
TEMPLATES_PATH = "/api/fulfillment/v1/virtual_machine_templates"


def host_class_id(host: Mapping[str, Any]) -> str | None:
    """Class id a host references under ``spec.class``."""
    spec = host.get("spec")
    if isinstance(spec, Mapping):
        value = spec.get("class")
        if isinstance(value, str) and value:
            return value
    return None


def cluster_host_class_ids(cluster: Mapping[str, Any]) -> list[str]:
    """Host class ids referenced by a cluster's host sets (spec and status)."""
    ids: list[str] = []
    for section in ("spec", "status"):
        block = cluster.get(section)
        if not isinstance(block, Mapping):
            continue
        host_sets = block.get("host_sets")
        if not isinstance(host_sets, Mapping):
            continue
        for host_set in host_sets.values():
            if isinstance(host_set, Mapping):
                value = host_set.get("host_class")
                if isinstance(value, str) and value and value not in ids:
                    ids.append(value)
    return ids


def catalog_name(host_class: Mapping[str, Any]) -> str | None:
    """Catalog key of a fulfillment host class: ``metadata.name``."""
    metadata = host_class.get("metadata")
    if isinstance(metadata, Mapping):
        name = metadata.get("name")
        if isinstance(name, str) and name:
            return name
    return None


class FulfillmentAPI:
    """Typed-ish access to the fulfillment endpoints used by the console."""

    def __init__(
        self,
        client: FulfillmentClient,
        cache: RequestKeyCache,
        *,
        resolver: CorrelationResolver | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._resolver = resolver or CorrelationResolver(cache)

    async def _list(
        self, operation: str, path: str, params: Mapping[str, Any] | None = None
    ) -> ListEnvelope:
        async def _fetch() -> ListEnvelope:
            payload = await self._client.get(path, params)
            return parse_envelope(payload, ListEnvelope)

        return await self._cache.dedupe(request_key(operation, params), _fetch)

    async def _get(self, operation: str, path: str, ref_id: str) -> JSONObject:
        async def _fetch() -> JSONObject:
            payload = await self._client.get(f"{path}/{ref_id}")
            if not isinstance(payload, dict):
                raise MalformedResponseError(f"Expected a JSON object from {path}/{ref_id}")
            return payload

        return await self._cache.dedupe(request_key(operation, {"id": ref_id}), _fetch)

    async def list_hosts(
        self,
        *,
        offset: int | None = None,
        limit: int | None = None,
        filter: str | None = None,  # noqa: A002
    ) -> ListEnvelope:
        params = {"offset": offset, "limit": limit, "filter": filter or None}
        return await self._list("hosts", HOSTS_PATH, params)

    async def get_host(self, host_id: str) -> JSONObject:
        return await self._get("host", HOSTS_PATH, host_id)

    async def update_host(self, host: Mapping[str, Any]) -> Any:
        host_id = host.get("id")
        if not isinstance(host_id, str) or not host_id:
            raise ValueError("host.id is required")
        return await self._client.put(f"{HOSTS_PATH}/{host_id}", dict(host))

    async def delete_host(self, host_id: str) -> None:
        await self._client.delete(f"{HOSTS_PATH}/{host_id}")

    async def get_host_class(self, class_id: str) -> JSONObject:
        return await self._get("host_class", HOST_CLASSES_PATH, class_id)

    async def get_host_class_catalog(self) -> dict[str, JSONObject]:
        """Static catalog of host class descriptors keyed by class name."""

        async def _fetch() -> dict[str, JSONObject]:
            payload = await self._client.get(HOST_CLASS_CATALOG_PATH)
            if not isinstance(payload, dict):
                raise MalformedResponseError("Host class catalog must be a JSON object")
            return payload

        return await self._cache.dedupe(request_key("host_class_catalog"), _fetch)

    async def list_clusters(self, *, filter: str | None = None) -> ListEnvelope:  # noqa: A002
        return await self._list("clusters", CLUSTERS_PATH, {"filter": filter or None})

    async def list_cluster_templates(self) -> ListEnvelope:
        return await self._list("cluster_templates", CLUSTER_TEMPLATES_PATH)

    async def list_virtual_machines(self) -> ListEnvelope:
        return await self._list("virtual_machines", VIRTUAL_MACHINES_PATH)

    async def list_templates(self) -> ListEnvelope:
        return await self._list("templates", TEMPLATES_PATH)

    async def _catalog_entry(self, name: str) -> JSONObject:
        catalog = await self.get_host_class_catalog()
        entry = catalog.get(name)
        if entry is None:
            raise KeyError(f'Host class name "{name}" not found in static catalog')
        return entry

    async def resolve_host_classes(
        self, hosts: Iterable[Mapping[str, Any]]
    ) -> tuple[CorrelationResult[Any], CorrelationResult[Any]]:
        """
        Resolve host -> class id -> fulfillment class -> catalog entry.

        The catalog itself is fetched once per pass through the cache.
        """
        return await self._resolver.resolve_chain(
            hosts,
            host_class_id,
            self.get_host_class,
            catalog_name,
            self._catalog_entry,
            namespace="resolve:host_class",
            then_namespace="resolve:host_class_catalog",
        )

    async def resolve_cluster_host_classes(
        self, clusters: Iterable[Mapping[str, Any]]
    ) -> CorrelationResult[Any]:
        return await self._resolver.resolve(
            clusters,
            cluster_host_class_ids,
            self.get_host_class,
            namespace="resolve:host_class",
        )
