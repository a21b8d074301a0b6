"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Resolve foreign-key style references across independently fetched
collections into one denormalized projection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from ..errors import PartialResolutionError
from ..metrics import NoOpSyncMetrics, SyncMetrics
from .coalescing import RequestKeyCache, request_key

P = TypeVar("P")

logger = logging.getLogger("fulfillsync.correlation")

RefId = Hashable
Extractor = Callable[[Any], "Iterable[RefId] | RefId | None"]
Resolver = Callable[[Any], Awaitable[Any]]

_EMPTY: Mapping[Any, Any] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class Unresolved:
    """Marker for a reference whose resolver failed in this pass."""

    ref_id: RefId
    error: PartialResolutionError | None = field(default=None, compare=False)

    def __bool__(self) -> bool:
        return False


def is_unresolved(value: Any) -> bool:
    return isinstance(value, Unresolved)


@dataclass(frozen=True, slots=True)
class Correlated(Generic[P]):
    """
    One primary element merged with its references.

    `chained` is only populated by two-level passes: it maps each first-level
    reference id to the second-level references of its resolved value.
    """

    item: P
    refs: Mapping[RefId, Any] = field(default_factory=lambda: _EMPTY)
    chained: Mapping[RefId, Mapping[RefId, Any]] = field(default_factory=lambda: _EMPTY)

    @property
    def resolved(self) -> bool:
        """True when every direct reference resolved."""
        return not any(is_unresolved(value) for value in self.refs.values())


@dataclass(frozen=True, slots=True)
class CorrelationResult(Generic[P]):
    """Index of distinct references plus the projected primary collection."""

    index: Mapping[RefId, Any]
    projected: tuple[Any, ...]
    errors: tuple[PartialResolutionError, ...] = ()

    @property
    def unresolved(self) -> tuple[RefId, ...]:
        return tuple(ref_id for ref_id, value in self.index.items() if is_unresolved(value))


def extract_ids(extractor: Extractor, item: Any) -> tuple[RefId, ...]:
    """Normalize extractor output (None, one id, or many ids) to distinct ids in order."""
    raw = extractor(item)
    if raw is None:
        return ()
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        return (raw,)
    seen: dict[RefId, None] = {}
    for ref_id in raw:
        if ref_id is not None:
            seen.setdefault(ref_id, None)
    return tuple(seen)


def resolver_tag(resolver: Resolver) -> str:
    """
    Stable identity of `resolver` for request keys.

    Bound methods of one instance share a tag even though each attribute
    access builds a new method object; distinct instances, functions and
    lambdas never do.
    """
    func = getattr(resolver, "__func__", resolver)
    owner = getattr(resolver, "__self__", None)
    name = getattr(func, "__qualname__", None) or type(func).__qualname__
    module = getattr(func, "__module__", None) or type(func).__module__
    anchor = owner if owner is not None else func
    return f"{module}.{name}@{id(anchor):x}"


class CorrelationResolver:
    """
    Resolve each distinct reference once per pass, through the request cache.

    No state is carried between passes; the index is rebuilt every call.
    Lookups are keyed by namespace, resolver identity and id, so passes
    only share in-flight work when they resolve through the same callable.
    """

    def __init__(
        self,
        cache: RequestKeyCache | None = None,
        *,
        metrics: SyncMetrics | None = None,
    ) -> None:
        self._cache = cache
        self._metrics: SyncMetrics = metrics or NoOpSyncMetrics()

    async def resolve(
        self,
        items: Sequence[P] | Iterable[P],
        extractor: Extractor,
        resolver: Resolver,
        *,
        namespace: str = "ref",
        project: Callable[[P, Mapping[RefId, Any]], Any] | None = None,
    ) -> CorrelationResult[P]:
        """
        Build ``index`` (id -> value | Unresolved) and ``projected``.

        A failing resolver marks only its own id unresolved; other ids and
        every other primary element are unaffected.
        """
        primary = tuple(items)
        per_item = [extract_ids(extractor, item) for item in primary]

        distinct: dict[RefId, None] = {}
        for ids in per_item:
            for ref_id in ids:
                distinct.setdefault(ref_id, None)
        ref_ids = tuple(distinct)

        cache = self._cache if self._cache is not None else RequestKeyCache()
        scope = f"{namespace}:{resolver_tag(resolver)}"
        outcomes = await asyncio.gather(
            *(self._resolve_one(cache, scope, ref_id, resolver) for ref_id in ref_ids),
            return_exceptions=True,
        )

        index: dict[RefId, Any] = {}
        errors: list[PartialResolutionError] = []
        for ref_id, outcome in zip(ref_ids, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                failure = PartialResolutionError(ref_id, outcome)
                failure.__cause__ = outcome
                errors.append(failure)
                index[ref_id] = Unresolved(ref_id, failure)
                logger.warning("Could not resolve %s reference %r: %s", namespace, ref_id, outcome)
            else:
                index[ref_id] = outcome
        if errors:
            self._metrics.incr(
                "sync_unresolved_refs_total", len(errors), tags={"namespace": namespace}
            )

        frozen_index = MappingProxyType(index)
        projected = tuple(
            self._project(item, ids, frozen_index, project)
            for item, ids in zip(primary, per_item)
        )
        logger.debug(
            "Resolved %d distinct %s reference(s) for %d item(s); %d unresolved",
            len(ref_ids),
            namespace,
            len(primary),
            len(errors),
        )
        return CorrelationResult(index=frozen_index, projected=projected, errors=tuple(errors))

    async def resolve_chain(
        self,
        items: Sequence[P] | Iterable[P],
        extractor: Extractor,
        resolver: Resolver,
        then_extractor: Extractor,
        then_resolver: Resolver,
        *,
        namespace: str = "ref",
        then_namespace: str | None = None,
    ) -> tuple[CorrelationResult[P], CorrelationResult[Any]]:
        """
        Compose two passes: ids from `items`, then ids from the resolved values.

        Returns ``(first, second)``. ``first.projected`` holds ``Correlated``
        elements whose ``chained`` mapping carries the second-level refs for
        each first-level reference. ``second.projected`` follows the order of
        the resolved first-level values.
        """
        first = await self.resolve(items, extractor, resolver, namespace=namespace)

        resolved_refs = [
            (ref_id, value) for ref_id, value in first.index.items() if not is_unresolved(value)
        ]
        second = await self.resolve(
            [value for _, value in resolved_refs],
            then_extractor,
            then_resolver,
            namespace=then_namespace or f"{namespace}.next",
        )

        chained_by_ref: dict[RefId, Mapping[RefId, Any]] = {}
        for ref_id, value in resolved_refs:
            chained_by_ref[ref_id] = MappingProxyType(
                {key: second.index[key] for key in extract_ids(then_extractor, value)}
            )

        projected = tuple(
            replace_chained(element, chained_by_ref) for element in first.projected
        )
        return (
            CorrelationResult(index=first.index, projected=projected, errors=first.errors),
            second,
        )

    async def _resolve_one(
        self,
        cache: RequestKeyCache,
        scope: str,
        ref_id: RefId,
        resolver: Resolver,
    ) -> Any:
        key = request_key(scope, {"id": ref_id})
        return await cache.dedupe(key, lambda: resolver(ref_id))

    @staticmethod
    def _project(
        item: P,
        ids: tuple[RefId, ...],
        index: Mapping[RefId, Any],
        project: Callable[[P, Mapping[RefId, Any]], Any] | None,
    ) -> Any:
        refs = MappingProxyType({ref_id: index[ref_id] for ref_id in ids})
        if project is not None:
            return project(item, refs)
        return Correlated(item=item, refs=refs)


def replace_chained(
    element: Correlated[P],
    chained_by_ref: Mapping[RefId, Mapping[RefId, Any]],
) -> Correlated[P]:
    chained = MappingProxyType(
        {ref_id: chained_by_ref.get(ref_id, _EMPTY) for ref_id in element.refs}
    )
    return Correlated(item=element.item, refs=element.refs, chained=chained)


async def resolve_correlated(
    items: Sequence[P] | Iterable[P],
    extractor: Extractor,
    resolver: Resolver,
    *,
    cache: RequestKeyCache | None = None,
    namespace: str = "ref",
    project: Callable[[P, Mapping[RefId, Any]], Any] | None = None,
) -> CorrelationResult[P]:
    """Functional form of ``CorrelationResolver.resolve``."""
    return await CorrelationResolver(cache).resolve(
        items, extractor, resolver, namespace=namespace, project=project
    )
