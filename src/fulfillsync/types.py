"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Shared payload types for backend list responses.
"""

from __future__ import annotations

from typing import Any, TypeAlias, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from .errors import MalformedResponseError

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]

M = TypeVar("M", bound=BaseModel)


class ListEnvelope(BaseModel):
    """List response envelope: ``{items, total, size}``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    items: list[Any]
    total: int
    size: int

    @model_validator(mode="before")
    @classmethod
    def _default_counts(cls, data: Any) -> Any:
        # Backends omit the counters on small lists.
        if isinstance(data, dict) and isinstance(data.get("items"), list):
            count = len(data["items"])
            data = {
                **data,
                "total": count if data.get("total") is None else data["total"],
                "size": count if data.get("size") is None else data["size"],
            }
        return data


def parse_envelope(payload: Any, model: type[M]) -> M:
    """Validate `payload` against `model` or raise ``MalformedResponseError``."""
    if isinstance(payload, model):
        return payload
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Expected a JSON object envelope, got {type(payload).__name__}"
        )
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponseError(f"Response does not match {model.__name__}: {exc}") from exc
