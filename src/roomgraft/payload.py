"""Helpers for reading and rewriting untyped prop payloads.

Room files are plain JSON, so every prop payload is one of a closed set of
shapes: ``None``, ``bool``, ``int``, ``float``, ``str``, a list of values or a
string-keyed mapping of values. Scalar fields such as ``ID`` may be stored
either directly (``"ID": 4``) or wrapped one level deep (``"ID": {"value": 4}``);
the accessors below understand both conventions.
"""

from __future__ import annotations

import copy
from typing import Any, TypeAlias, Union

JsonValue: TypeAlias = Union[
    None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]
]
JsonObject: TypeAlias = dict[str, JsonValue]


def as_integer(value: JsonValue) -> int | None:
    """Return ``value`` as an ``int`` when it is an integral JSON number."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def read_int_field(obj: JsonObject, name: str) -> int:
    """Return the integer stored under ``name`` or ``0`` when absent."""

    raw = obj.get(name)
    if isinstance(raw, dict):
        raw = raw.get("value")
    return as_integer(raw) or 0


def read_str_field(obj: JsonObject, name: str, fallback: str | None) -> str | None:
    """Return the non-empty string stored under ``name`` or ``fallback``."""

    raw = obj.get(name)
    if isinstance(raw, dict):
        raw = raw.get("value")
    if isinstance(raw, str) and raw:
        return raw
    return fallback


def write_int_field(obj: JsonObject, name: str, value: int) -> None:
    """Store ``value`` under ``name`` keeping the field's existing shape.

    Flat numeric fields stay flat; anything else (including a missing field)
    is written in the nested ``{"value": ...}`` form.
    """

    current = obj.get(name)
    if isinstance(current, dict):
        current["value"] = value
    elif isinstance(current, (int, float)) and not isinstance(current, bool):
        obj[name] = value
    else:
        obj[name] = {"value": value}


def clone_payload(obj: Any) -> Any:
    """Return an independent deep copy of a payload subtree."""

    return copy.deepcopy(obj)


__all__ = [
    "JsonObject",
    "JsonValue",
    "as_integer",
    "clone_payload",
    "read_int_field",
    "read_str_field",
    "write_int_field",
]
