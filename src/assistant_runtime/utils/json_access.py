"""Typed accessors for loosely structured JSON payloads.

Upstream payloads arrive as plain ``dict``/``list`` trees. The helpers here
walk those trees and fail loudly with :class:`ShapeError` when a required
field is missing or has the wrong type, instead of letting ``None`` leak into
the orchestration code.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

_MISSING = object()


class ShapeError(ValueError):
    """Raised when a JSON payload does not have the expected shape."""

    def __init__(self, message: str, *, path: Sequence[str | int] = ()) -> None:
        self.path = tuple(path)
        location = _format_path(self.path)
        super().__init__(f"{message} (at {location})" if location else message)


def _format_path(path: Sequence[str | int]) -> str:
    parts: list[str] = []
    for key in path:
        if isinstance(key, int):
            parts.append(f"[{key}]")
        elif parts:
            parts.append(f".{key}")
        else:
            parts.append(str(key))
    return "".join(parts)


def dig(data: Any, *path: str | int, default: Any = None) -> Any:
    """Return the value at ``path`` or ``default`` when any hop is absent."""

    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, Sequence) or isinstance(current, (str, bytes)):
                return default
            if key >= len(current) or key < -len(current):
                return default
            current = current[key]
        else:
            if not isinstance(current, Mapping) or key not in current:
                return default
            current = current[key]
    return current


def first_present(data: Any, *paths: Sequence[str | int]) -> Any:
    """Return the first non-empty value found along ``paths`` (tried in order)."""

    for path in paths:
        value = dig(data, *path)
        if value is not None and value != "":
            return value
    return None


def require(data: Any, *path: str | int) -> Any:
    """Return the value at ``path`` or raise :class:`ShapeError`."""

    value = dig(data, *path, default=_MISSING)
    if value is _MISSING:
        raise ShapeError("Missing required field", path=path)
    return value


def require_mapping(data: Any, *path: str | int) -> Mapping[str, Any]:
    value = require(data, *path) if path else data
    if not isinstance(value, Mapping):
        raise ShapeError(
            f"Expected an object but found {type(value).__name__}", path=path
        )
    return value


def require_list(data: Any, *path: str | int) -> list[Any]:
    value = require(data, *path) if path else data
    if not isinstance(value, list):
        raise ShapeError(
            f"Expected an array but found {type(value).__name__}", path=path
        )
    return value


def require_str(data: Any, *path: str | int, allow_empty: bool = False) -> str:
    value = require(data, *path)
    if not isinstance(value, str):
        raise ShapeError(
            f"Expected a string but found {type(value).__name__}", path=path
        )
    if not allow_empty and not value:
        raise ShapeError("Expected a non-empty string", path=path)
    return value


def optional_str(data: Any, *path: str | int) -> str | None:
    """Return a string at ``path``; ``None`` when absent, error when mistyped."""

    value = dig(data, *path)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ShapeError(
            f"Expected a string but found {type(value).__name__}", path=path
        )
    return value


def decode_json_object(raw: str | bytes) -> dict[str, Any]:
    """Decode ``raw`` and insist on a JSON object at the top level."""

    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ShapeError(f"Invalid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ShapeError(
            f"Expected a JSON object but found {type(decoded).__name__}"
        )
    return decoded


__all__ = [
    "ShapeError",
    "decode_json_object",
    "dig",
    "first_present",
    "optional_str",
    "require",
    "require_list",
    "require_mapping",
    "require_str",
]
