"""Utility helpers for the assistant runtime."""

from .json_access import (
    ShapeError,
    decode_json_object,
    dig,
    first_present,
    require,
    require_mapping,
    require_str,
)

__all__ = [
    "ShapeError",
    "decode_json_object",
    "dig",
    "first_present",
    "require",
    "require_mapping",
    "require_str",
]
