"""Conversions between flag values and JSON values."""

from __future__ import annotations

import math
from typing import Any

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def to_json(value: Any) -> Any:
    """Convert a flag value to JSON; arrays and structs become empty containers."""
    if isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, list):
        return []
    if isinstance(value, dict):
        return {}
    raise TypeError(f"unsupported flag value: {value!r}")


def from_json(value: Any) -> Any:
    """Convert a scalar JSON value to a flag value, or None when it is not a scalar."""
    if isinstance(value, (str, bool)):
        return value
    if isinstance(value, int):
        return value if _I64_MIN <= value <= _I64_MAX else float(value)
    if isinstance(value, float):
        return value
    return None