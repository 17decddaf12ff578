"""JSON conversions used by the OFREP REST resolver."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from .core import EvaluationContext

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def _field_to_json(value: Any) -> Any:
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, datetime):
        return str(value)
    return repr(value)


def context_to_json(context: EvaluationContext | None) -> dict[str, Any]:
    """Convert an evaluation context into the JSON object sent in an OFREP request."""
    fields: dict[str, Any] = {}
    if context is None:
        return fields
    if context.targeting_key is not None:
        fields["targetingKey"] = context.targeting_key
    for key, value in context.custom_fields.items():
        fields[key] = _field_to_json(value)
    return fields


def json_to_feature_value(value: Any) -> Any:
    """Convert a decoded JSON value into a flag value.

    Null becomes an empty string; integers outside the signed 64-bit range become floats.
    """
    if value is None:
        return ""
    if isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value if _I64_MIN <= value <= _I64_MAX else float(value)
    if isinstance(value, float):
        return value
    if isinstance(value, list):
        return [json_to_feature_value(item) for item in value]
    if isinstance(value, dict):
        return {key: json_to_feature_value(item) for key, item in value.items()}
    return 0