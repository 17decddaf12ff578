"""Conversions between Flipt wire data and evaluation types."""

from __future__ import annotations

import json
from typing import Any

from .core import ErrorCode, EvaluationContext, EvaluationError

_JSON_PARSE_ERROR = "Parse error in JSON"
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1
_U64_MAX = 2**64 - 1


def translate_error(code: Any, message: str) -> EvaluationError:
    """Turn an upstream Flipt error into an evaluation error."""
    return EvaluationError(
        ErrorCode.GENERAL,
        message=f"{code}: {message}",
        detail=f'Flipt error: {code}, message: "{message}"',
    )


def translate_context(ctx: EvaluationContext) -> dict[str, str]:
    """Keep only the string-valued custom fields of a context."""
    return {key: value for key, value in ctx.custom_fields.items() if isinstance(value, str)}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def parse_json(text: str) -> Any:
    """Parse a JSON document into plain evaluation values."""
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise EvaluationError(
            ErrorCode.GENERAL,
            message=f"Failed to parse JSON: {exc}",
            detail=_JSON_PARSE_ERROR,
        ) from exc
    return json_to_value(data)


def json_to_value(value: Any) -> Any:
    """Validate and convert a decoded JSON value; null is not supported."""
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, int):
        if _I64_MIN <= value <= _I64_MAX:
            return value
        if 0 <= value <= _U64_MAX:
            raise EvaluationError(
                ErrorCode.GENERAL,
                message=f"Expected a number of type i64 or f64, but found `{value}`",
                detail=_JSON_PARSE_ERROR,
            )
        return float(value)
    if isinstance(value, float):
        return value
    if value is None:
        raise EvaluationError(
            ErrorCode.GENERAL,
            message="Unsupported JSON value: null",
            detail=_JSON_PARSE_ERROR,
        )
    if isinstance(value, list):
        return [json_to_value(item) for item in value]
    if isinstance(value, dict):
        return {key: json_to_value(item) for key, item in value.items()}
    raise EvaluationError(
        ErrorCode.GENERAL,
        message=f"Unsupported JSON value: {value!r}",
        detail=_JSON_PARSE_ERROR,
    )