"""A resolver that evaluates flags over HTTP with the OpenFeature Remote Evaluation Protocol."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import httpx

from .core import (
    ErrorCode,
    EvaluationContext,
    EvaluationError,
    EvaluationReason,
    FeatureProvider,
    ProviderMetadata,
    ResolutionDetails,
)
from .rest_convert import context_to_json, json_to_feature_value

log = logging.getLogger(__name__)

_METADATA = "flagd-rest-provider"
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if _I64_MIN <= value <= _I64_MAX else None


def _as_struct(value: Any) -> dict | None:
    converted = json_to_feature_value(value)
    return converted if isinstance(converted, dict) else None


class RestResolver(FeatureProvider):
    """Resolves flags by posting evaluation requests to an OFREP service."""

    def __init__(
        self, host: str = "localhost", port: int = 8016, target_uri: str | None = None
    ) -> None:
        if target_uri is not None:
            self.endpoint = f"http://{target_uri}"
        else:
            self.endpoint = f"http://{host}:{port}"
        self.metadata = ProviderMetadata(_METADATA)

    def __repr__(self) -> str:
        return f"RestResolver(endpoint={self.endpoint!r})"

    async def _resolve(
        self,
        flag_key: str,
        ctx: EvaluationContext | None,
        type_name: str,
        extract: Callable[[Any], Any],
    ) -> ResolutionDetails[Any]:
        log.debug("Resolving %s flag %s", type_name, flag_key)
        payload = {"context": context_to_json(ctx)}
        url = f"{self.endpoint}/ofrep/v1/evaluate/flags/{flag_key}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url, json=payload, headers={"Content-Type": "application/json"}
                )
        except httpx.HTTPError as exc:
            log.error("Failed to resolve %s value: %s", type_name, exc)
            raise EvaluationError(
                ErrorCode.GENERAL,
                message=str(exc),
                detail=f"Failed to resolve {type_name} value",
            ) from exc

        log.debug("Received response with status %d", response.status_code)

        try:
            result = json.loads(response.content, parse_constant=_reject_constant)
        except ValueError as exc:
            log.error("Failed to parse %s response: %s", type_name, exc)
            raise EvaluationError(ErrorCode.PARSE_ERROR, message=str(exc)) from exc

        raw_value = result.get("value") if isinstance(result, dict) else None
        raw_variant = result.get("variant") if isinstance(result, dict) else None

        value = extract(raw_value)
        if value is None:
            log.error("Invalid %s value in response", type_name)
            raise EvaluationError(
                ErrorCode.PARSE_ERROR, message=f"Invalid {type_name} value"
            )

        variant = raw_variant if isinstance(raw_variant, str) else None
        log.debug("Flag %s evaluated with variant %r", flag_key, variant)
        return ResolutionDetails(
            value=value,
            variant=variant,
            reason=EvaluationReason.STATIC,
            flag_metadata=None,
        )

    async def resolve_bool_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[bool]:
        return await self._resolve(flag_key, ctx, "boolean", _as_bool)

    async def resolve_int_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[int]:
        return await self._resolve(flag_key, ctx, "integer", _as_int)

    async def resolve_float_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[float]:
        return await self._resolve(flag_key, ctx, "float", _as_float)

    async def resolve_string_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[str]:
        return await self._resolve(flag_key, ctx, "string", _as_str)

    async def resolve_struct_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[dict]:
        return await self._resolve(flag_key, ctx, "struct", _as_struct)