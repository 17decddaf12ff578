"""A feature provider backed by a Flipt server."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import urlsplit

import httpx

from .core import (
    ErrorCode,
    EvaluationContext,
    EvaluationError,
    FeatureProvider,
    ProviderMetadata,
    ResolutionDetails,
)
from .flipt_utils import parse_json, translate_context, translate_error

_DEFAULT_ENTITY_ID = ""
_METADATA = "flipt"
_PARSE_ERROR = "Parse error"
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1
_INT_PATTERN = re.compile(r"[+-]?\d+")
_FLOAT_PATTERN = re.compile(
    r"[+-]?(?:inf|infinity|nan|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)", re.IGNORECASE
)


@dataclass(frozen=True)
class NoneAuthentication:
    """No authentication."""

    def headers(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True)
class ClientTokenAuthentication:
    """Authentication with a static client token."""

    token: str

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass(frozen=True)
class JWTAuthentication:
    """Authentication with a JSON Web Token."""

    token: str

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"JWT {self.token}"}


AuthenticationStrategy = Union[NoneAuthentication, ClientTokenAuthentication, JWTAuthentication]


@dataclass
class Config:
    """Connection settings: server URL, authentication and timeout in seconds."""

    url: str
    authentication_strategy: AuthenticationStrategy = field(default_factory=NoneAuthentication)
    timeout: int = 60


@dataclass(frozen=True)
class _Variant:
    key: str
    attachment: str


def _parse_error(message: str) -> EvaluationError:
    return EvaluationError(ErrorCode.GENERAL, message=message, detail=_PARSE_ERROR)


class FliptProvider(FeatureProvider):
    """Resolves flags through the Flipt evaluation API."""

    def __init__(self, namespace: str, config: Config) -> None:
        parts = urlsplit(config.url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"invalid Flipt URL: {config.url!r}")
        _ = parts.port  # raises ValueError for an invalid port
        self.metadata = ProviderMetadata(_METADATA)
        self.namespace = namespace
        self._client = httpx.AsyncClient(
            base_url=config.url,
            headers=config.authentication_strategy.headers(),
            timeout=float(config.timeout),
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> FliptProvider:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _evaluate(
        self, path: str, flag_key: str, ctx: EvaluationContext | None, required: str
    ) -> dict[str, Any]:
        ctx = ctx or EvaluationContext()
        body = {
            "namespaceKey": self.namespace,
            "flagKey": flag_key,
            "entityId": ctx.targeting_key if ctx.targeting_key is not None else _DEFAULT_ENTITY_ID,
            "context": translate_context(ctx),
        }
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise EvaluationError(
                ErrorCode.GENERAL, message=str(exc), detail="Flipt request failed"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            if response.is_error:
                raise translate_error(response.status_code, response.text) from exc
            raise EvaluationError(
                ErrorCode.GENERAL,
                message=f"Invalid response body: {exc}",
                detail="Flipt response error",
            ) from exc

        if isinstance(payload, dict) and required not in payload:
            if "code" in payload and "message" in payload:
                raise translate_error(payload["code"], payload["message"])
        if response.is_error:
            raise translate_error(response.status_code, response.text)
        if not isinstance(payload, dict) or required not in payload:
            raise EvaluationError(
                ErrorCode.GENERAL,
                message=f"Response is missing `{required}`",
                detail="Flipt response error",
            )
        return payload

    async def _variant(self, flag_key: str, ctx: EvaluationContext | None) -> _Variant:
        payload = await self._evaluate("/evaluate/v1/variant", flag_key, ctx, "variantKey")
        return _Variant(
            key=str(payload["variantKey"]),
            attachment=str(payload.get("variantAttachment") or ""),
        )

    async def resolve_bool_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[bool]:
        payload = await self._evaluate("/evaluate/v1/boolean", flag_key, ctx, "enabled")
        enabled = payload["enabled"]
        if not isinstance(enabled, bool):
            raise _parse_error(f"Expected a boolean, but found `{enabled}`")
        return ResolutionDetails(enabled)

    async def resolve_int_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[int]:
        variant = await self._variant(flag_key, ctx)
        if _INT_PATTERN.fullmatch(variant.key):
            value = int(variant.key)
            if _I64_MIN <= value <= _I64_MAX:
                return ResolutionDetails(value)
            reason = "number too large to fit in target type"
        else:
            reason = "invalid digit found in string"
        raise _parse_error(
            f"Expected a number in range of i64, but found `{variant.attachment}` ({reason})"
        )

    async def resolve_float_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[float]:
        variant = await self._variant(flag_key, ctx)
        if not _FLOAT_PATTERN.fullmatch(variant.key):
            raise _parse_error(
                f"Expected a number in range of f64, but found `{variant.attachment}` "
                "(invalid float literal)"
            )
        return ResolutionDetails(float(variant.key))

    async def resolve_string_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[str]:
        variant = await self._variant(flag_key, ctx)
        return ResolutionDetails(variant.key)

    async def resolve_struct_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[dict]:
        variant = await self._variant(flag_key, ctx)
        value = parse_json(variant.attachment)
        if not isinstance(value, dict):
            raise _parse_error(
                f"Expected a struct value, but found `{variant.attachment}`"
            )
        return ResolutionDetails(value)