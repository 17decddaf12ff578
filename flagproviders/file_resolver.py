"""An in-process resolver that evaluates flags from a local configuration file."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, TypeVar

from .connector import FileConnector
from .core import (
    ErrorCode,
    EvaluationContext,
    EvaluationError,
    EvaluationReason,
    FeatureProvider,
    ProviderMetadata,
    ResolutionDetails,
)
from .store import FlagStore, StorageState, StoreError
from .targeting import Operator

log = logging.getLogger(__name__)

T = TypeVar("T")

_METADATA = "flagd"
_INITIAL_STATE_TIMEOUT = 5.0
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def _is_i64(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and _I64_MIN <= value <= _I64_MAX


def _as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _as_int(value: Any) -> int | None:
    return value if _is_i64(value) else None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _struct_field(value: Any) -> Any:
    if isinstance(value, (str, bool)):
        return value
    if _is_i64(value):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _as_struct(value: Any) -> dict | None:
    if not isinstance(value, dict):
        return None
    return {key: _struct_field(item) for key, item in value.items()}


class FileResolver(FeatureProvider):
    """Resolves flags from a file that is re-read periodically."""

    def __init__(self, store: FlagStore) -> None:
        self._store = store
        self._operator = Operator()
        self.metadata = ProviderMetadata(_METADATA)

    @classmethod
    async def create(cls, source_path: str) -> FileResolver:
        """Load the file and wait until the store reports a healthy state."""
        store = FlagStore(FileConnector(source_path))
        try:
            await store.init()
            try:
                change = await asyncio.wait_for(
                    store.state_changes.get(), _INITIAL_STATE_TIMEOUT
                )
            except asyncio.TimeoutError as exc:
                raise StoreError("Timeout waiting for initial flag state") from exc
            if change.storage_state is not StorageState.OK:
                raise StoreError("Failed to initialize flag store")
        except BaseException:
            await store.shutdown()
            raise
        return cls(store)

    async def close(self) -> None:
        """Stop watching the file."""
        await self._store.shutdown()

    async def __aenter__(self) -> FileResolver:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _resolve(
        self,
        flag_key: str,
        ctx: EvaluationContext | None,
        convert: Callable[[Any], T | None],
        type_name: str,
    ) -> ResolutionDetails[T]:
        ctx = ctx or EvaluationContext()
        flag = (await self._store.get_flag(flag_key)).feature_flag
        if flag is None:
            raise EvaluationError(ErrorCode.FLAG_NOT_FOUND, f"Flag {flag_key} not found")
        if flag.state == "DISABLED":
            raise EvaluationError(ErrorCode.FLAG_NOT_FOUND, f"Flag {flag_key} is disabled")

        targeting = flag.get_targeting()
        variant = flag.default_variant
        if targeting != "{}":
            try:
                selected = self._operator.apply(flag_key, targeting, ctx)
            except ValueError as exc:
                raise EvaluationError(
                    ErrorCode.GENERAL, message=str(exc), detail=str(exc)
                ) from exc
            if selected is not None:
                variant = selected

        value = convert(flag.variants[variant]) if variant in flag.variants else None
        if value is None:
            raise EvaluationError(
                ErrorCode.TYPE_MISMATCH,
                f"Value for flag {flag_key} is not a {type_name}",
            )
        log.debug("Resolved flag %s to variant %s", flag_key, variant)
        return ResolutionDetails(
            value=value,
            variant=variant,
            reason=EvaluationReason.TARGETING_MATCH,
            flag_metadata=None,
        )

    async def resolve_bool_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[bool]:
        return await self._resolve(flag_key, ctx, _as_bool, "boolean")

    async def resolve_int_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[int]:
        return await self._resolve(flag_key, ctx, _as_int, "integer")

    async def resolve_float_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[float]:
        return await self._resolve(flag_key, ctx, _as_float, "float")

    async def resolve_string_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[str]:
        return await self._resolve(flag_key, ctx, _as_str, "string")

    async def resolve_struct_value(
        self, flag_key: str, ctx: EvaluationContext | None = None
    ) -> ResolutionDetails[dict]:
        return await self._resolve(flag_key, ctx, _as_struct, "struct")