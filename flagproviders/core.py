"""Shared evaluation types: errors, contexts, resolution details and the provider interface."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")

ContextValue = Union[str, bool, int, float, datetime, dict]


class ErrorCode(str, enum.Enum):
    """Categories of evaluation failure."""

    PROVIDER_NOT_READY = "PROVIDER_NOT_READY"
    FLAG_NOT_FOUND = "FLAG_NOT_FOUND"
    PARSE_ERROR = "PARSE_ERROR"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    TARGETING_KEY_MISSING = "TARGETING_KEY_MISSING"
    INVALID_CONTEXT = "INVALID_CONTEXT"
    GENERAL = "GENERAL"


class EvaluationReason(str, enum.Enum):
    """Why a flag resolved to the value it did."""

    STATIC = "STATIC"
    DEFAULT = "DEFAULT"
    TARGETING_MATCH = "TARGETING_MATCH"
    SPLIT = "SPLIT"
    CACHED = "CACHED"
    DISABLED = "DISABLED"
    UNKNOWN = "UNKNOWN"
    ERROR = "ERROR"


class EvaluationError(Exception):
    """Raised when a flag cannot be resolved.

    ``detail`` carries the free-form description attached to a general error code.
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str | None = None,
        detail: str | None = None,
    ) -> None:
        self.code = ErrorCode(code)
        self.message = message
        self.detail = detail
        super().__init__(self._describe())

    def _describe(self) -> str:
        text = self.code.value
        if self.detail:
            text += f" ({self.detail})"
        if self.message:
            text += f": {self.message}"
        return text


@dataclass
class EvaluationContext:
    """The subject of an evaluation: an optional targeting key plus custom fields."""

    targeting_key: str | None = None
    custom_fields: dict[str, ContextValue] = field(default_factory=dict)

    def with_targeting_key(self, key: str) -> EvaluationContext:
        """Return a copy of this context with the targeting key set."""
        return replace(self, targeting_key=key, custom_fields=dict(self.custom_fields))


@dataclass
class ResolutionDetails(Generic[T]):
    """A resolved flag value with its variant, reason and metadata."""

    value: T
    variant: str | None = None
    reason: EvaluationReason | str | None = None
    flag_metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class ProviderMetadata:
    """Descriptive information about a provider."""

    name: str


class FeatureProvider(ABC):
    """Interface every flag provider implements."""

    metadata: ProviderMetadata

    @abstractmethod
    async def resolve_bool_value(
        self, flag_key: str, ctx: EvaluationContext
    ) -> ResolutionDetails[bool]:
        """Resolve a boolean flag."""

    @abstractmethod
    async def resolve_int_value(
        self, flag_key: str, ctx: EvaluationContext
    ) -> ResolutionDetails[int]:
        """Resolve an integer flag."""

    @abstractmethod
    async def resolve_float_value(
        self, flag_key: str, ctx: EvaluationContext
    ) -> ResolutionDetails[float]:
        """Resolve a floating point flag."""

    @abstractmethod
    async def resolve_string_value(
        self, flag_key: str, ctx: EvaluationContext
    ) -> ResolutionDetails[str]:
        """Resolve a string flag."""

    @abstractmethod
    async def resolve_struct_value(
        self, flag_key: str, ctx: EvaluationContext
    ) -> ResolutionDetails[dict]:
        """Resolve a structured flag."""