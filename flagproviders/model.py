"""Flag definitions and the parser for flagd flag configuration documents."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


def _require(data: dict, key: str, kind: type, kind_name: str) -> Any:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, kind):
        raise ValueError(f"field `{key}` must be {kind_name}")
    return value


@dataclass
class FeatureFlag:
    """One flag: its state, variants, default variant and optional targeting rule."""

    state: str
    default_variant: str
    variants: dict[str, Any]
    targeting: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> FeatureFlag:
        """Build a flag from its decoded JSON definition."""
        if not isinstance(data, dict):
            raise ValueError("flag definition must be an object")
        metadata = data.get("metadata", {})
        if not isinstance(metadata, dict):
            raise ValueError("field `metadata` must be an object")
        return cls(
            state=_require(data, "state", str, "a string"),
            default_variant=_require(data, "defaultVariant", str, "a string"),
            variants=dict(_require(data, "variants", dict, "an object")),
            targeting=data.get("targeting"),
            metadata=dict(metadata),
        )

    def get_targeting(self) -> str:
        """The targeting rule as compact JSON, or "{}" when there is none."""
        if self.targeting is None:
            return "{}"
        return json.dumps(
            self.targeting, separators=(",", ":"), sort_keys=True, ensure_ascii=False
        )


@dataclass
class ParsingResult:
    """All flags of a configuration plus the flag set metadata."""

    flags: dict[str, FeatureFlag]
    flag_set_metadata: dict[str, Any]


def parse_string(configuration: str) -> ParsingResult:
    """Parse a flag configuration document."""
    document = json.loads(configuration)
    if not isinstance(document, dict):
        raise ValueError("Invalid JSON structure")
    flags = document.get("flags")
    if not isinstance(flags, dict):
        raise ValueError("No flag configurations found in the payload")
    metadata = document.get("metadata")
    flag_set_metadata = dict(metadata) if isinstance(metadata, dict) else {}
    return ParsingResult(
        flags={key: FeatureFlag.from_dict(value) for key, value in flags.items()},
        flag_set_metadata=flag_set_metadata,
    )