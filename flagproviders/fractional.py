"""The ``fractional`` targeting operator and the hash it buckets with."""

from __future__ import annotations

import logging
import math
import struct
from typing import Any

log = logging.getLogger(__name__)

_MASK = 0xFFFFFFFF
_C1 = 0xCC9E2D51
_C2 = 0x1B873593


def _rotl(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & _MASK


def _mix_block(k: int) -> int:
    k = (k * _C1) & _MASK
    k = _rotl(k, 15)
    return (k * _C2) & _MASK


def murmurhash3_x86_32(data: bytes, seed: int = 0) -> int:
    """32-bit MurmurHash3 (x86 variant) of ``data``."""
    h = seed & _MASK
    body_len = len(data) - len(data) % 4
    for (block,) in struct.iter_unpack("<I", data[:body_len]):
        h ^= _mix_block(block)
        h = _rotl(h, 13)
        h = (h * 5 + 0xE6546B64) & _MASK
    tail = data[body_len:]
    if tail:
        h ^= _mix_block(int.from_bytes(tail, "little"))
    h ^= len(data)
    h ^= h >> 16
    h = (h * 0x85EBCA6B) & _MASK
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & _MASK
    h ^= h >> 16
    return h


def _lookup_str(mapping: Any, key: str) -> str:
    if isinstance(mapping, dict):
        value = mapping.get(key)
        if isinstance(value, str):
            return value
    return ""


def _share(weight: int, total: int) -> float:
    if total:
        return weight * 100.0 / total
    if weight == 0:
        return math.nan
    return math.copysign(math.inf, weight)


def fractional(args: list, data: Any) -> str | None:
    """Pick a variant by hashing a bucketing key into weighted buckets."""
    if not args:
        log.debug("No arguments provided for fractional targeting.")
        return None

    if isinstance(args[0], str):
        bucket_by, distributions = args[0], args[1:]
    else:
        flagd = data.get("$flagd") if isinstance(data, dict) else None
        bucket_by = _lookup_str(flagd, "flagKey") + _lookup_str(data, "targetingKey")
        distributions = args
    log.debug("Bucketing by %r", bucket_by)

    if not distributions:
        log.debug("No bucket definitions provided.")
        return None

    buckets: list[tuple[str, int]] = []
    for dist in distributions:
        if not isinstance(dist, list) or len(dist) < 2:
            log.debug("Invalid bucket definition: %r", dist)
            continue
        variant = dist[0] if isinstance(dist[0], str) else ""
        raw_weight = dist[1]
        weight = (
            raw_weight
            if isinstance(raw_weight, int) and not isinstance(raw_weight, bool)
            else 1
        )
        buckets.append((variant, weight))
    total_weight = sum(weight for _, weight in buckets)

    bucket = murmurhash3_x86_32(bucket_by.encode("utf-8"), 0) / _MASK * 100.0
    bucket_sum = 0.0
    for variant, weight in buckets:
        bucket_sum += _share(weight, total_weight)
        if bucket < bucket_sum:
            log.debug("Selected variant %s for bucket value %.4f", variant, bucket)
            return variant

    log.debug("No bucket matched for bucket value %.4f", bucket)
    return None