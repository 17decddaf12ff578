"""The ``sem_ver`` targeting operator."""

from __future__ import annotations

import logging
from typing import Any

import semver

log = logging.getLogger(__name__)


def _build_key(build: str | None) -> tuple:
    if not build:
        return ()
    return tuple(
        (0, int(segment), len(segment)) if segment.isdigit() else (1, segment)
        for segment in build.split(".")
    )


def _compare(left: semver.Version, right: semver.Version) -> int:
    result = left.compare(right)
    if result:
        return result
    lkey, rkey = _build_key(left.build), _build_key(right.build)
    return (lkey > rkey) - (lkey < rkey)


def _parse(arg: Any, position: str) -> semver.Version | None:
    if not isinstance(arg, str):
        log.debug("%s argument must be a string: %r", position, arg)
        return None
    try:
        return semver.Version.parse(arg)
    except ValueError as exc:
        log.debug("Failed to parse %s version %r: %s", position, arg, exc)
        return None


_COMPARISONS = {
    "=": lambda c: c == 0,
    "!=": lambda c: c != 0,
    "<": lambda c: c < 0,
    "<=": lambda c: c <= 0,
    ">": lambda c: c > 0,
    ">=": lambda c: c >= 0,
}


def sem_ver(args: list, data: Any = None) -> bool | None:
    """Compare two semantic versions with an operator; None when the arguments are invalid."""
    if len(args) != 3:
        log.debug("SemVer requires exactly 3 arguments, got %d", len(args))
        return None
    first = _parse(args[0], "first")
    if first is None:
        return None
    operator = args[1]
    if not isinstance(operator, str):
        log.debug("Operator must be a string: %r", operator)
        return None
    second = _parse(args[2], "second")
    if second is None:
        return None

    if operator in _COMPARISONS:
        return _COMPARISONS[operator](_compare(first, second))
    if operator == "^":
        return first.major == second.major
    if operator == "~":
        return first.major == second.major and first.minor == second.minor
    log.debug("Unknown operator: %s", operator)
    return None