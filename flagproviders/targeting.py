"""JSON Logic evaluation of flag targeting rules."""

from __future__ import annotations

import json
import logging
import math
import time
from datetime import datetime
from typing import Any, Callable, Mapping

from .core import EvaluationContext
from .fractional import fractional
from .semver_op import sem_ver

log = logging.getLogger(__name__)

CustomOperator = Callable[[list, Any], Any]

_MISSING = object()


class JsonLogicError(ValueError):
    """Raised when a rule is malformed or cannot be evaluated."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _truthy(value: Any) -> bool:
    if isinstance(value, dict):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if _is_number(value):
        return value
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _to_str(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list):
        return ",".join(_to_str(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def _strict_eq(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _loose_eq(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        if isinstance(left, bool) and isinstance(right, bool):
            return left == right
        return _loose_eq(
            int(left) if isinstance(left, bool) else left,
            int(right) if isinstance(right, bool) else right,
        )
    if _is_number(left) and isinstance(right, str):
        return left == _to_number(right)
    if isinstance(left, str) and _is_number(right):
        return _to_number(left) == right
    return _strict_eq(left, right)


def _less(left: Any, right: Any, inclusive: bool) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return left <= right if inclusive else left < right
    a, b = _to_number(left), _to_number(right)
    return a <= b if inclusive else a < b


def _lookup(data: Any, path: Any) -> Any:
    if path is None or path == "":
        return data
    current = data
    for segment in str(path).split("."):
        if isinstance(current, dict):
            if segment not in current:
                return _MISSING
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return _MISSING
        else:
            return _MISSING
    return current


def _op_var(args: list, data: Any) -> Any:
    path = args[0] if args else None
    default = args[1] if len(args) > 1 else None
    found = _lookup(data, path)
    return default if found is _MISSING else found


def _missing_keys(keys: list, data: Any) -> list:
    return [key for key in keys if _lookup(data, key) in (_MISSING, None, "")]


def _op_missing(args: list, data: Any) -> list:
    keys = args[0] if args and isinstance(args[0], list) else args
    return _missing_keys(keys, data)


def _op_missing_some(args: list, data: Any) -> list:
    if len(args) < 2 or not isinstance(args[1], list):
        raise JsonLogicError("missing_some expects a count and a list of keys")
    need, keys = args[0], args[1]
    missing = _missing_keys(keys, data)
    return [] if len(keys) - len(missing) >= _to_number(need) else missing


def _op_between(inclusive: bool) -> CustomOperator:
    def op(args: list, data: Any) -> bool:
        if len(args) == 3:
            return _less(args[0], args[1], inclusive) and _less(args[1], args[2], inclusive)
        if len(args) != 2:
            raise JsonLogicError("comparison expects two or three arguments")
        return _less(args[0], args[1], inclusive)

    return op


def _binary(args: list, name: str) -> tuple[Any, Any]:
    if len(args) != 2:
        raise JsonLogicError(f"{name} expects two arguments")
    return args[0], args[1]


def _op_minus(args: list, data: Any) -> int | float:
    if len(args) == 1:
        return -_to_number(args[0])
    left, right = _binary(args, "-")
    return _to_number(left) - _to_number(right)


def _op_divide(args: list, data: Any) -> int | float:
    left, right = (_to_number(arg) for arg in _binary(args, "/"))
    if right == 0:
        raise JsonLogicError("division by zero")
    if isinstance(left, int) and isinstance(right, int) and left % right == 0:
        return left // right
    return left / right


def _op_modulo(args: list, data: Any) -> int | float:
    left, right = (_to_number(arg) for arg in _binary(args, "%"))
    if right == 0:
        raise JsonLogicError("modulo by zero")
    if isinstance(left, int) and isinstance(right, int):
        remainder = abs(left) % abs(right)
        return -remainder if left < 0 else remainder
    return math.fmod(left, right)


def _op_product(args: list, data: Any) -> int | float:
    return math.prod(_to_number(arg) for arg in args)


def _op_extreme(pick: Callable) -> CustomOperator:
    def op(args: list, data: Any) -> Any:
        if not args:
            return None
        return pick(_to_number(arg) for arg in args)

    return op


def _op_in(args: list, data: Any) -> bool:
    needle, haystack = _binary(args, "in")
    if isinstance(haystack, str):
        return isinstance(needle, str) and needle in haystack
    if isinstance(haystack, list):
        return any(_strict_eq(needle, item) for item in haystack)
    return False


def _op_substr(args: list, data: Any) -> str:
    if not args:
        raise JsonLogicError("substr expects a string")
    text = _to_str(args[0])
    start = int(_to_number(args[1])) if len(args) > 1 else 0
    if start < 0:
        start = max(len(text) + start, 0)
    if len(args) > 2 and args[2] is not None:
        length = int(_to_number(args[2]))
        end = len(text) + length if length < 0 else start + length
        return text[start:end] if end > start else ""
    return text[start:]


def _op_merge(args: list, data: Any) -> list:
    merged: list = []
    for arg in args:
        if isinstance(arg, list):
            merged.extend(arg)
        else:
            merged.append(arg)
    return merged


def _op_affix(check: Callable[[str, str], bool]) -> CustomOperator:
    def op(args: list, data: Any) -> bool:
        text, affix = args[0] if args else None, args[1] if len(args) > 1 else None
        return isinstance(text, str) and isinstance(affix, str) and check(text, affix)

    return op


def _first(args: list) -> Any:
    return args[0] if args else None


_EAGER: dict[str, CustomOperator] = {
    "var": _op_var,
    "missing": _op_missing,
    "missing_some": _op_missing_some,
    "==": lambda args, data: _loose_eq(*_binary(args, "==")),
    "!=": lambda args, data: not _loose_eq(*_binary(args, "!=")),
    "===": lambda args, data: _strict_eq(*_binary(args, "===")),
    "!==": lambda args, data: not _strict_eq(*_binary(args, "!==")),
    "!": lambda args, data: not _truthy(_first(args)),
    "!!": lambda args, data: _truthy(_first(args)),
    ">": lambda args, data: _less(*reversed(_binary(args, ">")), inclusive=False),
    ">=": lambda args, data: _less(*reversed(_binary(args, ">=")), inclusive=True),
    "<": _op_between(inclusive=False),
    "<=": _op_between(inclusive=True),
    "max": _op_extreme(max),
    "min": _op_extreme(min),
    "+": lambda args, data: sum(_to_number(arg) for arg in args),
    "-": _op_minus,
    "*": _op_product,
    "/": _op_divide,
    "%": _op_modulo,
    "in": _op_in,
    "cat": lambda args, data: "".join(_to_str(arg) for arg in args),
    "substr": _op_substr,
    "merge": _op_merge,
    "starts_with": _op_affix(str.startswith),
    "ends_with": _op_affix(str.endswith),
    "log": lambda args, data: _first(args),
}

_LAZY = frozenset({"if", "?:", "and", "or", "map", "filter", "reduce", "all", "none", "some"})


def _operation(rule: Any) -> tuple[str, list] | None:
    if isinstance(rule, dict) and len(rule) == 1:
        (name, raw), = rule.items()
        return name, raw if isinstance(raw, list) else [raw]
    return None


class _Evaluator:
    def __init__(self, custom_operators: Mapping[str, CustomOperator]) -> None:
        self._custom = custom_operators

    def known(self, name: str) -> bool:
        return name in self._custom or name in _EAGER or name in _LAZY

    def validate(self, rule: Any) -> None:
        if isinstance(rule, list):
            for item in rule:
                self.validate(item)
            return
        operation = _operation(rule)
        if operation is None:
            return
        name, args = operation
        if not self.known(name):
            raise JsonLogicError(f"Unknown operator: {name}")
        for arg in args:
            self.validate(arg)

    def evaluate(self, rule: Any, data: Any) -> Any:
        if isinstance(rule, list):
            return [self.evaluate(item, data) for item in rule]
        operation = _operation(rule)
        if operation is None:
            return rule
        name, args = operation
        if name in _LAZY:
            return self._lazy(name, args, data)
        values = [self.evaluate(arg, data) for arg in args]
        if name in self._custom:
            return self._custom[name](values, data)
        if name in _EAGER:
            return _EAGER[name](values, data)
        raise JsonLogicError(f"Unknown operator: {name}")

    def _lazy(self, name: str, args: list, data: Any) -> Any:
        if name in ("if", "?:"):
            branches = iter(args)
            for condition in branches:
                try:
                    outcome = next(branches)
                except StopIteration:
                    return self.evaluate(condition, data)
                if _truthy(self.evaluate(condition, data)):
                    return self.evaluate(outcome, data)
            return None
        if name in ("and", "or"):
            value = None
            for arg in args:
                value = self.evaluate(arg, data)
                if _truthy(value) != (name == "and"):
                    return value
            return value

        items = self.evaluate(args[0], data) if args else None
        if not isinstance(items, list):
            items = []
        logic = args[1] if len(args) > 1 else None
        if name == "map":
            return [self.evaluate(logic, item) for item in items]
        if name == "filter":
            return [item for item in items if _truthy(self.evaluate(logic, item))]
        if name == "reduce":
            accumulator = self.evaluate(args[2], data) if len(args) > 2 else None
            for item in items:
                accumulator = self.evaluate(
                    logic, {"current": item, "accumulator": accumulator}
                )
            return accumulator
        results = (_truthy(self.evaluate(logic, item)) for item in items)
        if name == "all":
            return bool(items) and all(results)
        if name == "some":
            return any(results)
        return not any(results)


def json_logic(
    rule: Any,
    data: Any = None,
    custom_operators: Mapping[str, CustomOperator] | None = None,
) -> Any:
    """Evaluate a JSON Logic rule against data, with optional extra operators."""
    return _Evaluator(custom_operators or {}).evaluate(rule, data)


def _context_value_to_json(value: Any) -> Any:
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, datetime):
        return str(value)
    return repr(value)


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class Operator:
    """Evaluates targeting rules with the flagd ``fractional`` and ``sem_ver`` operators."""

    def __init__(self) -> None:
        self._operators: dict[str, CustomOperator] = {
            "fractional": fractional,
            "sem_ver": sem_ver,
        }

    def apply(
        self, flag_key: str, targeting_rule: str, ctx: EvaluationContext
    ) -> str | None:
        """Evaluate a rule and return the variant it selects, or None.

        Malformed JSON and unknown operators raise; failures during evaluation give None.
        """
        rule = json.loads(targeting_rule)
        evaluator = _Evaluator(self._operators)
        evaluator.validate(rule)
        data = self._build_context(flag_key, ctx)
        try:
            result = evaluator.evaluate(rule, data)
        except (JsonLogicError, TypeError, ValueError) as exc:
            log.debug("Targeting evaluation error: %s", exc)
            return None
        if result is None:
            return None
        if isinstance(result, str):
            return result
        return _display(result)

    @staticmethod
    def _build_context(flag_key: str, ctx: EvaluationContext) -> dict[str, Any]:
        root: dict[str, Any] = {}
        if ctx.targeting_key is not None:
            root["targetingKey"] = ctx.targeting_key
        root["$flagd"] = {"flagKey": flag_key, "timestamp": int(time.time())}
        for key, value in ctx.custom_fields.items():
            root[key] = _context_value_to_json(value)
        return root