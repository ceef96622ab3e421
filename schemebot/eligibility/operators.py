"""Operator semantics for comparing a profile value against a rule value.

Applicability is validated when rules are ingested; `apply_operator` still
raises RuleTypeError when a stored profile value has a shape the operator
cannot handle, which the engine reports as ambiguous rules.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any

from schemebot.models.enums import Operator
from schemebot.schemas.rules import (
    BooleanValue,
    NumberValue,
    StringSetValue,
    StringValue,
)


class RuleTypeError(TypeError):
    """Operator cannot be applied to the profile value it was given."""


def _norm(value: str) -> str:
    return value.strip().casefold()


def _as_number(actual: Any) -> Decimal:
    if isinstance(actual, bool) or not isinstance(actual, (int, Decimal)):
        raise RuleTypeError(f"expected a number, got {type(actual).__name__}")
    return Decimal(actual)


def _as_string(actual: Any) -> str:
    if not isinstance(actual, str):
        raise RuleTypeError(f"expected a string, got {type(actual).__name__}")
    return _norm(actual)


def _as_set(actual: Any) -> frozenset[str]:
    if isinstance(actual, (str, bytes)) or not isinstance(actual, (set, frozenset, list, tuple)):
        raise RuleTypeError(f"expected a set of strings, got {type(actual).__name__}")
    return frozenset(_norm(str(item)) for item in actual)


def _compare_numbers(op: Operator, actual: Decimal, expected: Decimal) -> bool:
    checks: dict[Operator, Callable[[Decimal, Decimal], bool]] = {
        Operator.EQUALS: lambda a, b: a == b,
        Operator.NOT_EQUALS: lambda a, b: a != b,
        Operator.GREATER_THAN: lambda a, b: a > b,
        Operator.GREATER_EQUAL: lambda a, b: a >= b,
        Operator.LESS_THAN: lambda a, b: a < b,
        Operator.LESS_EQUAL: lambda a, b: a <= b,
    }
    check = checks.get(op)
    if check is None:
        raise RuleTypeError(f"operator '{op.value}' does not apply to numbers")
    return check(actual, expected)


def apply_operator(
    op: Operator,
    actual: Any,
    expected: NumberValue | StringValue | BooleanValue | StringSetValue,
) -> bool:
    """Evaluate `actual <op> expected`.

    Raises:
        RuleTypeError: the combination of operator, profile value and rule
            value has no defined meaning.
    """
    if isinstance(expected, NumberValue):
        return _compare_numbers(op, _as_number(actual), expected.value)

    if isinstance(expected, BooleanValue):
        if not isinstance(actual, bool):
            raise RuleTypeError(f"expected a boolean, got {type(actual).__name__}")
        if op == Operator.EQUALS:
            return actual is expected.value
        if op == Operator.NOT_EQUALS:
            return actual is not expected.value
        raise RuleTypeError(f"operator '{op.value}' does not apply to booleans")

    if isinstance(expected, StringValue):
        needle = _norm(expected.value)
        if op == Operator.CONTAINS:
            if isinstance(actual, str):
                return needle in _norm(actual)
            return needle in _as_set(actual)
        if op == Operator.EQUALS:
            return _as_string(actual) == needle
        if op == Operator.NOT_EQUALS:
            return _as_string(actual) != needle
        raise RuleTypeError(f"operator '{op.value}' needs a string set value")

    members = frozenset(_norm(v) for v in expected.value)
    if op not in (Operator.IN, Operator.NOT_IN):
        raise RuleTypeError(f"operator '{op.value}' does not take a string set value")
    if isinstance(actual, str):
        hit = _norm(actual) in members
    else:
        hit = bool(_as_set(actual) & members)
    return hit if op == Operator.IN else not hit
