"""Ingest-time validation of scheme rules.

Malformed rules fail here, when a maintainer submits them, rather than in
the middle of a citizen's session. Rule conflicts (a criterion that every
satisfying profile would also trip an exclusion for) are not rejected; they
are returned so the version can carry them and route evaluations to review.
"""

from __future__ import annotations

from decimal import Decimal

from schemebot.errors import MalformedRuleError
from schemebot.models.enums import Operator, ValueKind
from schemebot.schemas.profile import FIELD_REGISTRY
from schemebot.schemas.rules import Condition, Criterion, SchemeRules

# {profile field kind: {operator: rule value kind}}
APPLICABILITY: dict[ValueKind, dict[Operator, ValueKind]] = {
    ValueKind.NUMBER: {
        Operator.EQUALS: ValueKind.NUMBER,
        Operator.NOT_EQUALS: ValueKind.NUMBER,
        Operator.GREATER_THAN: ValueKind.NUMBER,
        Operator.GREATER_EQUAL: ValueKind.NUMBER,
        Operator.LESS_THAN: ValueKind.NUMBER,
        Operator.LESS_EQUAL: ValueKind.NUMBER,
    },
    ValueKind.STRING: {
        Operator.EQUALS: ValueKind.STRING,
        Operator.NOT_EQUALS: ValueKind.STRING,
        Operator.IN: ValueKind.STRING_SET,
        Operator.NOT_IN: ValueKind.STRING_SET,
        Operator.CONTAINS: ValueKind.STRING,
    },
    ValueKind.BOOLEAN: {
        Operator.EQUALS: ValueKind.BOOLEAN,
        Operator.NOT_EQUALS: ValueKind.BOOLEAN,
    },
    ValueKind.STRING_SET: {
        Operator.CONTAINS: ValueKind.STRING,
        Operator.IN: ValueKind.STRING_SET,
        Operator.NOT_IN: ValueKind.STRING_SET,
    },
}

_LOWER_BOUNDS = {Operator.GREATER_THAN, Operator.GREATER_EQUAL}
_UPPER_BOUNDS = {Operator.LESS_THAN, Operator.LESS_EQUAL}


def check_condition(condition: Condition, where: str) -> list[str]:
    """Return problems with one condition (empty list when valid)."""
    spec = FIELD_REGISTRY.get(condition.field)
    if spec is None:
        return [f"{where}: unknown profile field '{condition.field}'"]

    allowed = APPLICABILITY[spec.kind]
    if condition.operator not in allowed:
        return [
            f"{where}: operator '{condition.operator.value}' does not apply to "
            f"{spec.kind.value} field '{condition.field}'"
        ]

    expected_kind = allowed[condition.operator]
    if condition.value.value_kind != expected_kind:
        return [
            f"{where}: operator '{condition.operator.value}' on '{condition.field}' needs a "
            f"{expected_kind.value} value, got {condition.value.value_kind.value}"
        ]
    return []


def validate_rules(rules: SchemeRules) -> None:
    """Raise MalformedRuleError listing every problem in the payload."""
    problems: list[str] = []

    if not rules.name.strip():
        problems.append("scheme name must not be empty")

    for index, criterion in enumerate(rules.criteria):
        where = f"criterion[{index}]"
        problems.extend(check_condition(criterion, where))
        if criterion.weight <= 0:
            problems.append(f"{where}: weight must be positive, got {criterion.weight}")

    for index, exclusion in enumerate(rules.exclusions):
        where = f"exclusion[{index}]"
        if not exclusion.reason.strip():
            problems.append(f"{where}: reason must not be empty")
        if not exclusion.conditions:
            problems.append(f"{where}: needs at least one condition")
        for c_index, condition in enumerate(exclusion.conditions):
            problems.extend(check_condition(condition, f"{where}.condition[{c_index}]"))

    if problems:
        raise MalformedRuleError(problems)


def find_conflicts(rules: SchemeRules) -> list[str]:
    """Criteria that can only be met by profiles an exclusion always rejects."""
    conflicts: list[str] = []
    for exclusion in rules.exclusions:
        if len(exclusion.conditions) != 1:
            continue
        condition = exclusion.conditions[0]
        for criterion in rules.criteria:
            if criterion.field == condition.field and _always_excluded(criterion, condition):
                conflicts.append(
                    f"criterion '{criterion.label()}' is always excluded by '{exclusion.reason}'"
                )
    return conflicts


def _always_excluded(criterion: Criterion, condition: Condition) -> bool:
    """True when every value satisfying `criterion` also satisfies `condition`."""
    c_op, x_op = criterion.operator, condition.operator
    c_val, x_val = criterion.value.value, condition.value.value

    if c_op == x_op and criterion.value == condition.value:
        return True

    if c_op == Operator.EQUALS and x_op == Operator.IN:
        return _norm(c_val) in {_norm(v) for v in x_val}  # type: ignore[union-attr]

    if c_op == Operator.IN and x_op == Operator.IN:
        return {_norm(v) for v in c_val} <= {_norm(v) for v in x_val}  # type: ignore[union-attr]

    if isinstance(c_val, Decimal) and isinstance(x_val, Decimal):
        if c_op == Operator.EQUALS:
            return _number_satisfies(c_val, x_op, x_val)
        if c_op in _LOWER_BOUNDS and x_op in _LOWER_BOUNDS:
            # criterion range [c, inf) sits inside exclusion range
            if x_val < c_val:
                return True
            return x_val == c_val and (x_op == Operator.GREATER_EQUAL or c_op == Operator.GREATER_THAN)
        if c_op in _UPPER_BOUNDS and x_op in _UPPER_BOUNDS:
            if x_val > c_val:
                return True
            return x_val == c_val and (x_op == Operator.LESS_EQUAL or c_op == Operator.LESS_THAN)

    return False


def _number_satisfies(value: Decimal, operator: Operator, bound: Decimal) -> bool:
    return {
        Operator.EQUALS: value == bound,
        Operator.NOT_EQUALS: value != bound,
        Operator.GREATER_THAN: value > bound,
        Operator.GREATER_EQUAL: value >= bound,
        Operator.LESS_THAN: value < bound,
        Operator.LESS_EQUAL: value <= bound,
    }.get(operator, False)


def _norm(value: object) -> str:
    return str(value).strip().casefold()
