"""Pydantic schemas for scheme rules and versions.

Rule values are a closed tagged variant (number, string, boolean,
string_set). Whether an operator makes sense for a value and a profile field
is checked once, when rules are ingested (see schemebot.rules.validation).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemebot.models.enums import Operator, ValueKind

# ---------------------------------------------------------------------------
# Rule values
# ---------------------------------------------------------------------------


class NumberValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    value: Decimal

    @property
    def value_kind(self) -> ValueKind:
        return ValueKind.NUMBER


class StringValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["string"] = "string"
    value: str

    @property
    def value_kind(self) -> ValueKind:
        return ValueKind.STRING


class BooleanValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["boolean"] = "boolean"
    value: bool

    @property
    def value_kind(self) -> ValueKind:
        return ValueKind.BOOLEAN


class StringSetValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["string_set"] = "string_set"
    value: tuple[str, ...]

    @field_validator("value", mode="before")
    @classmethod
    def normalize_members(cls, v: object) -> tuple[str, ...]:
        """Store members sorted and de-duplicated so equal sets serialize identically."""
        if isinstance(v, str):
            v = [v]
        return tuple(sorted({str(item) for item in v}))  # type: ignore[union-attr]

    @property
    def value_kind(self) -> ValueKind:
        return ValueKind.STRING_SET


RuleValue = Annotated[
    Union[NumberValue, StringValue, BooleanValue, StringSetValue],
    Field(discriminator="kind"),
]


def rule_value(raw: object) -> NumberValue | StringValue | BooleanValue | StringSetValue:
    """Wrap a plain Python value in the matching RuleValue variant.

    Convenience for seed catalogues and tests; API payloads use the tagged form.
    """
    if isinstance(raw, bool):
        return BooleanValue(value=raw)
    if isinstance(raw, (int, Decimal)):
        return NumberValue(value=Decimal(raw))
    if isinstance(raw, float):
        return NumberValue(value=Decimal(str(raw)))
    if isinstance(raw, str):
        return StringValue(value=raw)
    if isinstance(raw, (set, frozenset, list, tuple)):
        return StringSetValue(value=tuple(raw))
    msg = f"Unsupported rule value type: {type(raw).__name__}"
    raise TypeError(msg)


# ---------------------------------------------------------------------------
# Criteria and exclusions
# ---------------------------------------------------------------------------


class Condition(BaseModel):
    """One comparison of a profile field against a rule value."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(description="Profile field path, e.g. 'personal.age'")
    operator: Operator
    value: RuleValue

    def describe(self) -> str:
        return f"{self.field} {self.operator.value} {_format_rule_value(self.value)}"


class Criterion(Condition):
    """An eligibility condition with a confidence weight."""

    weight: Decimal = Field(default=Decimal("1"))
    description: str = ""

    def label(self) -> str:
        return self.description or self.describe()


class ExclusionRule(BaseModel):
    """Conjunction of conditions that forces ineligibility when all hold."""

    model_config = ConfigDict(frozen=True)

    conditions: tuple[Condition, ...]
    reason: str


# ---------------------------------------------------------------------------
# Schemes
# ---------------------------------------------------------------------------


class SchemeRules(BaseModel):
    """Rule payload submitted to the store to create a new version."""

    model_config = ConfigDict(frozen=True)

    name: str
    criteria: tuple[Criterion, ...] = ()
    exclusions: tuple[ExclusionRule, ...] = ()
    required_documents: tuple[str, ...] = ()

    @field_validator("required_documents", mode="before")
    @classmethod
    def normalize_documents(cls, v: object) -> tuple[str, ...]:
        return tuple(sorted({str(item) for item in (v or ())}))  # type: ignore[union-attr]


class SchemeVersion(BaseModel):
    """Immutable snapshot of one scheme's rules at a point in time.

    Only `is_active` changes between reads, and only because the store
    replaces the log entry when a newer version supersedes this one.
    """

    model_config = ConfigDict(frozen=True)

    scheme_id: str
    version: int = Field(ge=1)
    name: str
    criteria: tuple[Criterion, ...]
    exclusions: tuple[ExclusionRule, ...]
    required_documents: tuple[str, ...]
    is_active: bool
    created_at: datetime
    conflicts: tuple[str, ...] = ()

    def referenced_fields(self) -> list[str]:
        """Profile fields this version reads, criteria first, in rule order."""
        seen: list[str] = []
        for criterion in self.criteria:
            if criterion.field not in seen:
                seen.append(criterion.field)
        for exclusion in self.exclusions:
            for condition in exclusion.conditions:
                if condition.field not in seen:
                    seen.append(condition.field)
        return seen


def _format_rule_value(value: NumberValue | StringValue | BooleanValue | StringSetValue) -> str:
    if isinstance(value, StringSetValue):
        return "{" + ", ".join(value.value) + "}"
    if isinstance(value, BooleanValue):
        return "true" if value.value else "false"
    if isinstance(value, NumberValue):
        return format(value.value.normalize(), "f")
    return repr(value.value)
