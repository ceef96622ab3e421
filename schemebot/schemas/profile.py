"""User profile — the Profile Accumulator owned by one conversation session.

Fields live in five groups and are addressed by path ("economic.annual_income").
Every write goes through `UserProfile.set_field`, which keeps the certainty
map and the completeness score consistent.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schemebot.models.enums import ValueKind


@dataclass(frozen=True)
class FieldSpec:
    """Registry entry for one profile field."""

    path: str
    kind: ValueKind
    label: str


# Order matters: it is the question order for fields no scheme ranks
# differently, and the order of the confirmation summary.
FIELD_REGISTRY: dict[str, FieldSpec] = {
    spec.path: spec
    for spec in (
        FieldSpec("personal.age", ValueKind.NUMBER, "Age"),
        FieldSpec("personal.gender", ValueKind.STRING, "Gender"),
        FieldSpec("personal.marital_status", ValueKind.STRING, "Marital status"),
        FieldSpec("personal.has_disability", ValueKind.BOOLEAN, "Disability"),
        FieldSpec("personal.social_category", ValueKind.STRING, "Social category"),
        FieldSpec("personal.occupation", ValueKind.STRING, "Occupation"),
        FieldSpec("economic.annual_income", ValueKind.NUMBER, "Annual household income"),
        FieldSpec("economic.employment_status", ValueKind.STRING, "Employment status"),
        FieldSpec("economic.land_holding_acres", ValueKind.NUMBER, "Land holding (acres)"),
        FieldSpec("economic.has_bpl_card", ValueKind.BOOLEAN, "BPL card"),
        FieldSpec("economic.enrolled_schemes", ValueKind.STRING_SET, "Schemes already enrolled in"),
        FieldSpec("location.state", ValueKind.STRING, "State"),
        FieldSpec("location.district", ValueKind.STRING, "District"),
        FieldSpec("location.area_type", ValueKind.STRING, "Rural or urban"),
        FieldSpec("family.household_size", ValueKind.NUMBER, "Household size"),
        FieldSpec("family.dependents", ValueKind.NUMBER, "Dependents"),
        FieldSpec("family.is_head_of_household", ValueKind.BOOLEAN, "Head of household"),
        FieldSpec("documents.available", ValueKind.STRING_SET, "Documents available"),
    )
}

EXPECTED_FIELDS: tuple[str, ...] = tuple(FIELD_REGISTRY)

_HUNDRED = Decimal(100)


def _percent(part: int | Decimal, whole: int) -> Decimal:
    if whole == 0:
        return Decimal(0)
    return Decimal(part) * _HUNDRED / Decimal(whole)


# ---------------------------------------------------------------------------
# Field groups
# ---------------------------------------------------------------------------


class _Group(BaseModel):
    model_config = ConfigDict(validate_assignment=True)


class PersonalInfo(_Group):
    age: int | None = Field(default=None, ge=0, le=130)
    gender: str | None = None
    marital_status: str | None = None
    has_disability: bool | None = None
    social_category: str | None = None
    occupation: str | None = None


class EconomicInfo(_Group):
    annual_income: Decimal | None = Field(default=None, ge=0)
    employment_status: str | None = None
    land_holding_acres: Decimal | None = Field(default=None, ge=0)
    has_bpl_card: bool | None = None
    enrolled_schemes: frozenset[str] | None = None


class LocationInfo(_Group):
    state: str | None = None
    district: str | None = None
    area_type: str | None = None


class FamilyInfo(_Group):
    household_size: int | None = Field(default=None, ge=1)
    dependents: int | None = Field(default=None, ge=0)
    is_head_of_household: bool | None = None


class DocumentsInfo(_Group):
    available: frozenset[str] | None = None


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class UserProfile(BaseModel):
    """Partial or complete citizen profile plus per-field certainty.

    Invariants: an absent field has certainty 0 (absent keys in `certainty`
    read as 0); `completeness` is recomputed on every `set_field`.
    """

    personal: PersonalInfo = Field(default_factory=PersonalInfo)
    economic: EconomicInfo = Field(default_factory=EconomicInfo)
    location: LocationInfo = Field(default_factory=LocationInfo)
    family: FamilyInfo = Field(default_factory=FamilyInfo)
    documents: DocumentsInfo = Field(default_factory=DocumentsInfo)

    certainty: dict[str, int] = Field(default_factory=dict)
    completeness: int = 0
    unresolved: set[str] = Field(default_factory=set)

    # ── Accessors ────────────────────────────────────────────────────

    def get_value(self, path: str) -> Any:
        group, name = _split_path(path)
        return getattr(getattr(self, group), name)

    def has_value(self, path: str) -> bool:
        return self.get_value(path) is not None

    def certainty_of(self, path: str) -> int:
        if not self.has_value(path):
            return 0
        return self.certainty.get(path, 0)

    def populated_fields(self) -> list[str]:
        """Populated field paths in registry order."""
        return [path for path in EXPECTED_FIELDS if self.has_value(path)]

    # ── Mutation ─────────────────────────────────────────────────────

    def set_field(self, path: str, value: Any, certainty: int) -> None:
        """Write a field value with its certainty and recompute completeness.

        Raises:
            KeyError: unknown field path.
            pydantic.ValidationError: the value does not fit the field type.
        """
        group, name = _split_path(path)
        if isinstance(value, (list, tuple, set)):
            value = frozenset(str(v) for v in value)
        setattr(getattr(self, group), name, value)
        if value is None:
            self.certainty.pop(path, None)
        else:
            self.certainty[path] = max(0, min(100, int(certainty)))
            self.unresolved.discard(path)
        self.completeness = int(self.completeness_exact().quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def mark_unresolved(self, path: str, best_guess: Any = None) -> None:
        """Record a field as present-but-uncertain after the question budget ran out."""
        _split_path(path)
        if best_guess is not None:
            self.set_field(path, best_guess, certainty=0)
        self.unresolved.add(path)

    def snapshot(self) -> UserProfile:
        """Deep copy for evaluation and review; later writes do not leak into it."""
        return self.model_copy(deep=True)

    # ── Data quality ─────────────────────────────────────────────────

    def completeness_exact(self) -> Decimal:
        return _percent(len(self.populated_fields()), len(EXPECTED_FIELDS))

    def overall_certainty(self) -> Decimal:
        """Mean certainty over all expected fields; absent fields count as 0."""
        total = sum(self.certainty_of(path) for path in EXPECTED_FIELDS)
        return Decimal(total) / Decimal(len(EXPECTED_FIELDS))


def _split_path(path: str) -> tuple[str, str]:
    if path not in FIELD_REGISTRY:
        msg = f"Unknown profile field: {path}"
        raise KeyError(msg)
    group, name = path.split(".", 1)
    return group, name
