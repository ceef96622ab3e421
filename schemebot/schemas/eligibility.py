"""Pydantic schemas for eligibility engine output.

Pure data classes — no DB dependencies. Results are immutable; a review
decision supersedes a result by producing a new one, never by mutating it.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field

from schemebot.models.enums import ReviewReason
from schemebot.schemas.rules import Criterion, RuleValue


class CriterionMatch(BaseModel):
    """Outcome of one criterion against one profile snapshot."""

    model_config = ConfigDict(frozen=True)

    criterion: Criterion
    profile_value: RuleValue | None = None
    matched: bool
    certainty: int = Field(ge=0, le=100)


class EligibilityResult(BaseModel):
    """Determination for one (profile snapshot, scheme version) pair."""

    model_config = ConfigDict(frozen=True)

    scheme_id: str
    version: int
    eligible: bool
    confidence: int = Field(ge=0, le=100)
    matched: tuple[CriterionMatch, ...] = ()
    unmatched: tuple[CriterionMatch, ...] = ()
    requires_human_review: bool = False
    review_reason: ReviewReason | None = None
    excluded_by: str | None = None
    reasoning: tuple[str, ...] = ()
    missing_documents: tuple[str, ...] = ()
    decided_by: uuid.UUID | None = None

    @property
    def missing_fields(self) -> list[str]:
        """Unmatched criteria fields whose value was absent or uncertain."""
        return [m.criterion.field for m in self.unmatched if m.certainty == 0]
