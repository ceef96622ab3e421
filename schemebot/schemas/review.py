"""Pydantic schemas for the human review queue."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from schemebot.models.enums import DecisionKind, ReviewReason, ReviewStatus
from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.profile import UserProfile


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewCase(BaseModel):
    """A queued determination awaiting human adjudication.

    Holds copies of the profile and results, so later profile mutation in the
    session cannot alter a queued case.
    """

    case_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    session_id: uuid.UUID
    profile: UserProfile
    results: tuple[EligibilityResult, ...] = ()
    reasoning: tuple[str, ...] = ()
    priority: int = 0
    status: ReviewStatus = ReviewStatus.PENDING
    reason: ReviewReason
    note: str | None = Field(default=None, description="Free-text escalation reason")
    fingerprint: str | None = None
    queued_at: datetime = Field(default_factory=_utcnow)
    assigned_to: str | None = None
    decision_id: uuid.UUID | None = None

    @property
    def lowest_confidence(self) -> int | None:
        if not self.results:
            return None
        return min(r.confidence for r in self.results)


class ReviewDecision(BaseModel):
    """A reviewer's ruling on a case."""

    decision_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    case_id: uuid.UUID
    reviewer_id: str
    kind: DecisionKind
    modified_results: tuple[EligibilityResult, ...] = ()
    reasoning: str = ""
    decided_at: datetime = Field(default_factory=_utcnow)


class PendingCaseView(BaseModel):
    """Queue listing entry exposing case age for external escalation."""

    case_id: uuid.UUID
    session_id: uuid.UUID
    priority: int
    status: ReviewStatus
    reason: ReviewReason
    queued_at: datetime
    age_seconds: int
