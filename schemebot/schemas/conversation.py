"""Conversation state, inbound NLU events and outbound turn outcomes."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from schemebot.models.enums import ConversationPhase, OutcomeKind, Signal, SessionOutcome, TurnRole
from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.profile import UserProfile


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Inbound (speech/NLU layer)
# ---------------------------------------------------------------------------


class FieldExtraction(BaseModel):
    """One structured guess from the NLU layer."""

    field: str
    value: Any
    confidence: int = Field(ge=0, le=100)


class UtteranceEvent(BaseModel):
    """Text plus optional structured guesses, as consumed by `advance()`."""

    text: str = ""
    extractions: list[FieldExtraction] = Field(default_factory=list)
    signal: Signal | None = None


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


class PendingQuestion(BaseModel):
    field: str
    attempts: int = 0
    max_attempts: int = 3
    last_guess: Any = None


class Turn(BaseModel):
    role: TurnRole
    text: str
    phase: ConversationPhase
    at: datetime = Field(default_factory=_utcnow)


class ConversationState(BaseModel):
    """Everything needed to resume a session after a disconnect."""

    session_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str
    language: str = "en"
    phase: ConversationPhase = ConversationPhase.GREETING
    profile: UserProfile = Field(default_factory=UserProfile)
    pending_question: PendingQuestion | None = None
    turns: list[Turn] = Field(default_factory=list)
    comprehension_level: int = Field(default=3, ge=1, le=5)
    confirmed_fields: set[str] = Field(default_factory=set)
    scheme_ids: list[str] | None = None
    retired_schemes: list[str] = Field(default_factory=list)
    results: list[EligibilityResult] = Field(default_factory=list)
    review_case_id: uuid.UUID | None = None
    pending_recovery: bool = False
    outcome: SessionOutcome | None = None
    deletion_due_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.phase in (ConversationPhase.COMPLETE, ConversationPhase.ABANDONED)


# ---------------------------------------------------------------------------
# Outbound (explanation/output layer)
# ---------------------------------------------------------------------------


class TurnOutcome(BaseModel):
    """Result of one `advance()` call.

    `prompt_key` and `field` are what the language layer renders; `prompt` is
    an English fallback.
    """

    session_id: uuid.UUID
    kind: OutcomeKind
    phase: ConversationPhase
    prompt_key: str
    prompt: str
    field: str | None = None
    comprehension_level: int = 3
    results: list[EligibilityResult] = Field(default_factory=list)
    state: ConversationState | None = None
    review_case_id: uuid.UUID | None = None
    review_age_seconds: int | None = None
    progress_saved_locally: bool = False
