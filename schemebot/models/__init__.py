"""SQLAlchemy ORM models for SchemeBot.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from schemebot.models.audit import AuditLog
from schemebot.models.base import Base
from schemebot.models.enums import (
    ConversationPhase,
    DecisionKind,
    Operator,
    OutcomeKind,
    ReviewReason,
    ReviewStatus,
    SessionOutcome,
    Signal,
    TurnRole,
    ValueKind,
)
from schemebot.models.review import ReviewCaseRecord, ReviewDecisionRecord
from schemebot.models.scheme import SchemeVersionRecord

__all__ = [
    # Base
    "Base",
    # Models
    "AuditLog",
    "SchemeVersionRecord",
    "ReviewCaseRecord",
    "ReviewDecisionRecord",
    # Enums
    "ConversationPhase",
    "DecisionKind",
    "Operator",
    "OutcomeKind",
    "ReviewReason",
    "ReviewStatus",
    "SessionOutcome",
    "Signal",
    "TurnRole",
    "ValueKind",
]
