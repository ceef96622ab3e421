"""Review case and decision models — the durable record of human adjudication."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from schemebot.models.base import Base, RecordMixin, TimestampMixin
from schemebot.models.enums import ReviewStatus


class ReviewCaseRecord(TimestampMixin, Base):
    """A queued case; profile and results are stored as snapshots."""

    __tablename__ = "review_cases"

    case_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), unique=True, nullable=False)
    session_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=ReviewStatus.PENDING.value, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    queued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    assigned_to: Mapped[str | None] = mapped_column(String(100))

    # Full ReviewCase as serialized by pydantic (profile snapshot included)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    def __repr__(self) -> str:
        return f"<ReviewCaseRecord case={self.case_id} status={self.status} priority={self.priority}>"


class ReviewDecisionRecord(RecordMixin, Base):
    """A reviewer's decision. Append-only."""

    __tablename__ = "review_decisions"

    decision_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), unique=True, nullable=False)
    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("review_cases.case_id", ondelete="CASCADE"), nullable=False, index=True
    )
    reviewer_id: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    modified_results: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB)

    def __repr__(self) -> str:
        return f"<ReviewDecisionRecord case={self.case_id} kind={self.kind}>"
