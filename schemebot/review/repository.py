"""SQL write-through for review cases and decisions."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schemebot.errors import InfrastructureError
from schemebot.models.enums import ReviewStatus
from schemebot.models.review import ReviewCaseRecord, ReviewDecisionRecord
from schemebot.schemas.review import ReviewCase, ReviewDecision

logger = logging.getLogger(__name__)

_OPEN = (ReviewStatus.PENDING.value, ReviewStatus.IN_REVIEW.value)


class ReviewRepository:
    """Persists cases in `review_cases` and decisions in `review_decisions`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save_case(self, case: ReviewCase) -> None:
        """Insert or update a case row from the in-memory case."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(ReviewCaseRecord).where(ReviewCaseRecord.case_id == case.case_id)
                )
                record = result.scalar_one_or_none()
                if record is None:
                    record = ReviewCaseRecord(case_id=case.case_id, session_id=case.session_id)
                    db.add(record)
                record.status = case.status.value
                record.reason = case.reason.value
                record.priority = case.priority
                record.queued_at = case.queued_at
                record.assigned_to = case.assigned_to
                record.snapshot = case.model_dump(mode="json")
                await db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist review case %s", case.case_id)
            raise InfrastructureError("Review store unavailable") from exc

    async def save_decision(self, case: ReviewCase, decision: ReviewDecision) -> None:
        """Store the decision and the decided case in one transaction."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(ReviewCaseRecord).where(ReviewCaseRecord.case_id == case.case_id)
                )
                record = result.scalar_one_or_none()
                if record is not None:
                    record.status = case.status.value
                    record.snapshot = case.model_dump(mode="json")
                db.add(ReviewDecisionRecord(
                    decision_id=decision.decision_id,
                    case_id=decision.case_id,
                    reviewer_id=decision.reviewer_id,
                    kind=decision.kind.value,
                    reasoning=decision.reasoning,
                    decided_at=decision.decided_at,
                    modified_results=[r.model_dump(mode="json") for r in decision.modified_results] or None,
                ))
                await db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist decision for case %s", case.case_id)
            raise InfrastructureError("Review store unavailable") from exc

    async def delete_session(self, session_id: uuid.UUID) -> int:
        """Remove every case and decision of a session. Returns deleted case count."""
        try:
            async with self._session_factory() as db:
                case_ids = select(ReviewCaseRecord.case_id).where(ReviewCaseRecord.session_id == session_id)
                await db.execute(delete(ReviewDecisionRecord).where(ReviewDecisionRecord.case_id.in_(case_ids)))
                result = await db.execute(delete(ReviewCaseRecord).where(ReviewCaseRecord.session_id == session_id))
                await db.commit()
        except SQLAlchemyError as exc:
            raise InfrastructureError("Review store unavailable") from exc
        return result.rowcount or 0

    async def load_open_cases(self) -> list[ReviewCase]:
        """Pending and in-review cases, oldest first."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(ReviewCaseRecord)
                    .where(ReviewCaseRecord.status.in_(_OPEN))
                    .order_by(ReviewCaseRecord.queued_at)
                )
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise InfrastructureError("Review store unavailable") from exc
        return [ReviewCase.model_validate(r.snapshot) for r in records]
