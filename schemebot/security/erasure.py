"""Right-to-erasure processor — removes everything held about one session.

Deletes the stored state, the live cache entry and lock, and every review
case and decision of the session. Audit log rows are kept; their payloads
never carry raw profile values. Idempotent: erasing an already-erased
session deletes nothing and emits nothing.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from schemebot.conversation.engine import ConversationEngine
from schemebot.events import emit
from schemebot.persistence.retry import with_retries
from schemebot.persistence.sessions import SessionStore
from schemebot.review.gate import ReviewGate
from schemebot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


@dataclass
class ErasureResult:
    """Summary of one erasure."""

    session_id: uuid.UUID
    stored_state: bool = False
    live_state: bool = False
    review_cases: int = 0

    @property
    def deleted_anything(self) -> bool:
        return self.stored_state or self.live_state or self.review_cases > 0


class ErasureProcessor:
    """Processes session deletion requests and retention expiries."""

    def __init__(self, store: SessionStore, gate: ReviewGate, engine: ConversationEngine | None = None) -> None:
        self._store = store
        self._gate = gate
        self._engine = engine

    async def delete_session_data(self, session_id: uuid.UUID, reason: str = "request") -> ErasureResult:
        """Delete all data for a session.

        Raises:
            InfrastructureError: the session store stayed unavailable.
        """
        result = ErasureResult(session_id=session_id)
        if self._engine is not None:
            result.stored_state, result.live_state = await self._engine.erase(session_id)
        else:
            result.stored_state = await with_retries(
                lambda: self._store.delete(session_id),
                description=f"deletion of session {session_id}",
            )
        result.review_cases = await self._gate.purge_session(session_id)

        if not result.deleted_anything:
            logger.debug("Nothing to erase for session %s", session_id)
            return result

        await emit(SystemEvent(
            event_type=EventType.DELETION_COMPLETED,
            session_id=session_id,
            data={
                "reason": reason,
                "stored_state": result.stored_state,
                "live_state": result.live_state,
                "review_cases": result.review_cases,
            },
            source_module="security.erasure",
        ))
        logger.info(
            "Erasure completed: session=%s stored=%s live=%s review_cases=%d",
            session_id,
            result.stored_state,
            result.live_state,
            result.review_cases,
        )
        return result
