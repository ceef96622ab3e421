"""Data retention enforcement — sweeps sessions past their expiry.

Abandoned sessions expire at `deletion_due_at` (abandon time plus the
grace period); every other session expires `session_retention_days` after
its last update. Idempotent: running twice is harmless.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from schemebot.events import emit
from schemebot.persistence.sessions import SessionStore
from schemebot.schemas.events import EventType, SystemEvent
from schemebot.security.erasure import ErasureProcessor

logger = logging.getLogger(__name__)


async def enforce_session_retention(
    store: SessionStore,
    erasure: ErasureProcessor,
    now: datetime | None = None,
) -> dict[str, int]:
    """Erase every expired session. Returns a summary dict."""
    now = now or datetime.now(UTC)
    expired = await store.list_expired(now)

    summary = {"sessions_expired": len(expired), "sessions_deleted": 0}
    for session_id in expired:
        result = await erasure.delete_session_data(session_id, reason="retention")
        if result.deleted_anything:
            summary["sessions_deleted"] += 1

    await emit(SystemEvent(
        event_type=EventType.SYSTEM_MAINTENANCE,
        data={"action": "session_retention", **summary},
        source_module="security.retention",
    ))
    logger.info(
        "Retention job complete: expired=%d deleted=%d",
        summary["sessions_expired"],
        summary["sessions_deleted"],
    )
    return summary
