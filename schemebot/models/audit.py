"""AuditLog model — immutable audit trail for every system event.

Every auditable action emits a SystemEvent which is persisted here.
This table is append-only — no updates. Rows are kept through session
erasure; payloads never carry raw personal field values.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from schemebot.models.base import Base, RecordMixin


class AuditLog(RecordMixin, Base):
    """Immutable audit trail entry."""

    __tablename__ = "audit_log"

    # Event classification
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Context (all nullable)
    session_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    scheme_id: Mapped[str | None] = mapped_column(String(100), index=True)
    version_number: Mapped[int | None] = mapped_column(Integer)
    actor_id: Mapped[str | None] = mapped_column(String(100), comment="User ID, reviewer ID, or 'system'")

    # Event data
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONB)

    def __repr__(self) -> str:
        return f"<AuditLog event={self.event_type} session={self.session_id}>"
