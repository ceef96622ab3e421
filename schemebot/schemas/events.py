"""SystemEvent schema — the core event type that flows through the entire system.

Every auditable action emits a SystemEvent. Subscribers (the audit trail
first of all) consume these events asynchronously.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Session lifecycle
    SESSION_STARTED = "session.started"
    SESSION_PHASE_CHANGED = "session.phase_changed"
    SESSION_COMPLETED = "session.completed"
    SESSION_ABANDONED = "session.abandoned"
    SESSION_ESCALATED = "session.escalated"
    SESSION_PENDING_RECOVERY = "session.pending_recovery"
    SESSION_RESUMED = "session.resumed"
    SESSION_SCHEMES_RETIRED = "session.schemes_retired"

    # Profile data
    DATA_EXTRACTED = "data.extracted"
    DATA_UNRESOLVED = "data.unresolved"
    DATA_CONFIRMED = "data.confirmed"
    PERSONAL_DATA_ACCESSED = "data.personal_accessed"

    # Scheme rules
    SCHEME_VERSION_CREATED = "scheme.version_created"
    SCHEME_VERSION_READ = "scheme.version_read"
    SCHEME_RETIRED = "scheme.retired"

    # Eligibility
    ELIGIBILITY_EVALUATED = "eligibility.evaluated"

    # Human review
    REVIEW_CASE_QUEUED = "review.case_queued"
    REVIEW_CASE_ASSIGNED = "review.case_assigned"
    REVIEW_CASE_WITHDRAWN = "review.case_withdrawn"
    REVIEW_DECIDED = "review.decided"

    # Data lifecycle
    DELETION_COMPLETED = "gdpr.deletion_completed"

    # System
    SYSTEM_ERROR = "system.error"
    SYSTEM_MAINTENANCE = "system.maintenance"


class SystemEvent(BaseModel):
    """Core event that flows through the entire system.

    Immutable once created. Consumed by the audit trail subscriber, which
    writes exactly one record per event.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context; not every event has a session or scheme
    session_id: uuid.UUID | None = None
    scheme_id: str | None = None
    version_number: int | None = None
    actor_id: str | None = None
    actor_role: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
