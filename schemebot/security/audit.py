"""Audit trail — one record per SystemEvent.

`make_audit_subscriber(trail)` is registered as a global event subscriber
at startup, so every emitted event lands in the trail exactly once.
`SqlAuditTrail` appends to the `audit_log` table; `InMemoryAuditTrail`
keeps records in a list for tests and local runs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schemebot.errors import InfrastructureError
from schemebot.events import EventHandler
from schemebot.models.audit import AuditLog
from schemebot.persistence.retry import with_retries
from schemebot.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


class AuditTrail(Protocol):
    async def record(
        self,
        event_type: str,
        session_id: uuid.UUID | None,
        scheme_id: str | None,
        version_number: int | None,
        payload: dict[str, Any],
        timestamp: datetime,
        actor_id: str | None = None,
    ) -> None: ...


@dataclass(frozen=True)
class AuditRecord:
    event_type: str
    session_id: uuid.UUID | None
    scheme_id: str | None
    version_number: int | None
    payload: dict[str, Any]
    timestamp: datetime
    actor_id: str | None = None


@dataclass
class InMemoryAuditTrail:
    records: list[AuditRecord] = field(default_factory=list)

    async def record(
        self,
        event_type: str,
        session_id: uuid.UUID | None,
        scheme_id: str | None,
        version_number: int | None,
        payload: dict[str, Any],
        timestamp: datetime,
        actor_id: str | None = None,
    ) -> None:
        self.records.append(AuditRecord(
            event_type=event_type,
            session_id=session_id,
            scheme_id=scheme_id,
            version_number=version_number,
            payload=dict(payload),
            timestamp=timestamp,
            actor_id=actor_id,
        ))

    def of_type(self, event_type: str) -> list[AuditRecord]:
        return [r for r in self.records if r.event_type == event_type]


class SqlAuditTrail:
    """Append-only writer for the audit_log table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        event_type: str,
        session_id: uuid.UUID | None,
        scheme_id: str | None,
        version_number: int | None,
        payload: dict[str, Any],
        timestamp: datetime,
        actor_id: str | None = None,
    ) -> None:
        try:
            async with self._session_factory() as db:
                db.add(AuditLog(
                    event_type=event_type,
                    recorded_at=timestamp,
                    session_id=session_id,
                    scheme_id=scheme_id,
                    version_number=version_number,
                    actor_id=actor_id,
                    payload=payload,
                ))
                await db.commit()
        except SQLAlchemyError as exc:
            logger.warning("Audit write failed: %s (session=%s): %s", event_type, session_id, exc)
            raise InfrastructureError("Audit log unavailable") from exc


def make_audit_subscriber(trail: AuditTrail) -> EventHandler:
    """Build an event handler that writes each event to `trail`.

    Writes are retried with backoff. If the trail stays unavailable the
    InfrastructureError reaches the event bus, which logs it against the
    event and carries on with the next one.
    """

    async def audit_on_event(event: SystemEvent) -> None:
        await with_retries(
            lambda: trail.record(
                event_type=event.event_type.value,
                session_id=event.session_id,
                scheme_id=event.scheme_id,
                version_number=event.version_number,
                payload=event.model_dump(mode="json", include={"data", "actor_role", "source_module"}),
                timestamp=event.timestamp,
                actor_id=event.actor_id,
            ),
            description=f"audit write of {event.event_type.value}",
        )

    return audit_on_event
