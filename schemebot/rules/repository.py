"""SQL write-through for scheme versions.

The in-memory store is the read path; this repository makes versions
survive restarts and turns a duplicate (scheme_id, version) insert from a
second process into a ConflictError.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schemebot.errors import ConflictError, InfrastructureError
from schemebot.models.scheme import SchemeVersionRecord
from schemebot.schemas.rules import SchemeVersion

logger = logging.getLogger(__name__)

_RULE_FIELDS = {"criteria", "exclusions", "required_documents", "conflicts"}


def to_record(version: SchemeVersion) -> SchemeVersionRecord:
    return SchemeVersionRecord(
        scheme_id=version.scheme_id,
        version=version.version,
        name=version.name,
        is_active=version.is_active,
        published_at=version.created_at,
        rules=version.model_dump(mode="json", include=_RULE_FIELDS),
    )


def from_record(record: SchemeVersionRecord) -> SchemeVersion:
    return SchemeVersion.model_validate({
        "scheme_id": record.scheme_id,
        "version": record.version,
        "name": record.name,
        "is_active": record.is_active,
        "created_at": record.published_at,
        **record.rules,
    })


class SchemeVersionRepository:
    """Persists scheme versions in the `scheme_versions` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, version: SchemeVersion, superseded: int | None) -> None:
        """Insert a new version and deactivate the one it supersedes, atomically."""
        try:
            async with self._session_factory() as db:
                if superseded is not None:
                    await db.execute(
                        update(SchemeVersionRecord)
                        .where(
                            SchemeVersionRecord.scheme_id == version.scheme_id,
                            SchemeVersionRecord.version == superseded,
                        )
                        .values(is_active=False)
                    )
                db.add(to_record(version))
                await db.commit()
        except IntegrityError as exc:
            msg = f"Version {version.version} of scheme '{version.scheme_id}' already exists"
            raise ConflictError(msg) from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist scheme version %s v%d", version.scheme_id, version.version)
            raise InfrastructureError("Scheme rule store unavailable") from exc

    async def deactivate(self, scheme_id: str, version: int) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(
                    update(SchemeVersionRecord)
                    .where(
                        SchemeVersionRecord.scheme_id == scheme_id,
                        SchemeVersionRecord.version == version,
                    )
                    .values(is_active=False)
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise InfrastructureError("Scheme rule store unavailable") from exc

    async def load_all(self) -> list[SchemeVersion]:
        """All versions of all schemes, ordered by scheme id then version."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(SchemeVersionRecord).order_by(
                        SchemeVersionRecord.scheme_id, SchemeVersionRecord.version
                    )
                )
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise InfrastructureError("Scheme rule store unavailable") from exc
        return [from_record(r) for r in records]
