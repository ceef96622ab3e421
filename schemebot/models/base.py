"""SQLAlchemy declarative base and shared mixins.

Append-only tables (audit trail, review decisions) get `id` and `created_at`
from RecordMixin. Tables whose rows change after insert (scheme activation,
review case status) use TimestampMixin, which adds `updated_at`.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class RecordMixin:
    """Surrogate UUID key and server-side insert time."""

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(RecordMixin):
    """RecordMixin plus `updated_at`, refreshed by PostgreSQL on every update."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
