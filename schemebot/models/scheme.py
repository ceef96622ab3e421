"""SchemeVersionRecord model — persisted, append-only scheme rule versions.

Rows are inserted once per version; only `is_active` is ever updated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from schemebot.models.base import Base, TimestampMixin


class SchemeVersionRecord(TimestampMixin, Base):
    """One immutable version of a scheme's rules."""

    __tablename__ = "scheme_versions"
    __table_args__ = (UniqueConstraint("scheme_id", "version", name="uq_scheme_versions_scheme_version"),)

    scheme_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # criteria, exclusions, required_documents and conflicts, as serialized by pydantic
    rules: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    def __repr__(self) -> str:
        return f"<SchemeVersionRecord {self.scheme_id} v{self.version} active={self.is_active}>"
