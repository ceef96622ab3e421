"""Initial schema — scheme versions, review cases and decisions, audit log.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _base_columns(*, mutable: bool = True) -> list[sa.Column]:
    """id / created_at, plus updated_at for TimestampMixin tables."""
    columns = [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]
    if mutable:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)
        )
    return columns


def upgrade() -> None:
    # ── Standalone tables (no FKs) ─────────────────────────────────────

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("scheme_id", sa.String(100), index=True),
        sa.Column("version_number", sa.Integer()),
        sa.Column("actor_id", sa.String(100), comment="User ID, reviewer ID, or 'system'"),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text())),
        *_base_columns(mutable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "scheme_versions",
        sa.Column("scheme_id", sa.String(100), nullable=False, index=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("rules", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("scheme_id", "version", name="uq_scheme_versions_scheme_version"),
    )

    op.create_table(
        "review_cases",
        sa.Column("case_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("queued_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("assigned_to", sa.String(100)),
        sa.Column("snapshot", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── Dependent tables ──────────────────────────────────────────────

    op.create_table(
        "review_decisions",
        sa.Column("decision_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column(
            "case_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("review_cases.case_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("reviewer_id", sa.String(100), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_results", postgresql.JSONB(astext_type=sa.Text())),
        *_base_columns(mutable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    # Drop in reverse dependency order
    op.drop_table("review_decisions")
    op.drop_table("review_cases")
    op.drop_table("scheme_versions")
    op.drop_table("audit_log")
