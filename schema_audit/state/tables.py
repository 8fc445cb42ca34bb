"""SQLAlchemy 2.0 ORM table definitions for the schema-audit state store.

All tables use the ``Mapped`` / ``mapped_column`` declaration style.  The
same definitions serve PostgreSQL and SQLite; JSON payloads are JSONB on
PostgreSQL and plain JSON (stored as TEXT) on SQLite.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

_JsonType = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all schema-audit tables."""


# ---------------------------------------------------------------------------
# Check tree
# ---------------------------------------------------------------------------


class CheckNodeTable(Base):
    """One node of a published audit template's check tree.

    ``check_kind`` is ``builtin``, ``sql`` or NULL (group nodes and manual
    items).  Built-in nodes carry ``check_ref``; SQL nodes carry
    ``sql_template`` plus optional mapping, rule and variables.
    """

    __tablename__ = "check_nodes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    template_version_id: Mapped[str] = mapped_column(String(64), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    node_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="warning")
    check_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    check_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sql_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_mapping: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    pass_fail_rule: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    variables: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("node_kind IN ('group', 'item')", name="ck_check_nodes_kind"),
        CheckConstraint(
            "check_kind IS NULL OR check_kind IN ('builtin', 'sql')",
            name="ck_check_nodes_check_kind",
        ),
        Index("ix_check_nodes_version", "template_version_id"),
    )


# ---------------------------------------------------------------------------
# Audit runs
# ---------------------------------------------------------------------------


class AuditRunTable(Base):
    """An audit run of one template version; holds the persisted rollup."""

    __tablename__ = "audit_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    template_version_id: Mapped[str] = mapped_column(String(64), nullable=False)
    phase: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="incomplete")
    total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blocked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fail_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warning_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pass_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unchecked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_runs_version", "template_version_id"),)


class CheckResultTable(Base):
    """One item node's outcome within one audit run."""

    __tablename__ = "check_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("audit_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    node_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="unchecked")
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="info")
    run_type: Mapped[str] = mapped_column(String(16), nullable=False, default="manual")
    issue_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_refs: Mapped[list[dict[str, Any]]] = mapped_column(_JsonType, nullable=False, default=list)
    output: Mapped[dict[str, Any] | None] = mapped_column(_JsonType, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("run_id", "node_id", name="uq_check_results_run_node"),
        Index("ix_check_results_run", "run_id"),
    )
