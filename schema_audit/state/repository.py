"""Repository classes providing access to the schema-audit state store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``;
the caller is responsible for committing (or relying on the ``get_session``
context manager).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schema_audit.models.node import (
    BuiltinCheckRef,
    CheckNode,
    NodeKind,
    PassFailRule,
    ResultMapping,
    Severity,
    SqlTemplateCheck,
)
from schema_audit.models.result import (
    CheckOutput,
    CheckResult,
    ResultStatus,
    RunPhase,
    RunRollup,
    RunType,
)
from schema_audit.models.target import target_list_adapter
from schema_audit.state.tables import AuditRunTable, CheckNodeTable, CheckResultTable

logger = logging.getLogger(__name__)


def _dialect_insert(session: AsyncSession, table: Any) -> Any:
    """Return the dialect-specific ``INSERT`` construct supporting ``ON CONFLICT``."""
    dialect_name = getattr(getattr(session.get_bind(), "dialect", None), "name", "")
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        return _pg_insert(table)
    from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

    return _sqlite_insert(table)


async def _dialect_upsert_nothing(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``."""
    stmt = _dialect_insert(session, table).values(**values)
    return await session.execute(stmt.on_conflict_do_nothing(index_elements=index_elements))


# ---------------------------------------------------------------------------
# CheckTreeRepository
# ---------------------------------------------------------------------------


def _node_to_row(node: CheckNode) -> CheckNodeTable:
    row = CheckNodeTable(
        id=node.id,
        template_version_id=node.template_version_id,
        parent_id=node.parent_id,
        sort_order=node.sort_order,
        node_kind=node.kind.value,
        title=node.title,
        severity=node.severity.value,
    )
    check = node.check
    if isinstance(check, BuiltinCheckRef):
        row.check_kind = "builtin"
        row.check_ref = check.code
    elif isinstance(check, SqlTemplateCheck):
        row.check_kind = "sql"
        row.sql_template = check.template
        row.result_mapping = check.mapping.model_dump(mode="json") if check.mapping else None
        row.pass_fail_rule = check.rule.model_dump(mode="json", by_alias=True)
        row.variables = dict(check.variables)
    return row


def _row_to_node(row: CheckNodeTable) -> CheckNode:
    """Resolve a stored node, including its check descriptor variant."""
    check: BuiltinCheckRef | SqlTemplateCheck | None = None
    if row.check_kind == "builtin":
        check = BuiltinCheckRef(code=row.check_ref or "")
    elif row.check_kind == "sql":
        check = SqlTemplateCheck(
            template=row.sql_template or "",
            mapping=ResultMapping.model_validate(row.result_mapping) if row.result_mapping else None,
            rule=PassFailRule.model_validate(row.pass_fail_rule or {}),
            variables=row.variables or {},
        )
    return CheckNode(
        id=row.id,
        template_version_id=row.template_version_id,
        parent_id=row.parent_id,
        sort_order=row.sort_order,
        kind=NodeKind(row.node_kind),
        title=row.title,
        severity=Severity(row.severity),
        check=check,
    )


class CheckTreeRepository:
    """Read and write the check tree of a template version."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_node(self, node: CheckNode) -> CheckNodeTable:
        """Persist a node."""
        row = _node_to_row(node)
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_nodes(self, template_version_id: str) -> list[CheckNode]:
        """Return every node of a template version, ordered by sort order then id."""
        stmt = (
            select(CheckNodeTable)
            .where(CheckNodeTable.template_version_id == template_version_id)
            .order_by(CheckNodeTable.sort_order, CheckNodeTable.id)
        )
        result = await self._session.execute(stmt)
        return [_row_to_node(row) for row in result.scalars().all()]

    async def list_item_nodes(
        self,
        template_version_id: str,
        node_ids: Sequence[str] | None = None,
    ) -> list[CheckNode]:
        """Return item nodes in tree order, optionally restricted to *node_ids*."""
        from schema_audit.checklist.tree import build_tree, iter_tree_order

        nodes = await self.list_nodes(template_version_id)
        ordered = [node for node in iter_tree_order(build_tree(nodes)) if node.kind == NodeKind.ITEM]
        if node_ids is not None:
            wanted = set(node_ids)
            ordered = [node for node in ordered if node.id in wanted]
        return ordered


# ---------------------------------------------------------------------------
# ResultRepository
# ---------------------------------------------------------------------------


def _row_to_result(row: CheckResultTable) -> CheckResult:
    return CheckResult(
        run_id=row.run_id,
        node_id=row.node_id,
        status=ResultStatus(row.status),
        severity=Severity(row.severity),
        run_type=RunType(row.run_type),
        targets=target_list_adapter.validate_python(row.target_refs or []),
        output=CheckOutput.model_validate(row.output) if row.output else None,
        issue_count=row.issue_count,
        duration_ms=row.duration_ms,
        executed_at=row.executed_at,
    )


class ResultRepository:
    """Per-node results of audit runs."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def ensure_results(self, run_id: str, nodes: Sequence[CheckNode]) -> int:
        """Insert an ``unchecked`` result for every item node that lacks one.

        Existing rows are left untouched.  Returns the number of rows
        inserted.
        """
        inserted = 0
        for node in nodes:
            if node.kind != NodeKind.ITEM:
                continue
            result = await _dialect_upsert_nothing(
                self._session,
                CheckResultTable,
                values={
                    "run_id": run_id,
                    "node_id": node.id,
                    "status": ResultStatus.UNCHECKED.value,
                    "severity": node.severity.value,
                    "run_type": RunType.MANUAL.value,
                    "issue_count": 0,
                    "target_refs": [],
                },
                index_elements=["run_id", "node_id"],
            )
            inserted += max(result.rowcount or 0, 0)  # type: ignore[attr-defined]
        await self._session.flush()
        logger.debug("Ensured results for run %s: %d new row(s)", run_id, inserted)
        return inserted

    async def record_result(self, result: CheckResult) -> None:
        """Write a node's result, replacing whatever the run held for it."""
        values: dict[str, Any] = {
            "run_id": result.run_id,
            "node_id": result.node_id,
            "status": result.status.value,
            "severity": result.severity.value,
            "run_type": result.run_type.value,
            "issue_count": result.issue_count,
            "target_refs": target_list_adapter.dump_python(result.targets, mode="json"),
            "output": result.output.model_dump(mode="json") if result.output is not None else None,
            "duration_ms": result.duration_ms,
            "executed_at": result.executed_at,
        }
        stmt = _dialect_insert(self._session, CheckResultTable).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["run_id", "node_id"],
            set_={key: stmt.excluded[key] for key in values if key not in ("run_id", "node_id")},
        )
        await self._session.execute(stmt)
        await self._session.flush()

    async def list_for_run(self, run_id: str) -> list[CheckResult]:
        """Return all results of a run in insertion order."""
        stmt = (
            select(CheckResultTable)
            .where(CheckResultTable.run_id == run_id)
            .order_by(CheckResultTable.id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [_row_to_result(row) for row in result.scalars().all()]

    async def list_statuses(self, run_id: str) -> list[ResultStatus]:
        """Return just the status of every result of a run."""
        stmt = select(CheckResultTable.status).where(CheckResultTable.run_id == run_id)
        result = await self._session.execute(stmt)
        return [ResultStatus(status) for status in result.scalars().all()]


# ---------------------------------------------------------------------------
# AuditRunRepository
# ---------------------------------------------------------------------------


class AuditRunRepository:
    """CRUD operations for the ``audit_runs`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, template_version_id: str, run_id: str | None = None) -> AuditRunTable:
        """Create a run in the ``pending`` phase."""
        row = AuditRunTable(
            id=run_id or uuid.uuid4().hex,
            template_version_id=template_version_id,
            phase=RunPhase.PENDING.value,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, run_id: str) -> AuditRunTable | None:
        stmt = select(AuditRunTable).where(AuditRunTable.id == run_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_phase(self, run_id: str, phase: RunPhase, error_message: str | None = None) -> None:
        """Move a run to *phase*; ``error_message`` is cleared unless given."""
        stmt = (
            update(AuditRunTable)
            .where(AuditRunTable.id == run_id)
            .values(phase=phase.value, error_message=error_message)
        )
        await self._session.execute(stmt)
        await self._session.flush()

    async def apply_rollup(
        self,
        run_id: str,
        rollup: RunRollup,
        *,
        last_run_at: datetime | None = None,
        phase: RunPhase = RunPhase.COMPLETED,
    ) -> None:
        """Persist the rollup counts and status together with the phase."""
        stmt = (
            update(AuditRunTable)
            .where(AuditRunTable.id == run_id)
            .values(
                status=rollup.status.value,
                total_count=rollup.total,
                blocked_count=rollup.blocked,
                fail_count=rollup.fail,
                warning_count=rollup.warning,
                pass_count=rollup.passed,
                unchecked_count=rollup.unchecked,
                last_run_at=last_run_at or datetime.now(UTC),
                phase=phase.value,
                error_message=None,
            )
        )
        await self._session.execute(stmt)
        await self._session.flush()

    async def delete(self, run_id: str) -> bool:
        """Delete a run; its results go with it.  Returns ``False`` if absent."""
        result = await self._session.execute(delete(AuditRunTable).where(AuditRunTable.id == run_id))
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]
