"""SQL-template check pipeline.

interpolate -> read-only guard -> guarded execution -> target mapping ->
pass/fail evaluation.  Any stage may raise a
:class:`~schema_audit.errors.CheckExecutionError`; callers decide how to
record it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncConnection

from schema_audit.models.node import ResultMapping, Severity, SqlTemplateCheck
from schema_audit.models.result import CheckOutcome, CheckOutput
from schema_audit.sqlrunner.evaluate import has_issues, status_for
from schema_audit.sqlrunner.executor import GuardedExecutor
from schema_audit.sqlrunner.interpolate import interpolate_template
from schema_audit.sqlrunner.mapping import map_rows_to_targets, suggest_mapping
from schema_audit.sqlrunner.readonly import assert_read_only

logger = logging.getLogger(__name__)


class QueryPreview(BaseModel):
    """Output of :func:`preview_query` for authoring a new check."""

    sql: str
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    truncated: bool = False
    duration_ms: int = 0
    mapping_suggestion: ResultMapping | None = None


async def run_sql_check(
    conn: AsyncConnection,
    check: SqlTemplateCheck,
    severity: Severity,
    variables: Mapping[str, Any],
    executor: GuardedExecutor,
    *,
    sample_rows: int = 25,
) -> CheckOutcome:
    """Execute one SQL-template check and evaluate it."""
    sql = interpolate_template(check.template, variables)
    assert_read_only(sql)

    result = await executor.execute(conn, sql)
    targets = map_rows_to_targets(result.rows, check.mapping, result.columns)

    issues = has_issues(result.row_count, check.rule)
    status = status_for(severity, issues)

    summary = f"{result.row_count} row(s) returned" + (" (capped)" if result.truncated else "")
    logger.debug("SQL check returned %d row(s), status=%s", result.row_count, status.value)

    return CheckOutcome(
        status=status,
        targets=targets,
        issue_count=result.row_count if issues else 0,
        output=CheckOutput(
            summary=summary,
            stats={
                "row_count": result.row_count,
                "truncated": result.truncated,
                "columns": result.columns,
                "duration_ms": result.duration_ms,
            },
            rows=result.rows[:sample_rows],
        ),
    )


async def preview_query(
    conn: AsyncConnection,
    template: str,
    executor: GuardedExecutor,
    variables: Mapping[str, Any] | None = None,
) -> QueryPreview:
    """Run a candidate check query and suggest a result mapping for it."""
    sql = interpolate_template(template, variables or {})
    result = await executor.execute(conn, sql)
    return QueryPreview(
        sql=result.sql,
        columns=result.columns,
        rows=result.rows,
        truncated=result.truncated,
        duration_ms=result.duration_ms,
        mapping_suggestion=suggest_mapping(result.columns),
    )
