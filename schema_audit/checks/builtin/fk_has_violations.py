"""FK_HAS_VIOLATIONS: child rows whose foreign key matches no parent row.

This is the only built-in check that reads table data.  It issues exactly
one count query per foreign key in the run's snapshot and only samples
offending rows when that count is non-zero.  Both statements go through
the guarded executor, so the run's statement timeout applies to each.
"""

from __future__ import annotations

import logging
from typing import Any

from schema_audit.catalog.models import ForeignKeyInfo
from schema_audit.checks.base import BuiltinCheck, BuiltinOutcome, relationship_target
from schema_audit.checks.context import RunContext
from schema_audit.sqlrunner.executor import GuardedExecutor

logger = logging.getLogger(__name__)


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _orphan_predicate(fk: ForeignKeyInfo) -> tuple[str, str]:
    """Return the FROM and WHERE clauses selecting orphaned child rows."""
    child = f"{_quote_ident(fk.child_schema)}.{_quote_ident(fk.child_table)}"
    parent = f"{_quote_ident(fk.parent_schema)}.{_quote_ident(fk.parent_table)}"
    join = " AND ".join(
        f"c.{_quote_ident(c)} = p.{_quote_ident(p)}" for c, p in zip(fk.child_cols, fk.parent_cols)
    )
    not_null = " AND ".join(f"c.{_quote_ident(c)} IS NOT NULL" for c in fk.child_cols)
    orphan = f"p.{_quote_ident(fk.parent_cols[0])} IS NULL"
    return f"FROM {child} c LEFT JOIN {parent} p ON {join}", f"WHERE ({not_null}) AND {orphan}"


def count_sql(fk: ForeignKeyInfo) -> str:
    source, where = _orphan_predicate(fk)
    return f"SELECT COUNT(*) AS cnt {source} {where}"


def sample_sql(fk: ForeignKeyInfo) -> str:
    source, where = _orphan_predicate(fk)
    return f"SELECT c.* {source} {where}"


class FkHasViolationsCheck(BuiltinCheck):
    """Count and sample orphaned child rows for every foreign key."""

    @property
    def code(self) -> str:
        return "FK_HAS_VIOLATIONS"

    async def execute(self, context: RunContext) -> BuiltinOutcome:
        sample_limit = context.settings.fk_violation_sample_limit
        sampler = (
            GuardedExecutor(statement_timeout_ms=context.settings.statement_timeout_ms, row_cap=sample_limit)
            if sample_limit > 0
            else None
        )

        violating: list[tuple[ForeignKeyInfo, int, list[dict[str, Any]]]] = []
        foreign_keys = await context.foreign_keys()
        for fk in foreign_keys:
            counted = await context.executor.execute(context.conn, count_sql(fk))
            count = int(counted.rows[0]["cnt"]) if counted.rows else 0
            if count == 0:
                continue

            sample: list[dict[str, Any]] = []
            if sampler is not None:
                sample = (await sampler.execute(context.conn, sample_sql(fk))).rows
            logger.info("Foreign key %s has %d violating row(s)", fk.name, count)
            violating.append((fk, count, sample))

        total_rows = sum(count for _, count, _ in violating)
        return BuiltinOutcome(
            violations=len(violating),
            targets=[relationship_target(fk) for fk, _, _ in violating],
            summary=f"{len(violating)} foreign keys have violating rows",
            stats={
                "violating_relationships": len(violating),
                "total_violating_rows": total_rows,
                "foreign_keys_checked": len(foreign_keys),
            },
            rows=[
                {
                    "fk": fk.model_dump(mode="json"),
                    "violating_count": count,
                    "sample": sample,
                }
                for fk, count, sample in violating[: context.settings.builtin_sample_rows]
            ],
        )
