"""FK_NOT_INDEXED: foreign keys without a supporting index on the child table.

An index supports a foreign key when the foreign key's child columns are a
leading prefix of the index's key columns, in the same order.  ``(a, b)``
is supported by an index on ``(a, b)`` or ``(a, b, c)`` but not by one on
``(b, a)`` or ``(c, a, b)``.  Invalid (still building or failed) indexes
never count.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from schema_audit.catalog.models import ForeignKeyInfo, IndexInfo
from schema_audit.checks.base import BuiltinCheck, BuiltinOutcome, relationship_target
from schema_audit.checks.context import RunContext

logger = logging.getLogger(__name__)


def is_prefix_of(columns: Sequence[str], index_columns: Sequence[str | None]) -> bool:
    """Return ``True`` if *columns* lead *index_columns* in order."""
    if not columns or len(columns) > len(index_columns):
        return False
    return all(col == idx_col for col, idx_col in zip(columns, index_columns))


def find_unindexed(
    foreign_keys: Iterable[ForeignKeyInfo],
    indexes: Iterable[IndexInfo],
) -> list[ForeignKeyInfo]:
    """Return the foreign keys no valid index supports, in input order."""
    by_table: dict[tuple[str, str], list[IndexInfo]] = {}
    for index in indexes:
        if index.is_valid:
            by_table.setdefault((index.schema_name, index.table_name), []).append(index)

    unindexed: list[ForeignKeyInfo] = []
    for fk in foreign_keys:
        candidates = by_table.get((fk.child_schema, fk.child_table), [])
        if not any(is_prefix_of(fk.child_cols, index.columns) for index in candidates):
            unindexed.append(fk)
    return unindexed


class FkNotIndexedCheck(BuiltinCheck):
    """Report foreign keys whose child columns lack a supporting index."""

    @property
    def code(self) -> str:
        return "FK_NOT_INDEXED"

    async def execute(self, context: RunContext) -> BuiltinOutcome:
        foreign_keys = await context.foreign_keys()
        indexes = await context.catalog.list_indexes(context.schemas)
        unindexed = find_unindexed(foreign_keys, indexes)
        logger.debug("%d of %d foreign key(s) lack a supporting index", len(unindexed), len(foreign_keys))

        return BuiltinOutcome(
            violations=len(unindexed),
            targets=[relationship_target(fk) for fk in unindexed],
            summary=f"{len(unindexed)} foreign keys missing a supporting index",
            stats={"violations_count": len(unindexed), "foreign_keys_checked": len(foreign_keys)},
            rows=[
                {
                    "fk_name": fk.name,
                    "child_schema": fk.child_schema,
                    "child_table": fk.child_table,
                    "child_cols": list(fk.child_cols),
                }
                for fk in unindexed[: context.settings.builtin_sample_rows]
            ],
        )
