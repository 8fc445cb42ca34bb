"""NO_PRIMARY_KEY: tables without a primary key."""

from __future__ import annotations

import logging

from schema_audit.checks.base import BuiltinCheck, BuiltinOutcome
from schema_audit.checks.context import RunContext
from schema_audit.models.target import TableTarget

logger = logging.getLogger(__name__)


class NoPrimaryKeyCheck(BuiltinCheck):
    """Report every table in the audited schemas that has no primary key."""

    @property
    def code(self) -> str:
        return "NO_PRIMARY_KEY"

    async def execute(self, context: RunContext) -> BuiltinOutcome:
        tables = await context.catalog.list_tables(context.schemas)
        keyed = {(pk.schema_name, pk.table_name) for pk in await context.catalog.list_primary_keys(context.schemas)}

        missing = sorted(
            (t.schema_name, t.name) for t in tables if (t.schema_name, t.name) not in keyed
        )
        logger.debug("%d of %d table(s) have no primary key", len(missing), len(tables))

        return BuiltinOutcome(
            violations=len(missing),
            targets=[TableTarget(schema_name=schema, table=table) for schema, table in missing],
            summary=f"{len(missing)} tables missing primary key",
            stats={"violations_count": len(missing), "tables_checked": len(tables)},
            rows=[
                {"schema": schema, "table": table}
                for schema, table in missing[: context.settings.builtin_sample_rows]
            ],
        )
