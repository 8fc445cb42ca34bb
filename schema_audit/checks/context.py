"""Per-run state shared by every check executed in one audit run."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection

from schema_audit.catalog.models import ForeignKeyInfo
from schema_audit.catalog.reader import CatalogReader, catalog_for
from schema_audit.config import Settings
from schema_audit.sqlrunner.executor import GuardedExecutor

logger = logging.getLogger(__name__)


class RunContext:
    """Connection, schemas and cached catalog data for one audit run.

    The foreign-key list is read from the catalog at most once per run and
    then shared, as an immutable tuple, by every check that needs it.

    Parameters
    ----------
    conn:
        The run's single target connection.
    schemas:
        Schemas under audit.
    settings:
        Guardrail and sampling configuration.
    catalog:
        Catalog reader override; defaults to the reader for the
        connection's dialect.
    """

    def __init__(
        self,
        conn: AsyncConnection,
        schemas: Sequence[str],
        settings: Settings,
        *,
        catalog: CatalogReader | None = None,
    ) -> None:
        self.conn = conn
        self.schemas: tuple[str, ...] = tuple(schemas)
        self.settings = settings
        self.catalog = catalog or catalog_for(conn, statement_timeout_ms=settings.statement_timeout_ms)
        self.executor = GuardedExecutor(
            statement_timeout_ms=settings.statement_timeout_ms,
            row_cap=settings.row_cap,
        )
        self._foreign_keys: tuple[ForeignKeyInfo, ...] | None = None

    async def foreign_keys(self) -> tuple[ForeignKeyInfo, ...]:
        """Return the run's foreign-key snapshot, reading it on first use."""
        if self._foreign_keys is None:
            self._foreign_keys = tuple(await self.catalog.list_foreign_keys(self.schemas))
            logger.debug("Loaded %d foreign key(s) for schemas %s", len(self._foreign_keys), list(self.schemas))
        return self._foreign_keys

    def template_variables(self, node_variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Build the variable bag for a SQL template.

        Node variables come first; ``schemas`` is always the run's schema
        list and ``schema`` is only set when exactly one schema is audited.
        """
        variables: dict[str, Any] = dict(node_variables or {})
        variables["schemas"] = list(self.schemas)
        if len(self.schemas) == 1:
            variables["schema"] = self.schemas[0]
        return variables
