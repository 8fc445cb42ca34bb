"""Read table, key and index metadata from a target database.

Two implementations share the :class:`CatalogReader` interface:

* :class:`PostgresCatalog` queries ``pg_catalog`` directly, one query per
  object type across all requested schemas.
* :class:`SqliteCatalog` walks ``sqlite_master`` and the ``pragma_*``
  table-valued functions per table.  SQLite attached databases play the
  role of schemas (``main``, ``temp`` or any ``ATTACH``-ed name).

Every catalog statement runs inside
:func:`~schema_audit.sqlrunner.executor.read_only_transaction`, so the
catalog never leaves a transaction or session setting behind.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from schema_audit.catalog.models import (
    CatalogSnapshot,
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    PrimaryKeyInfo,
    TableInfo,
)
from schema_audit.catalog.queries import (
    PG_COLUMNS,
    PG_FK_ACTIONS,
    PG_FOREIGN_KEYS,
    PG_INDEXES,
    PG_PRIMARY_KEYS,
    PG_TABLES,
)
from schema_audit.errors import ExecutionError
from schema_audit.sqlrunner.executor import read_only_transaction

logger = logging.getLogger(__name__)


class CatalogReader(ABC):
    """Catalog access bound to one open target connection."""

    def __init__(self, conn: AsyncConnection, *, statement_timeout_ms: int | None = None) -> None:
        self._conn = conn
        self._statement_timeout_ms = statement_timeout_ms

    @property
    def connection(self) -> AsyncConnection:
        return self._conn

    async def _fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            async with read_only_transaction(
                self._conn, statement_timeout_ms=self._statement_timeout_ms
            ) as conn:
                result = await conn.execute(text(sql), params or {})
                return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            orig = getattr(exc, "orig", None) or exc
            raise ExecutionError(f"catalog query failed: {type(orig).__name__}: {orig}") from exc

    @abstractmethod
    async def list_tables(self, schemas: Sequence[str]) -> list[TableInfo]:
        """Return base tables in *schemas*, ordered by schema then name."""

    @abstractmethod
    async def list_columns(self, schemas: Sequence[str]) -> list[ColumnInfo]:
        """Return columns in *schemas*, ordered by table then ordinal."""

    @abstractmethod
    async def list_primary_keys(self, schemas: Sequence[str]) -> list[PrimaryKeyInfo]:
        """Return the primary key of every table in *schemas* that has one."""

    @abstractmethod
    async def list_foreign_keys(self, schemas: Sequence[str]) -> list[ForeignKeyInfo]:
        """Return foreign keys whose child table is in *schemas*."""

    @abstractmethod
    async def list_indexes(self, schemas: Sequence[str]) -> list[IndexInfo]:
        """Return indexes on tables in *schemas*."""

    async def snapshot(self, schemas: Sequence[str]) -> CatalogSnapshot:
        """Fetch every kind of metadata for *schemas* in one go."""
        logger.debug("Reading catalog snapshot for schemas %s", list(schemas))
        return CatalogSnapshot(
            schemas=tuple(schemas),
            tables=tuple(await self.list_tables(schemas)),
            columns=tuple(await self.list_columns(schemas)),
            primary_keys=tuple(await self.list_primary_keys(schemas)),
            foreign_keys=tuple(await self.list_foreign_keys(schemas)),
            indexes=tuple(await self.list_indexes(schemas)),
        )


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


class PostgresCatalog(CatalogReader):
    """Catalog reader backed by ``pg_catalog``."""

    async def _query(self, sql: str, schemas: Sequence[str]) -> list[dict[str, Any]]:
        if not schemas:
            return []
        return await self._fetch(sql, {"schemas": list(schemas)})

    async def list_tables(self, schemas: Sequence[str]) -> list[TableInfo]:
        return [TableInfo(**row) for row in await self._query(PG_TABLES, schemas)]

    async def list_columns(self, schemas: Sequence[str]) -> list[ColumnInfo]:
        return [ColumnInfo(**row) for row in await self._query(PG_COLUMNS, schemas)]

    async def list_primary_keys(self, schemas: Sequence[str]) -> list[PrimaryKeyInfo]:
        return [
            PrimaryKeyInfo(
                schema_name=row["schema_name"],
                table_name=row["table_name"],
                name=row["name"],
                columns=tuple(row["columns"]),
            )
            for row in await self._query(PG_PRIMARY_KEYS, schemas)
        ]

    async def list_foreign_keys(self, schemas: Sequence[str]) -> list[ForeignKeyInfo]:
        return [
            ForeignKeyInfo(
                name=row["name"],
                child_schema=row["child_schema"],
                child_table=row["child_table"],
                child_cols=tuple(row["child_cols"]),
                parent_schema=row["parent_schema"],
                parent_table=row["parent_table"],
                parent_cols=tuple(row["parent_cols"]),
                on_delete=PG_FK_ACTIONS.get(row["on_delete"], row["on_delete"]),
                on_update=PG_FK_ACTIONS.get(row["on_update"], row["on_update"]),
            )
            for row in await self._query(PG_FOREIGN_KEYS, schemas)
        ]

    async def list_indexes(self, schemas: Sequence[str]) -> list[IndexInfo]:
        return [
            IndexInfo(
                schema_name=row["schema_name"],
                table_name=row["table_name"],
                name=row["name"],
                columns=tuple(row["columns"] or ()),
                is_unique=row["is_unique"],
                is_primary=row["is_primary"],
                is_valid=row["is_valid"],
                method=row["method"],
                predicate=row["predicate"],
            )
            for row in await self._query(PG_INDEXES, schemas)
        ]


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SqliteCatalog(CatalogReader):
    """Catalog reader backed by ``sqlite_master`` and pragma functions."""

    async def _table_names(self, schema: str) -> list[str]:
        rows = await self._fetch(
            f"SELECT name FROM {_quote_ident(schema)}.sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
            "ORDER BY name"
        )
        return [row["name"] for row in rows]

    async def _table_info(self, schema: str, table: str) -> list[dict[str, Any]]:
        return await self._fetch(
            'SELECT cid, name, type, "notnull", pk FROM pragma_table_info(:table, :schema) ORDER BY cid',
            {"table": table, "schema": schema},
        )

    async def _pk_columns(self, schema: str, table: str) -> tuple[str, ...]:
        info = await self._table_info(schema, table)
        keyed = sorted((row for row in info if row["pk"]), key=lambda row: row["pk"])
        return tuple(row["name"] for row in keyed)

    async def list_tables(self, schemas: Sequence[str]) -> list[TableInfo]:
        tables: list[TableInfo] = []
        for schema in schemas:
            tables.extend(TableInfo(schema_name=schema, name=name) for name in await self._table_names(schema))
        return tables

    async def list_columns(self, schemas: Sequence[str]) -> list[ColumnInfo]:
        columns: list[ColumnInfo] = []
        for schema in schemas:
            for table in await self._table_names(schema):
                for row in await self._table_info(schema, table):
                    columns.append(
                        ColumnInfo(
                            schema_name=schema,
                            table_name=table,
                            name=row["name"],
                            ordinal=row["cid"] + 1,
                            data_type=row["type"] or "",
                            is_nullable=not row["notnull"] and not row["pk"],
                        )
                    )
        return columns

    async def list_primary_keys(self, schemas: Sequence[str]) -> list[PrimaryKeyInfo]:
        keys: list[PrimaryKeyInfo] = []
        for schema in schemas:
            for table in await self._table_names(schema):
                cols = await self._pk_columns(schema, table)
                if cols:
                    keys.append(PrimaryKeyInfo(schema_name=schema, table_name=table, name=f"pk_{table}", columns=cols))
        return keys

    async def list_foreign_keys(self, schemas: Sequence[str]) -> list[ForeignKeyInfo]:
        keys: list[ForeignKeyInfo] = []
        for schema in schemas:
            for table in await self._table_names(schema):
                rows = await self._fetch(
                    'SELECT id, seq, "table" AS parent, "from" AS child_col, "to" AS parent_col, '
                    "on_update, on_delete "
                    "FROM pragma_foreign_key_list(:table, :schema) ORDER BY id, seq",
                    {"table": table, "schema": schema},
                )
                grouped: dict[int, list[dict[str, Any]]] = {}
                for row in rows:
                    grouped.setdefault(row["id"], []).append(row)

                for fk_id, parts in sorted(grouped.items()):
                    parent = parts[0]["parent"]
                    parent_cols = tuple(part["parent_col"] for part in parts)
                    if any(col is None for col in parent_cols):
                        # REFERENCES parent without a column list targets the parent's primary key.
                        parent_cols = await self._pk_columns(schema, parent)
                    keys.append(
                        ForeignKeyInfo(
                            name=f"fk_{table}_{fk_id}",
                            child_schema=schema,
                            child_table=table,
                            child_cols=tuple(part["child_col"] for part in parts),
                            parent_schema=schema,
                            parent_table=parent,
                            parent_cols=parent_cols,
                            on_delete=parts[0]["on_delete"],
                            on_update=parts[0]["on_update"],
                        )
                    )
        return keys

    async def list_indexes(self, schemas: Sequence[str]) -> list[IndexInfo]:
        indexes: list[IndexInfo] = []
        for schema in schemas:
            for table in await self._table_names(schema):
                index_rows = await self._fetch(
                    'SELECT name, "unique", origin, partial FROM pragma_index_list(:table, :schema) ORDER BY name',
                    {"table": table, "schema": schema},
                )
                has_pk_index = False
                for row in index_rows:
                    cols = await self._fetch(
                        "SELECT seqno, name FROM pragma_index_info(:index, :schema) ORDER BY seqno",
                        {"index": row["name"], "schema": schema},
                    )
                    is_primary = row["origin"] == "pk"
                    has_pk_index = has_pk_index or is_primary
                    indexes.append(
                        IndexInfo(
                            schema_name=schema,
                            table_name=table,
                            name=row["name"],
                            columns=tuple(col["name"] for col in cols),
                            is_unique=bool(row["unique"]),
                            is_primary=is_primary,
                            method="btree",
                            predicate="partial" if row["partial"] else None,
                        )
                    )

                if not has_pk_index:
                    # An INTEGER PRIMARY KEY aliases the rowid and has no separate index.
                    pk_cols = await self._pk_columns(schema, table)
                    if pk_cols:
                        indexes.append(
                            IndexInfo(
                                schema_name=schema,
                                table_name=table,
                                name=f"{table}_rowid",
                                columns=pk_cols,
                                is_unique=True,
                                is_primary=True,
                                method="rowid",
                            )
                        )
        return indexes


def catalog_for(conn: AsyncConnection, *, statement_timeout_ms: int | None = None) -> CatalogReader:
    """Return the catalog reader matching the dialect of *conn*."""
    dialect = conn.dialect.name
    if dialect == "postgresql":
        return PostgresCatalog(conn, statement_timeout_ms=statement_timeout_ms)
    if dialect == "sqlite":
        return SqliteCatalog(conn, statement_timeout_ms=statement_timeout_ms)
    raise ValueError(f"Unsupported target dialect: {dialect}")
