"""Guarded execution of one read-only statement against a target database.

Every statement runs inside its own transaction which is always rolled
back afterwards.  On PostgreSQL the transaction is ``READ ONLY`` and the
statement/lock timeouts are set with ``set_config(..., true)`` so they are
scoped to that transaction.  On SQLite the connection is switched to
``query_only`` and a progress handler interrupts the statement once the
timeout has elapsed.  Either way nothing set for one check survives into the next one, whether the statement succeeded,
failed or timed out.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from schema_audit.errors import ExecutionError, QueryTimeout
from schema_audit.sqlrunner.lexer import has_top_level_limit, statement_body
from schema_audit.sqlrunner.readonly import assert_read_only

logger = logging.getLogger(__name__)

DEFAULT_STATEMENT_TIMEOUT_MS = 2500
DEFAULT_ROW_CAP = 100

# SQLSTATE for query_canceled; raised by PostgreSQL when statement_timeout fires.
_QUERY_CANCELED_SQLSTATE = "57014"

# Number of SQLite VM instructions between progress handler calls.
_SQLITE_PROGRESS_STEPS = 1000


class QueryResult(BaseModel):
    """Rows and metadata returned by :meth:`GuardedExecutor.execute`."""

    sql: str = Field(..., description="The statement actually sent to the database.")
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = Field(default=0, description="Number of rows returned (after the cap).")
    truncated: bool = Field(default=False, description="True if more rows than the cap were available.")
    duration_ms: int = 0


def apply_row_cap(sql: str, row_cap: int) -> str:
    """Append ``LIMIT row_cap`` unless the outer query already limits itself."""
    body = statement_body(sql)
    if has_top_level_limit(body):
        return body
    # Newline so that a trailing line comment cannot swallow the clause.
    return f"{body}\nLIMIT {int(row_cap)}"


def _is_statement_timeout(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == _QUERY_CANCELED_SQLSTATE:
        return True
    message = str(orig).lower()
    # sqlite3 reports an aborted progress handler as "interrupted".
    return "statement timeout" in message or message == "interrupted"


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    if orig is not None:
        return f"{type(orig).__name__}: {orig}"
    return f"{type(exc).__name__}: {exc}"


async def _set_sqlite_deadline(conn: AsyncConnection, statement_timeout_ms: int | None) -> None:
    """Install (or with ``None`` remove) a progress handler enforcing the timeout."""
    raw = await conn.get_raw_connection()
    driver = raw.driver_connection
    if statement_timeout_ms is None:
        await driver.set_progress_handler(None, 0)
        return
    deadline = time.monotonic() + statement_timeout_ms / 1000
    await driver.set_progress_handler(lambda: time.monotonic() > deadline, _SQLITE_PROGRESS_STEPS)


@asynccontextmanager
async def read_only_transaction(
    conn: AsyncConnection,
    *,
    statement_timeout_ms: int | None = None,
) -> AsyncIterator[AsyncConnection]:
    """Run the enclosed statements in a read-only transaction, then roll back."""
    if conn.in_transaction():
        await conn.rollback()

    dialect = conn.dialect.name
    trans = await conn.begin()
    try:
        if dialect == "postgresql":
            await conn.exec_driver_sql("SET TRANSACTION READ ONLY")
            if statement_timeout_ms is not None:
                await conn.execute(
                    text(
                        "SELECT set_config('statement_timeout', :ms, true), "
                        "set_config('lock_timeout', :ms, true)"
                    ),
                    {"ms": str(int(statement_timeout_ms))},
                )
        elif dialect == "sqlite":
            await conn.exec_driver_sql("PRAGMA query_only = ON")
            if statement_timeout_ms is not None:
                await _set_sqlite_deadline(conn, statement_timeout_ms)
        yield conn
    finally:
        try:
            if trans.is_active:
                await trans.rollback()
            if dialect == "sqlite":
                if statement_timeout_ms is not None:
                    await _set_sqlite_deadline(conn, None)
                await conn.exec_driver_sql("PRAGMA query_only = OFF")
                await conn.rollback()
        except SQLAlchemyError as exc:
            logger.warning("Failed to reset target session after statement: %s", exc)


class GuardedExecutor:
    """Execute validated SQL under a statement timeout and a row cap.

    Parameters
    ----------
    statement_timeout_ms:
        Server-side timeout for each statement.
    row_cap:
        Maximum number of rows ever returned to the caller.
    """

    def __init__(
        self,
        *,
        statement_timeout_ms: int = DEFAULT_STATEMENT_TIMEOUT_MS,
        row_cap: int = DEFAULT_ROW_CAP,
    ) -> None:
        if row_cap <= 0:
            raise ValueError(f"row_cap must be positive, got {row_cap}")
        self._statement_timeout_ms = statement_timeout_ms
        self._row_cap = row_cap

    @property
    def row_cap(self) -> int:
        return self._row_cap

    @property
    def statement_timeout_ms(self) -> int:
        return self._statement_timeout_ms

    async def execute(self, conn: AsyncConnection, sql: str) -> QueryResult:
        """Run *sql* on *conn* and return at most ``row_cap`` rows.

        Raises
        ------
        ReadOnlyViolation
            The statement fails the read-only guard.
        QueryTimeout
            The server cancelled the statement after the timeout.
        ExecutionError
            Any other driver error; the driver message is preserved.
        """
        assert_read_only(sql)
        capped_sql = apply_row_cap(sql, self._row_cap)

        start = time.monotonic()
        try:
            async with read_only_transaction(conn, statement_timeout_ms=self._statement_timeout_ms):
                result = await conn.exec_driver_sql(capped_sql)
                if result.returns_rows:
                    columns = list(result.keys())
                    fetched = [dict(row) for row in result.mappings().fetchmany(self._row_cap + 1)]
                else:
                    columns, fetched = [], []
        except DBAPIError as exc:
            if _is_statement_timeout(exc):
                logger.warning("Statement exceeded %dms timeout", self._statement_timeout_ms)
                raise QueryTimeout(self._statement_timeout_ms) from exc
            raise ExecutionError(_driver_message(exc)) from exc
        except SQLAlchemyError as exc:
            raise ExecutionError(_driver_message(exc)) from exc

        duration_ms = int((time.monotonic() - start) * 1000)
        truncated = len(fetched) > self._row_cap
        rows = to_jsonable_python(fetched[: self._row_cap], fallback=str)

        logger.debug(
            "Executed statement in %dms: %d row(s)%s",
            duration_ms,
            len(rows),
            " (truncated)" if truncated else "",
        )
        return QueryResult(
            sql=capped_sql,
            columns=columns,
            rows=rows,
            row_count=len(rows),
            truncated=truncated,
            duration_ms=duration_ms,
        )
