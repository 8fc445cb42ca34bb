"""Shared fixtures: file-backed SQLite databases for the store and the target."""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import closing
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from schema_audit.config import Settings, load_settings
from schema_audit.state.sqlite_adapter import create_tables, get_local_engine

# customers has duplicate emails; orders.customer_id is unindexed and has one
# orphan; order_items' FK is covered by its primary key; audit_log has no PK.
TARGET_DDL: tuple[str, ...] = (
    "CREATE TABLE customers (id INTEGER PRIMARY KEY, email TEXT)",
    "CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_id INTEGER REFERENCES customers(id), note TEXT)",
    "CREATE INDEX ix_orders_note ON orders(note)",
    "CREATE TABLE order_items ("
    " order_id INTEGER NOT NULL, line_no INTEGER NOT NULL, sku TEXT,"
    " PRIMARY KEY (order_id, line_no),"
    " FOREIGN KEY (order_id) REFERENCES orders)",
    "CREATE TABLE audit_log (message TEXT)",
    "INSERT INTO customers (id, email) VALUES (1, 'a@example.com'), (2, 'b@example.com'), (3, 'a@example.com')",
    "INSERT INTO orders (id, customer_id, note) VALUES (10, 1, 'ok'), (11, 2, 'ok'), (12, 99, 'orphan'), (13, NULL, 'guest')",
    "INSERT INTO order_items (order_id, line_no, sku) VALUES (10, 1, 'A'), (11, 1, 'B')",
    "INSERT INTO audit_log (message) VALUES ('hello')",
)


async def build_database(path: Path, statements: tuple[str, ...] | list[str]) -> str:
    """Create a SQLite file from *statements* and return its async URL.

    Foreign keys are not enforced here so that orphaned rows can be seeded.
    """
    url = f"sqlite+aiosqlite:///{path}"
    engine = create_async_engine(url, poolclass=NullPool)
    async with engine.begin() as conn:
        for statement in statements:
            await conn.exec_driver_sql(statement)
    await engine.dispose()
    return url


@pytest.fixture
def settings() -> Settings:
    return load_settings(statement_timeout_ms=2500, row_cap=100, sample_rows=25, fk_violation_sample_limit=25)


@pytest_asyncio.fixture
async def store_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    engine = get_local_engine(tmp_path / "state.db")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def target_url(tmp_path: Path) -> str:
    """Seed the shared target database synchronously so CLI tests can use it too."""
    path = tmp_path / "target.db"
    with closing(sqlite3.connect(path)) as conn:
        conn.executescript(";\n".join(TARGET_DDL) + ";")
        conn.commit()
    return f"sqlite+aiosqlite:///{path}"


@pytest_asyncio.fixture
async def target_conn(target_url: str) -> AsyncIterator[AsyncConnection]:
    engine = create_async_engine(target_url, poolclass=NullPool)
    conn = await engine.connect()
    yield conn
    await conn.close()
    await engine.dispose()


@pytest.fixture
def make_database(tmp_path: Path):
    """Factory fixture: ``await make_database("name", statements)`` returns a URL."""

    async def _make(name: str, statements: tuple[str, ...] | list[str]) -> str:
        return await build_database(tmp_path / f"{name}.db", statements)

    return _make
