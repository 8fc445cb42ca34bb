"""Connections to the database under audit.

Each audit run gets its own engine with a single, unpooled connection that
is closed and disposed when the run ends.  PostgreSQL sessions default to
read-only transactions on top of the per-statement guard.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from schema_audit.config import Settings, load_settings
from schema_audit.errors import TargetConnectionError

logger = logging.getLogger(__name__)


def mask_url(url: str | URL) -> str:
    """Render *url* with the password replaced by ``***``."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable database url>"


class TargetConnectionProvider:
    """Opens one target connection per audit run.

    Parameters
    ----------
    settings:
        Supplies the connect timeout and application name.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or load_settings()

    def _create_engine(self, url: URL) -> AsyncEngine:
        connect_args: dict[str, Any] = {}
        backend = url.get_backend_name()
        if backend == "postgresql":
            connect_args = {
                "timeout": self._settings.target_connect_timeout_seconds,
                "server_settings": {
                    "application_name": self._settings.target_application_name,
                    "default_transaction_read_only": "on",
                },
            }
        elif backend == "sqlite":
            connect_args = {"timeout": self._settings.target_connect_timeout_seconds}

        engine = create_async_engine(url, poolclass=NullPool, echo=False, connect_args=connect_args)

        if backend == "sqlite":

            @event.listens_for(engine.sync_engine, "connect")
            def _set_sqlite_pragmas(dbapi_conn: object, _: object) -> None:
                cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        return engine

    @asynccontextmanager
    async def connect(self, url: str | URL) -> AsyncIterator[AsyncConnection]:
        """Yield an open connection to *url*; close and dispose it on exit.

        Raises
        ------
        TargetConnectionError
            The URL is invalid or the database cannot be reached.
        """
        masked = mask_url(url)
        try:
            engine = self._create_engine(make_url(url))
        except (ArgumentError, SQLAlchemyError, ImportError) as exc:
            raise TargetConnectionError(f"Invalid target database URL {masked}: {exc}") from exc

        try:
            try:
                conn = await engine.connect()
            except (SQLAlchemyError, OSError, TimeoutError) as exc:
                logger.error("Could not connect to target database %s: %s", masked, exc)
                raise TargetConnectionError(f"Could not connect to target database {masked}: {exc}") from exc

            logger.info("Connected to target database %s", masked)
            try:
                yield conn
            finally:
                await conn.close()
        finally:
            await engine.dispose()
            logger.debug("Released target database %s", masked)
