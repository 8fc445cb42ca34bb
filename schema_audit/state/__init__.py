"""Persistent state: check trees, audit runs and check results."""

from schema_audit.state.database import get_engine, get_session
from schema_audit.state.repository import AuditRunRepository, CheckTreeRepository, ResultRepository
from schema_audit.state.sqlite_adapter import create_tables, get_local_engine

__all__ = [
    "AuditRunRepository",
    "CheckTreeRepository",
    "ResultRepository",
    "create_tables",
    "get_engine",
    "get_local_engine",
    "get_session",
]
