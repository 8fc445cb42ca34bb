"""schema-audit: check execution engine for relational schema audits."""

from schema_audit.checklist.dispatcher import CheckDispatcher, run_checks
from schema_audit.sqlrunner.runner import preview_query

__version__ = "0.1.0"

__all__ = ["CheckDispatcher", "preview_query", "run_checks"]
