"""Pipeline for operator-authored SQL-template checks."""

from schema_audit.sqlrunner.evaluate import evaluate_result, has_issues, status_for
from schema_audit.sqlrunner.executor import GuardedExecutor, QueryResult, read_only_transaction
from schema_audit.sqlrunner.interpolate import interpolate_template
from schema_audit.sqlrunner.mapping import map_rows_to_targets, suggest_mapping
from schema_audit.sqlrunner.readonly import assert_read_only
from schema_audit.sqlrunner.runner import QueryPreview, preview_query, run_sql_check

__all__ = [
    "GuardedExecutor",
    "QueryPreview",
    "QueryResult",
    "assert_read_only",
    "evaluate_result",
    "has_issues",
    "interpolate_template",
    "map_rows_to_targets",
    "preview_query",
    "read_only_transaction",
    "run_sql_check",
    "status_for",
    "suggest_mapping",
]
