"""Read-only guard: static rejection of mutating SQL before execution.

The guard runs on the fully interpolated statement, so keywords smuggled
in through a template variable are caught as well.  Keyword detection runs
over tokens: a forbidden word in any token rejects the statement, string
literals included, but a double-quoted identifier is one token naming an
object and is never scanned.
"""

from __future__ import annotations

import logging
import re

from schema_audit.errors import MultiStatement, NotAReadQuery, WriteOperationForbidden
from schema_audit.sqlrunner.lexer import keyword_scan_texts, split_statements

logger = logging.getLogger(__name__)

FORBIDDEN_KEYWORDS: tuple[str, ...] = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "CREATE",
    "ALTER",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
    "EXECUTE",
)

_FORBIDDEN_RE = re.compile(r"\b(" + "|".join(FORBIDDEN_KEYWORDS) + r")\b", re.IGNORECASE)
_READ_PREFIX_RE = re.compile(r"^\s*(SELECT|WITH|EXPLAIN)\b", re.IGNORECASE)


def assert_read_only(sql: str) -> None:
    """Raise unless *sql* is a single read-only statement.

    Raises
    ------
    MultiStatement
        More than one non-empty ``;``-separated statement.
    NotAReadQuery
        The statement does not start with SELECT, WITH or EXPLAIN.
    WriteOperationForbidden
        A forbidden keyword appears as a standalone word.
    """
    statements = split_statements(sql)
    if len(statements) > 1:
        raise MultiStatement(len(statements))

    if not _READ_PREFIX_RE.match(sql):
        raise NotAReadQuery()

    for token_text in keyword_scan_texts(sql):
        match = _FORBIDDEN_RE.search(token_text)
        if match is not None:
            keyword = match.group(1).upper()
            logger.warning("Read-only guard blocked statement containing %s", keyword)
            raise WriteOperationForbidden(keyword)


def is_read_only(sql: str) -> bool:
    """Boolean form of :func:`assert_read_only`."""
    try:
        assert_read_only(sql)
    except (MultiStatement, NotAReadQuery, WriteOperationForbidden):
        return False
    return True
