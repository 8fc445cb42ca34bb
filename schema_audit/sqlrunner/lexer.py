"""Token-level helpers over operator SQL, backed by the sqlglot tokenizer.

Tokenizing (rather than parsing) keeps these helpers dialect-tolerant: a
statement the parser would reject still splits correctly, and semicolons
or keywords inside string literals and comments are not mistaken for
statement boundaries.
"""

from __future__ import annotations

import logging
import re

import sqlglot
from sqlglot.errors import TokenError
from sqlglot.tokens import Token, TokenType

logger = logging.getLogger(__name__)

_LIMIT_TOKENS = frozenset({TokenType.LIMIT, TokenType.FETCH})
_LIMIT_FALLBACK_RE = re.compile(r"\b(LIMIT|FETCH)\b", re.IGNORECASE)


def _tokenize(sql: str) -> list[Token] | None:
    try:
        return sqlglot.tokenize(sql, read="postgres")
    except TokenError as exc:
        logger.debug("Tokenizer rejected SQL, using plain-text fallback: %s", exc)
        return None


def split_statements(sql: str) -> list[str]:
    """Split *sql* into its non-empty statements.

    Falls back to a plain ``;`` split when the tokenizer cannot read the
    input (for example an unterminated string literal).
    """
    tokens = _tokenize(sql)
    if tokens is None:
        return [part.strip() for part in sql.split(";") if part.strip()]

    statements: list[str] = []
    current: list[str] = []
    for token in tokens:
        if token.token_type == TokenType.SEMICOLON:
            if current:
                statements.append(" ".join(current))
                current = []
            continue
        current.append(token.text)
    if current:
        statements.append(" ".join(current))
    return statements


def statement_body(sql: str) -> str:
    """Return *sql* cut after its last real token.

    Trailing semicolons and comments are dropped so that a clause can be
    appended safely.
    """
    tokens = _tokenize(sql)
    if tokens is None:
        return sql.strip().rstrip(";").rstrip()

    for token in reversed(tokens):
        if token.token_type != TokenType.SEMICOLON:
            return sql[: token.end + 1]
    return ""


def has_top_level_limit(sql: str) -> bool:
    """Return True if the outermost query already carries ``LIMIT``/``FETCH``."""
    tokens = _tokenize(sql)
    if tokens is None:
        return bool(_LIMIT_FALLBACK_RE.search(sql))

    depth = 0
    for token in tokens:
        if token.token_type == TokenType.L_PAREN:
            depth += 1
        elif token.token_type == TokenType.R_PAREN:
            depth = max(depth - 1, 0)
        elif depth == 0 and token.token_type in _LIMIT_TOKENS:
            return True
    return False


def keyword_scan_texts(sql: str) -> list[str]:
    """Return the text a keyword scan should look at.

    Quoted identifiers are a single token naming an object, so they are left
    out; every other token (string literals included) is kept.  Falls back
    to the whole input when the tokenizer cannot read it.
    """
    tokens = _tokenize(sql)
    if tokens is None:
        return [sql]
    return [token.text for token in tokens if token.token_type != TokenType.IDENTIFIER]
