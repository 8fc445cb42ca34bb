"""SQL template interpolation with whitelisted placeholders.

Templates reference variables as ``{{name}}`` or ``{{threshold.path}}``.
Identifier positions (``schema``, ``table``, ``column``) are validated
against a strict character whitelist and emitted as-is; every other value
is rendered as an escaped SQL literal.

The whole template is validated before anything is substituted, so a
failing template never produces partial output.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from schema_audit.errors import InvalidIdentifier, MissingVariable, UnsafePlaceholder

_PLACEHOLDER_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_NAME_RE = re.compile(r"^[A-Za-z_]\w*(?:\.\w+)*$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_.-]+$")

IDENTIFIER_ROOTS: frozenset[str] = frozenset({"schema", "table", "column"})
VALUE_ROOTS: frozenset[str] = frozenset({"schemas", "threshold"})
ALLOWED_ROOTS: frozenset[str] = IDENTIFIER_ROOTS | VALUE_ROOTS

# Only ``threshold`` may be addressed with a dotted path.
_NESTED_ROOTS: frozenset[str] = frozenset({"threshold"})


def placeholders(template: str) -> list[str]:
    """Return every placeholder name in *template*, in order of appearance."""
    return [m.group(1).strip() for m in _PLACEHOLDER_RE.finditer(template)]


def quote_literal(value: Any) -> str:
    """Render *value* as a SQL literal.

    Strings are single-quoted with embedded quotes doubled; sequences become
    a comma-joined list of literals suitable for ``IN (...)``.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(quote_literal(v) for v in value)
    return "'" + str(value).replace("'", "''") + "'"


def _check_root(name: str) -> None:
    if not _NAME_RE.match(name):
        raise UnsafePlaceholder(name)
    root, _, rest = name.partition(".")
    if root not in ALLOWED_ROOTS:
        raise UnsafePlaceholder(name)
    if rest and root not in _NESTED_ROOTS:
        raise UnsafePlaceholder(name)


def _resolve(name: str, variables: Mapping[str, Any]) -> Any:
    value: Any = variables
    for part in name.split("."):
        if not isinstance(value, Mapping) or part not in value:
            raise MissingVariable(name)
        value = value[part]
    if value is None:
        raise MissingVariable(name)
    return value


def _render(name: str, value: Any) -> str:
    if name in IDENTIFIER_ROOTS:
        if not isinstance(value, str) or not _IDENTIFIER_RE.match(value):
            raise InvalidIdentifier(name, value)
        return value
    return quote_literal(value)


def interpolate_template(template: str, variables: Mapping[str, Any]) -> str:
    """Expand every placeholder in *template* using *variables*.

    Raises
    ------
    UnsafePlaceholder
        A placeholder root is not whitelisted.
    MissingVariable
        A placeholder resolves to nothing or to ``None``.
    InvalidIdentifier
        An identifier-position value contains disallowed characters.
    """
    names = placeholders(template)

    # Reject unsafe roots before resolving anything.
    for name in names:
        _check_root(name)

    rendered: dict[str, str] = {}
    for name in names:
        if name not in rendered:
            rendered[name] = _render(name, _resolve(name, variables))

    return _PLACEHOLDER_RE.sub(lambda m: rendered[m.group(1).strip()], template)
