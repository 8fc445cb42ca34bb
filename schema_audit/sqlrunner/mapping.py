"""Map raw result rows onto typed target references.

A check either declares an explicit :class:`ResultMapping` or relies on
inference from its column names (:func:`suggest_mapping`).  Rows that
cannot be mapped raise :class:`InvalidTargetEncoding`; they are never
silently dropped.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from schema_audit.errors import InvalidTargetEncoding
from schema_audit.models.node import ResultMapping, TargetKind
from schema_audit.models.target import ColumnTarget, RelationshipTarget, TableTarget, TargetRef

logger = logging.getLogger(__name__)

_RELATIONSHIP_ROLES: dict[str, str] = {
    "child_schema_col": "child_schema",
    "child_table_col": "child_table",
    "child_cols_col": "child_cols",
    "parent_schema_col": "parent_schema",
    "parent_table_col": "parent_table",
    "parent_cols_col": "parent_cols",
}


def suggest_mapping(columns: Sequence[str]) -> ResultMapping | None:
    """Infer a result mapping from column names (case-insensitive).

    * ``schema`` + ``table`` + ``column`` -> column target
    * ``schema`` + ``table`` -> table target
    * ``child_schema``, ``child_table``, ``child_cols``, ``parent_schema``,
      ``parent_table``, ``parent_cols`` -> relationship target (``fk_name``
      is picked up when present)

    Returns ``None`` when no rule matches.
    """
    by_lower = {c.lower(): c for c in columns}

    if all(name in by_lower for name in _RELATIONSHIP_ROLES.values()):
        return ResultMapping(
            target_kind=TargetKind.RELATIONSHIP,
            fk_name_col=by_lower.get("fk_name"),
            **{field: by_lower[name] for field, name in _RELATIONSHIP_ROLES.items()},
        )

    if "schema" in by_lower and "table" in by_lower:
        if "column" in by_lower:
            return ResultMapping(
                target_kind=TargetKind.COLUMN,
                schema_col=by_lower["schema"],
                table_col=by_lower["table"],
                column_col=by_lower["column"],
            )
        return ResultMapping(
            target_kind=TargetKind.TABLE,
            schema_col=by_lower["schema"],
            table_col=by_lower["table"],
        )

    return None


def _split_array_literal(inner: str, value: str, column: str) -> list[str]:
    """Split the body of a PostgreSQL array literal into its elements.

    Double-quoted elements may contain separators and backslash escapes;
    quotes, braces or backslashes anywhere else are rejected.
    """
    items: list[str] = []
    pos, end = 0, len(inner)
    while True:
        while pos < end and inner[pos].isspace():
            pos += 1
        if pos < end and inner[pos] == '"':
            pos += 1
            chars: list[str] = []
            while pos < end and inner[pos] != '"':
                if inner[pos] == "\\" and pos + 1 < end:
                    pos += 1
                chars.append(inner[pos])
                pos += 1
            if pos >= end:
                raise InvalidTargetEncoding(column, f"unterminated quoted element in {value!r}")
            pos += 1
            item = "".join(chars)
            while pos < end and inner[pos].isspace():
                pos += 1
        else:
            start = pos
            while pos < end and inner[pos] != ",":
                if inner[pos] in '"{}\\':
                    raise InvalidTargetEncoding(column, f"unexpected {inner[pos]!r} in array literal {value!r}")
                pos += 1
            item = inner[start:pos].strip()
        items.append(item)
        if pos >= end:
            return items
        if inner[pos] != ",":
            raise InvalidTargetEncoding(column, f"expected ',' after quoted element in {value!r}")
        pos += 1


def parse_column_list(value: Any, column: str) -> list[str]:
    """Decode an array-encoded column list.

    Accepts native sequences, JSON arrays (``["a", "b"]``) and PostgreSQL
    array literals (``{a,b}``).
    """
    if isinstance(value, (list, tuple)):
        items: list[Any] = list(value)
    elif isinstance(value, str):
        raw = value.strip()
        if raw.startswith("["):
            try:
                decoded = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise InvalidTargetEncoding(column, f"malformed JSON array {value!r}: {exc.msg}") from exc
            if not isinstance(decoded, list):
                raise InvalidTargetEncoding(column, f"expected an array, got {value!r}")
            items = decoded
        elif raw.startswith("{") and raw.endswith("}"):
            inner = raw[1:-1]
            items = _split_array_literal(inner, value, column) if inner.strip() else []
        else:
            raise InvalidTargetEncoding(column, f"unparsable column list {value!r}")
    else:
        raise InvalidTargetEncoding(column, f"unparsable column list {value!r}")

    if not items or not all(isinstance(item, str) and item for item in items):
        raise InvalidTargetEncoding(column, f"column list must contain non-empty names, got {value!r}")
    return items


def _scalar(row: Mapping[str, Any], column: str) -> str:
    if column not in row:
        raise InvalidTargetEncoding(column, "column not present in result")
    value = row[column]
    if value is None or value == "":
        raise InvalidTargetEncoding(column, "value is empty")
    return str(value)


def _map_row(row: Mapping[str, Any], mapping: ResultMapping) -> TargetRef:
    if mapping.target_kind == TargetKind.TABLE:
        return TableTarget(
            schema_name=_scalar(row, mapping.schema_col or ""),
            table=_scalar(row, mapping.table_col or ""),
        )
    if mapping.target_kind == TargetKind.COLUMN:
        return ColumnTarget(
            schema_name=_scalar(row, mapping.schema_col or ""),
            table=_scalar(row, mapping.table_col or ""),
            column=_scalar(row, mapping.column_col or ""),
        )

    child_cols_col = mapping.child_cols_col or ""
    parent_cols_col = mapping.parent_cols_col or ""
    if child_cols_col not in row:
        raise InvalidTargetEncoding(child_cols_col, "column not present in result")
    if parent_cols_col not in row:
        raise InvalidTargetEncoding(parent_cols_col, "column not present in result")
    child_cols = parse_column_list(row[child_cols_col], child_cols_col)
    parent_cols = parse_column_list(row[parent_cols_col], parent_cols_col)

    fk_name = None
    if mapping.fk_name_col and row.get(mapping.fk_name_col) is not None:
        fk_name = str(row[mapping.fk_name_col])

    try:
        return RelationshipTarget(
            child_schema=_scalar(row, mapping.child_schema_col or ""),
            child_table=_scalar(row, mapping.child_table_col or ""),
            child_cols=child_cols,
            parent_schema=_scalar(row, mapping.parent_schema_col or ""),
            parent_table=_scalar(row, mapping.parent_table_col or ""),
            parent_cols=parent_cols,
            fk_name=fk_name,
        )
    except ValidationError as exc:
        raise InvalidTargetEncoding(child_cols_col, exc.errors()[0]["msg"]) from exc


def map_rows_to_targets(
    rows: Sequence[Mapping[str, Any]],
    mapping: ResultMapping | None = None,
    columns: Sequence[str] | None = None,
) -> list[TargetRef]:
    """Convert *rows* into target references.

    When *mapping* is ``None`` one is inferred from *columns* (or from the
    keys of the first row).  Rows yield no targets if nothing can be
    inferred.
    """
    if not rows:
        return []

    if mapping is None:
        names = list(columns) if columns is not None else list(rows[0].keys())
        mapping = suggest_mapping(names)
        if mapping is None:
            logger.debug("No target mapping inferred from columns %s", names)
            return []

    return [_map_row(row, mapping) for row in rows]
