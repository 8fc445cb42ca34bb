"""Catalog metadata models returned by the catalog readers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TableInfo(BaseModel):
    """A base (or partitioned) table in one of the audited schemas."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    name: str
    kind: str = "table"


class ColumnInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str
    name: str
    ordinal: int
    data_type: str = ""
    is_nullable: bool = True


class PrimaryKeyInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str
    name: str | None = None
    columns: tuple[str, ...] = ()


class ForeignKeyInfo(BaseModel):
    """A foreign key; ``child_cols[i]`` references ``parent_cols[i]``."""

    model_config = ConfigDict(frozen=True)

    name: str
    child_schema: str
    child_table: str
    child_cols: tuple[str, ...]
    parent_schema: str
    parent_table: str
    parent_cols: tuple[str, ...]
    on_delete: str | None = None
    on_update: str | None = None


class IndexInfo(BaseModel):
    """An index on a table.

    ``columns`` lists key columns in index order; expression columns are
    ``None``.  Included (non-key) columns are not listed.
    """

    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str
    name: str
    columns: tuple[str | None, ...] = ()
    is_unique: bool = False
    is_primary: bool = False
    is_valid: bool = True
    method: str | None = None
    predicate: str | None = None


class CatalogSnapshot(BaseModel):
    """All catalog metadata for a set of schemas, fetched together."""

    model_config = ConfigDict(frozen=True)

    schemas: tuple[str, ...]
    tables: tuple[TableInfo, ...] = Field(default_factory=tuple)
    columns: tuple[ColumnInfo, ...] = Field(default_factory=tuple)
    primary_keys: tuple[PrimaryKeyInfo, ...] = Field(default_factory=tuple)
    foreign_keys: tuple[ForeignKeyInfo, ...] = Field(default_factory=tuple)
    indexes: tuple[IndexInfo, ...] = Field(default_factory=tuple)
