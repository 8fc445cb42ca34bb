"""Read-only access to target database catalog metadata."""

from schema_audit.catalog.models import (
    CatalogSnapshot,
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    PrimaryKeyInfo,
    TableInfo,
)
from schema_audit.catalog.reader import CatalogReader, PostgresCatalog, SqliteCatalog, catalog_for

__all__ = [
    "CatalogReader",
    "CatalogSnapshot",
    "ColumnInfo",
    "ForeignKeyInfo",
    "IndexInfo",
    "PostgresCatalog",
    "PrimaryKeyInfo",
    "SqliteCatalog",
    "TableInfo",
    "catalog_for",
]
