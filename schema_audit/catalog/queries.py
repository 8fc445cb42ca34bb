"""PostgreSQL catalog queries.

Every query takes a single ``:schemas`` parameter (a list of schema names)
and returns rows ordered deterministically.
"""

from __future__ import annotations

PG_TABLES = """
SELECT
  n.nspname AS schema_name,
  c.relname AS name,
  CASE c.relkind WHEN 'p' THEN 'partitioned_table' ELSE 'table' END AS kind
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname = ANY(CAST(:schemas AS text[]))
  AND c.relkind IN ('r', 'p')
ORDER BY n.nspname, c.relname
"""

PG_COLUMNS = """
SELECT
  n.nspname AS schema_name,
  c.relname AS table_name,
  a.attname AS name,
  a.attnum AS ordinal,
  pg_catalog.format_type(a.atttypid, a.atttypmod) AS data_type,
  NOT a.attnotnull AS is_nullable
FROM pg_attribute a
JOIN pg_class c ON c.oid = a.attrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname = ANY(CAST(:schemas AS text[]))
  AND c.relkind IN ('r', 'p')
  AND a.attnum > 0
  AND NOT a.attisdropped
ORDER BY n.nspname, c.relname, a.attnum
"""

PG_PRIMARY_KEYS = """
SELECT
  n.nspname AS schema_name,
  c.relname AS table_name,
  con.conname AS name,
  array_agg(a.attname ORDER BY x.ord) AS columns
FROM pg_constraint con
JOIN pg_class c ON c.oid = con.conrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS x(attnum, ord) ON true
JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = x.attnum
WHERE n.nspname = ANY(CAST(:schemas AS text[]))
  AND con.contype = 'p'
GROUP BY n.nspname, c.relname, con.conname
ORDER BY n.nspname, c.relname, con.conname
"""

PG_FOREIGN_KEYS = """
SELECT
  con.conname AS name,
  n_child.nspname AS child_schema,
  c_child.relname AS child_table,
  array_agg(a_child.attname ORDER BY x.ord) AS child_cols,
  n_parent.nspname AS parent_schema,
  c_parent.relname AS parent_table,
  array_agg(a_parent.attname ORDER BY x.ord) AS parent_cols,
  con.confdeltype AS on_delete,
  con.confupdtype AS on_update
FROM pg_constraint con
JOIN pg_class c_child ON c_child.oid = con.conrelid
JOIN pg_namespace n_child ON n_child.oid = c_child.relnamespace
JOIN pg_class c_parent ON c_parent.oid = con.confrelid
JOIN pg_namespace n_parent ON n_parent.oid = c_parent.relnamespace
JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS x(attnum, ord) ON true
JOIN pg_attribute a_child ON a_child.attrelid = c_child.oid AND a_child.attnum = x.attnum
JOIN LATERAL unnest(con.confkey) WITH ORDINALITY AS y(attnum, ord) ON y.ord = x.ord
JOIN pg_attribute a_parent ON a_parent.attrelid = c_parent.oid AND a_parent.attnum = y.attnum
WHERE con.contype = 'f'
  AND n_child.nspname = ANY(CAST(:schemas AS text[]))
GROUP BY
  con.conname,
  n_child.nspname, c_child.relname,
  n_parent.nspname, c_parent.relname,
  con.confdeltype, con.confupdtype
ORDER BY n_child.nspname, c_child.relname, con.conname
"""

# Key columns only (ord <= indnkeyatts); expression columns come back NULL.
PG_INDEXES = """
SELECT
  n.nspname AS schema_name,
  c.relname AS table_name,
  ic.relname AS name,
  am.amname AS method,
  i.indisunique AS is_unique,
  i.indisprimary AS is_primary,
  (i.indisvalid AND i.indisready) AS is_valid,
  pg_get_expr(i.indpred, i.indrelid) AS predicate,
  array_agg(a.attname ORDER BY x.ord) AS columns
FROM pg_index i
JOIN pg_class c ON c.oid = i.indrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
JOIN pg_class ic ON ic.oid = i.indexrelid
JOIN pg_am am ON am.oid = ic.relam
JOIN LATERAL unnest(i.indkey) WITH ORDINALITY AS x(attnum, ord) ON x.ord <= i.indnkeyatts
LEFT JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = x.attnum AND x.attnum > 0
WHERE n.nspname = ANY(CAST(:schemas AS text[]))
  AND c.relkind IN ('r', 'p')
GROUP BY
  n.nspname, c.relname, ic.relname, am.amname,
  i.indisunique, i.indisprimary, i.indisvalid, i.indisready, i.indpred, i.indrelid
ORDER BY n.nspname, c.relname, ic.relname
"""

# pg_constraint.confdeltype / confupdtype codes.
PG_FK_ACTIONS: dict[str, str] = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}
