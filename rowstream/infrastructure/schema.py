"""
DDL for the rowstream relations.

`grid_row` carries a UNIQUE keyset index on (table_id, created_at, id): the
pair (created_at, id) is unique per table, and making the index unique keeps
it out of the set of secondary indexes the bulk path may drop.
"""

from __future__ import annotations

from psycopg import Connection

ROW_RELATION = "grid_row"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS grid_table (
    id          text PRIMARY KEY,
    name        text NOT NULL,
    created_at  timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS grid_column (
    id              text PRIMARY KEY,
    table_id        text NOT NULL REFERENCES grid_table (id) ON DELETE CASCADE,
    name            text NOT NULL,
    type            text NOT NULL CHECK (type IN ('TEXT', 'NUMBER')),
    creation_order  integer NOT NULL,
    created_at      timestamptz NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS grid_column_table_order_idx
    ON grid_column (table_id, creation_order);

CREATE TABLE IF NOT EXISTS grid_row (
    id          text PRIMARY KEY,
    table_id    text NOT NULL REFERENCES grid_table (id) ON DELETE CASCADE,
    cache       jsonb NOT NULL DEFAULT '{}'::jsonb,
    search      text,
    created_at  timestamptz NOT NULL DEFAULT clock_timestamp()
);

CREATE UNIQUE INDEX IF NOT EXISTS grid_row_table_created_id_key
    ON grid_row (table_id, created_at, id);
CREATE INDEX IF NOT EXISTS grid_row_table_id_idx
    ON grid_row (table_id);
CREATE INDEX IF NOT EXISTS grid_row_search_tsv_idx
    ON grid_row USING gin (to_tsvector('simple', coalesce(search, '')));

CREATE TABLE IF NOT EXISTS bulk_lock (
    id          text PRIMARY KEY,
    table_id    text NOT NULL UNIQUE,
    expires_at  timestamptz NOT NULL
);
"""


def apply_schema(conn: Connection) -> None:
    """Create all relations and indexes if they do not exist yet."""
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)
    if not conn.autocommit:
        conn.commit()


__all__ = ["ROW_RELATION", "SCHEMA_SQL", "apply_schema"]
