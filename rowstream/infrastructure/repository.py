"""
Table and column lookups on the shared pool.

Schema CRUD proper lives upstream; `create_table` exists for seeding scripts
and integration tests.
"""

from __future__ import annotations

import uuid
from typing import List, Optional, Sequence, Tuple

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from rowstream.domain.models import Column, ColumnType, ordered_columns
from rowstream.errors import TableNotFoundError
from rowstream.infrastructure.db_factory import get_sync_pool


class TableRepository:
    def __init__(self, pool: Optional[ConnectionPool] = None) -> None:
        self._pool = pool

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = get_sync_pool()
        return self._pool

    def load_columns(self, table_id: str) -> List[Column]:
        """
        Return the table's current columns in creation order.

        Raises TableNotFoundError when the table does not exist; an existing
        table with no columns yields an empty list.
        """
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT 1 FROM grid_table WHERE id = %s", (table_id,))
                if cur.fetchone() is None:
                    raise TableNotFoundError(table_id)
                cur.execute(
                    """
                    SELECT id, name, type, creation_order
                    FROM grid_column
                    WHERE table_id = %s
                    ORDER BY creation_order, id
                    """,
                    (table_id,),
                )
                rows = cur.fetchall()
        return ordered_columns(Column(**row) for row in rows)

    def count_rows(self, table_id: str) -> int:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT count(*) FROM grid_row WHERE table_id = %s", (table_id,))
                (count,) = cur.fetchone()
        return int(count)

    def create_table(
        self,
        name: str,
        columns: Sequence[Tuple[str, ColumnType]],
        table_id: Optional[str] = None,
    ) -> Tuple[str, List[Column]]:
        """Create a table with the given (name, type) columns, in that order."""
        table_id = table_id or f"tbl_{uuid.uuid4().hex[:12]}"
        created = [
            Column(
                id=f"col_{uuid.uuid4().hex[:12]}",
                name=col_name,
                type=ColumnType(col_type),
                creation_order=position,
            )
            for position, (col_name, col_type) in enumerate(columns)
        ]
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO grid_table (id, name) VALUES (%s, %s)", (table_id, name)
                )
                cur.executemany(
                    """
                    INSERT INTO grid_column (id, table_id, name, type, creation_order)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    [(c.id, table_id, c.name, c.type.value, c.creation_order) for c in created],
                )
        return table_id, created


__all__ = ["TableRepository"]
