"""
Secondary-index churn around large bulk loads.

Above a projected value count, maintaining non-unique indexes on `grid_row`
during the load costs more than rebuilding them afterwards. Primary keys and
unique indexes (including the keyset index readers depend on) are never
touched. `CONCURRENTLY` requires autocommit connections.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import psycopg
from psycopg import Connection, sql

from rowstream.infrastructure.db_factory import get_sync_connection
from rowstream.infrastructure.schema import ROW_RELATION
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

_SECONDARY_INDEXES_SQL = """
SELECT i.relname AS name, pg_get_indexdef(ix.indexrelid) AS definition
FROM pg_index ix
JOIN pg_class i ON i.oid = ix.indexrelid
JOIN pg_class t ON t.oid = ix.indrelid
JOIN pg_namespace ns ON ns.oid = t.relnamespace
WHERE t.relname = %s
  AND ns.nspname = current_schema()
  AND NOT ix.indisunique
  AND NOT ix.indisprimary
ORDER BY i.relname
"""


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    definition: str

    def concurrent_create(self) -> str:
        """`pg_get_indexdef` output rewritten as an idempotent concurrent build."""
        prefix = "CREATE INDEX "
        if not self.definition.startswith(prefix):
            raise ValueError(f"Unexpected index definition: {self.definition!r}")
        return "CREATE INDEX CONCURRENTLY IF NOT EXISTS " + self.definition[len(prefix) :]


def should_drop_indexes(count: int, column_count: int, threshold: int) -> bool:
    """Drop only when the projected value count reaches the threshold."""
    return threshold > 0 and count * column_count >= threshold


class IndexManager:
    def __init__(
        self,
        connect: Optional[Callable[[], Connection]] = None,
        relation: str = ROW_RELATION,
    ) -> None:
        self._connect = connect or get_sync_connection
        self.relation = relation

    def secondary_indexes(self, conn: Connection) -> List[IndexDefinition]:
        with conn.cursor() as cur:
            cur.execute(_SECONDARY_INDEXES_SQL, (self.relation,))
            return [IndexDefinition(name=name, definition=defn) for name, defn in cur.fetchall()]

    def drop_secondary(self) -> List[IndexDefinition]:
        """Drop every secondary index; return the ones actually dropped."""
        dropped: List[IndexDefinition] = []
        with self._connect() as conn:
            for index in self.secondary_indexes(conn):
                try:
                    conn.execute(
                        sql.SQL("DROP INDEX CONCURRENTLY IF EXISTS {}").format(
                            sql.Identifier(index.name)
                        )
                    )
                except psycopg.Error:
                    log.warning(
                        "Could not drop index; leaving it in place",
                        extra={"index": index.name},
                        exc_info=True,
                    )
                    continue
                dropped.append(index)
                log.info("Dropped secondary index", extra={"index": index.name})
        return dropped

    def rebuild(self, indexes: Sequence[IndexDefinition]) -> int:
        """Recreate previously dropped indexes; return how many succeeded."""
        rebuilt = 0
        with self._connect() as conn:
            for index in indexes:
                try:
                    conn.execute(index.concurrent_create())
                except psycopg.Error:
                    log.error(
                        "Could not recreate index",
                        extra={"index": index.name, "definition": index.definition},
                        exc_info=True,
                    )
                    continue
                rebuilt += 1
                log.info("Recreated secondary index", extra={"index": index.name})
        return rebuilt


__all__ = ["IndexDefinition", "IndexManager", "should_drop_indexes"]
