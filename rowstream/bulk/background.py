"""
Best-effort post-processing after a bulk load.

Runs detached from the caller on its own thread and its own connection:

1. search backfill: fill `grid_row.search` for rows left NULL by the bulk
   INSERT, in chunks, in column creation order;
2. index rebuild, when the load dropped secondary indexes;
3. statistics refresh (`ANALYZE`) so later plans see the new row count.

Each step's failure is logged and the next step still runs. Nothing here is
part of the bulk call's success contract.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional, Sequence

from psycopg import Connection, sql

from rowstream.bulk.indexes import IndexDefinition, IndexManager
from rowstream.config import get_settings
from rowstream.domain.models import Column, ordered_columns
from rowstream.infrastructure.db_factory import get_sync_connection
from rowstream.infrastructure.schema import ROW_RELATION
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

BACKFILL_CHUNK_SQL = """
WITH todo AS (
    SELECT r.id, r.cache
    FROM grid_row r
    WHERE r.table_id = %(table_id)s
      AND r.search IS NULL
    LIMIT %(chunk_size)s
    FOR UPDATE SKIP LOCKED
),
computed AS (
    SELECT
        t.id,
        coalesce(lower(string_agg(t.cache ->> c.id, ' ' ORDER BY c.ord)), '') AS search
    FROM todo t
    LEFT JOIN unnest(%(column_ids)s::text[]) WITH ORDINALITY AS c(id, ord)
        ON t.cache ->> c.id IS NOT NULL
    GROUP BY t.id
)
UPDATE grid_row r
SET search = computed.search
FROM computed
WHERE r.id = computed.id
"""


class BackgroundPasses:
    def __init__(
        self,
        table_id: str,
        columns: Sequence[Column],
        dropped_indexes: Sequence[IndexDefinition] = (),
        connect: Optional[Callable[[], Connection]] = None,
        index_manager: Optional[IndexManager] = None,
        chunk_size: Optional[int] = None,
    ) -> None:
        self.table_id = table_id
        self.columns: List[Column] = ordered_columns(columns)
        self.dropped_indexes = list(dropped_indexes)
        self._connect = connect or get_sync_connection
        self._index_manager = index_manager or IndexManager(connect=self._connect)
        self.chunk_size = chunk_size or get_settings().backfill_chunk_size

    def backfill_search(self) -> int:
        """Populate NULL `search` values chunk by chunk; return rows updated."""
        params = {
            "table_id": self.table_id,
            "chunk_size": self.chunk_size,
            "column_ids": [c.id for c in self.columns],
        }
        total = 0
        with self._connect() as conn:
            while True:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(BACKFILL_CHUNK_SQL, params)
                        updated = cur.rowcount
                if updated <= 0:
                    break
                total += updated
                log.debug(
                    "Backfilled search chunk",
                    extra={"table_id": self.table_id, "rows": updated, "total": total},
                )
        return total

    def refresh_statistics(self) -> None:
        with self._connect() as conn:
            conn.execute(sql.SQL("ANALYZE {}").format(sql.Identifier(ROW_RELATION)))

    def run(self) -> None:
        extra = {"table_id": self.table_id}
        try:
            rows = self.backfill_search()
            log.info("Search backfill complete", extra={**extra, "rows": rows})
        except Exception:
            log.exception("Search backfill failed", extra=extra)

        if self.dropped_indexes:
            try:
                rebuilt = self._index_manager.rebuild(self.dropped_indexes)
                log.info(
                    "Index rebuild complete",
                    extra={**extra, "rebuilt": rebuilt, "dropped": len(self.dropped_indexes)},
                )
            except Exception:
                log.exception("Index rebuild failed", extra=extra)

        try:
            self.refresh_statistics()
            log.info("Statistics refreshed", extra=extra)
        except Exception:
            log.exception("Statistics refresh failed", extra=extra)

    def start(self) -> threading.Thread:
        """
        Run all passes on a non-daemon thread.

        The caller may join it but need not; interpreter shutdown still waits
        for it, so dropped indexes are never left unbuilt by a process exit.
        """
        thread = threading.Thread(target=self.run, name=f"bulk-post-{self.table_id}")
        thread.start()
        return thread


__all__ = ["BACKFILL_CHUNK_SQL", "BackgroundPasses"]
