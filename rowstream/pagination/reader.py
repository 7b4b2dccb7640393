"""
Keyset pagination over a table's rows, ordered by (created_at, id).

Reads are not isolated from concurrent writers. Each query sees what was
committed when it ran: rows that land beyond the cursor between two calls
show up on a later page, so a bulk load running alongside pagination streams
in across pages. `total_count` is a separate count taken at call time and can
move between calls.

A cursor that does not decode, belongs to another table, or points at a row
that no longer exists restarts pagination at the first page instead of
failing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from rowstream.config import get_settings
from rowstream.domain.models import Row
from rowstream.domain.results import PageResponse, PageRow
from rowstream.infrastructure.db_factory import apply_statement_timeout, get_sync_pool
from rowstream.pagination.cursor import PageCursor, decode_cursor
from rowstream.pagination.policy import PageSizePolicy
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

COUNT_SQL = "SELECT count(*) AS total FROM grid_row WHERE table_id = %s"

CURSOR_ROW_SQL = """
SELECT 1 AS present FROM grid_row
WHERE table_id = %s AND id = %s AND created_at = %s
"""

FIRST_PAGE_SQL = """
SELECT id, table_id, cache, search, created_at
FROM grid_row
WHERE table_id = %s
ORDER BY created_at, id
LIMIT %s
"""

NEXT_PAGE_SQL = """
SELECT id, table_id, cache, search, created_at
FROM grid_row
WHERE table_id = %s AND (created_at, id) > (%s, %s)
ORDER BY created_at, id
LIMIT %s
"""


@dataclass(frozen=True)
class PageResult:
    rows: List[Row]
    next_cursor: Optional[str]
    has_more: bool
    total_count: int
    restarted: bool = False

    def to_response(self) -> PageResponse:
        return PageResponse(
            rows=[
                PageRow(id=row.id, createdAt=row.created_at.isoformat(), data=dict(row.cache))
                for row in self.rows
            ],
            nextCursor=self.next_cursor,
            hasMore=self.has_more,
            totalCount=self.total_count,
        )


def build_page(
    table_id: str, records: List[Dict[str, Any]], size: int, total: int, restarted: bool
) -> PageResult:
    """Trim the look-ahead row and derive has_more / next_cursor."""
    has_more = len(records) > size
    rows = [Row(**record) for record in records[:size]]
    next_cursor = None
    if has_more and rows:
        last = rows[-1]
        next_cursor = PageCursor(table_id=table_id, created_at=last.created_at, id=last.id).encode()
    return PageResult(
        rows=rows,
        next_cursor=next_cursor,
        has_more=has_more,
        total_count=total,
        restarted=restarted,
    )


def cursor_for_table(table_id: str, token: Optional[str]) -> Optional[PageCursor]:
    """Decode `token` and drop it if it is malformed or names another table."""
    if not token:
        return None
    cursor = decode_cursor(token)
    if cursor is None:
        log.warning("Malformed page cursor; restarting at first page", extra={"table_id": table_id})
        return None
    if cursor.table_id != table_id:
        log.warning(
            "Page cursor belongs to another table; restarting at first page",
            extra={"table_id": table_id, "cursor_table_id": cursor.table_id},
        )
        return None
    return cursor


class KeysetPageReader:
    """
    Serve ordered pages of a table's rows from the shared pool.

    Parameters
    ----------
    pool : ConnectionPool | None
        Defaults to the process-wide pool (never a bulk writer connection).
    policy : PageSizePolicy | None
        First/later page sizing. Defaults to settings.
    statement_timeout_ms : int | None
        Per-request statement timeout. Defaults to settings.
    """

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        policy: Optional[PageSizePolicy] = None,
        statement_timeout_ms: Optional[int] = None,
    ) -> None:
        self._pool = pool
        self.policy = policy or PageSizePolicy.from_settings()
        self.statement_timeout_ms = (
            get_settings().db_statement_timeout_ms
            if statement_timeout_ms is None
            else statement_timeout_ms
        )

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = get_sync_pool()
        return self._pool

    def page(self, table_id: str, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResult:
        decoded = cursor_for_table(table_id, cursor)
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                apply_statement_timeout(cur, self.statement_timeout_ms, local=True)

                if decoded is not None:
                    cur.execute(CURSOR_ROW_SQL, (table_id, decoded.id, decoded.created_at))
                    if cur.fetchone() is None:
                        log.warning(
                            "Stale page cursor; restarting at first page",
                            extra={"table_id": table_id, "cursor_row_id": decoded.id},
                        )
                        decoded = None

                cur.execute(COUNT_SQL, (table_id,))
                total = int(cur.fetchone()["total"])
                size = self.policy.size_for(limit, decoded is None, total)

                if decoded is None:
                    cur.execute(FIRST_PAGE_SQL, (table_id, size + 1))
                else:
                    cur.execute(
                        NEXT_PAGE_SQL, (table_id, decoded.created_at, decoded.id, size + 1)
                    )
                records = cur.fetchall()

        restarted = bool(cursor) and decoded is None
        result = build_page(table_id, records, size, total, restarted)
        log.debug(
            "Page served",
            extra={
                "table_id": table_id,
                "rows": len(result.rows),
                "has_more": result.has_more,
                "total": total,
                "restarted": restarted,
            },
        )
        return result

    def iter_pages(self, table_id: str, limit: Optional[int] = None) -> Iterator[PageResult]:
        """Yield pages from the start until one reports `has_more=False`."""
        cursor: Optional[str] = None
        while True:
            result = self.page(table_id, cursor=cursor, limit=limit)
            yield result
            if not result.has_more:
                return
            cursor = result.next_cursor


__all__ = [
    "COUNT_SQL",
    "CURSOR_ROW_SQL",
    "FIRST_PAGE_SQL",
    "KeysetPageReader",
    "NEXT_PAGE_SQL",
    "PageResult",
    "build_page",
    "cursor_for_table",
]
