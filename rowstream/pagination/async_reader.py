"""
asyncpg flavour of the keyset reader, for async web handlers.

Same cursor codec, sizing policy and consistency model as `KeysetPageReader`;
only the driver differs. asyncpg is used directly (not psycopg async) for its
binary protocol on wide jsonb pages.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

from rowstream.config import get_settings
from rowstream.infrastructure.db_factory import create_async_pool
from rowstream.pagination.policy import PageSizePolicy
from rowstream.pagination.reader import PageResult, build_page, cursor_for_table
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

_COUNT_SQL = "SELECT count(*) FROM grid_row WHERE table_id = $1"

_CURSOR_ROW_SQL = """
SELECT 1 FROM grid_row
WHERE table_id = $1 AND id = $2 AND created_at = $3
"""

_FIRST_PAGE_SQL = """
SELECT id, table_id, cache, search, created_at
FROM grid_row
WHERE table_id = $1
ORDER BY created_at, id
LIMIT $2
"""

_NEXT_PAGE_SQL = """
SELECT id, table_id, cache, search, created_at
FROM grid_row
WHERE table_id = $1 AND (created_at, id) > ($2, $3)
ORDER BY created_at, id
LIMIT $4
"""


def _record_to_dict(record: Any) -> Dict[str, Any]:
    data = dict(record)
    # asyncpg hands jsonb back as text unless a codec is registered
    if isinstance(data.get("cache"), str):
        data["cache"] = json.loads(data["cache"])
    return data


class AsyncKeysetPageReader:
    """
    Async keyset reader.

    Pass an existing asyncpg pool, or let the reader create (and own) one on
    first use; use it as an async context manager to close an owned pool.
    """

    def __init__(
        self,
        pool: Optional[asyncpg.Pool] = None,
        policy: Optional[PageSizePolicy] = None,
        dsn_override: Optional[str] = None,
        statement_timeout_ms: Optional[int] = None,
    ) -> None:
        self._pool = pool
        self._owns_pool = pool is None
        self._dsn_override = dsn_override
        self.policy = policy or PageSizePolicy.from_settings()
        timeout_ms = (
            get_settings().db_statement_timeout_ms
            if statement_timeout_ms is None
            else statement_timeout_ms
        )
        self._timeout: Optional[float] = timeout_ms / 1000.0 if timeout_ms > 0 else None

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await create_async_pool(self._dsn_override)
        return self._pool

    async def close(self) -> None:
        if self._owns_pool and self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "AsyncKeysetPageReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def page(
        self, table_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> PageResult:
        decoded = cursor_for_table(table_id, cursor)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            if decoded is not None:
                present = await conn.fetchval(
                    _CURSOR_ROW_SQL, table_id, decoded.id, decoded.created_at, timeout=self._timeout
                )
                if present is None:
                    log.warning(
                        "Stale page cursor; restarting at first page",
                        extra={"table_id": table_id, "cursor_row_id": decoded.id},
                    )
                    decoded = None

            total = int(await conn.fetchval(_COUNT_SQL, table_id, timeout=self._timeout))
            size = self.policy.size_for(limit, decoded is None, total)

            if decoded is None:
                records = await conn.fetch(_FIRST_PAGE_SQL, table_id, size + 1, timeout=self._timeout)
            else:
                records = await conn.fetch(
                    _NEXT_PAGE_SQL,
                    table_id,
                    decoded.created_at,
                    decoded.id,
                    size + 1,
                    timeout=self._timeout,
                )

        rows: List[Dict[str, Any]] = [_record_to_dict(r) for r in records]
        return build_page(table_id, rows, size, total, restarted=bool(cursor) and decoded is None)

    async def iter_pages(self, table_id: str, limit: Optional[int] = None) -> AsyncIterator[PageResult]:
        cursor: Optional[str] = None
        while True:
            result = await self.page(table_id, cursor=cursor, limit=limit)
            yield result
            if not result.has_more:
                return
            cursor = result.next_cursor


__all__ = ["AsyncKeysetPageReader"]
