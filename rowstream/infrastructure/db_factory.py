"""
Database connection factory utilities for rowstream.

Two kinds of connections are handed out here and must not be mixed:

- Dedicated connections (`get_sync_connection`) for bulk writers and DDL.
  Each bulk worker owns one for the whole job so a large load never drains
  the shared pool.
- Pooled connections (`get_sync_pool`) for ordinary request traffic: page
  reads, lease bookkeeping, table lookups. The PoolManager singleton owns the
  pool and closes it on exit.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from typing import Optional

import asyncpg
import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from rowstream.config import get_settings


def build_dsn() -> str:
    """Compose a DSN string from settings."""
    settings = get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def apply_statement_timeout(cur: psycopg.Cursor, timeout_ms: int, local: bool = False) -> None:
    """
    Set `statement_timeout` on the cursor's session (or transaction, if `local`).

    A non-positive timeout leaves the server default untouched.
    """
    if timeout_ms <= 0:
        return
    scope = "LOCAL " if local else ""
    # SET does not accept bind parameters; the value is an int we formatted ourselves.
    cur.execute(f"SET {scope}statement_timeout = {int(timeout_ms)}")


class PoolManager:
    """
    Thread-safe singleton for managing the shared connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(
        self, min_size: Optional[int] = None, max_size: Optional[int] = None
    ) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Sizes default to `db_pool_min_size` / `db_pool_max_size`; they only
        apply on first creation.
        """
        with self._lock:
            if self._sync_pool is None:
                settings = get_settings()
                self._sync_pool = ConnectionPool(
                    conninfo=build_dsn(),
                    min_size=min_size or settings.db_pool_min_size,
                    max_size=max_size or settings.db_pool_max_size,
                    open=True,
                )
            return self._sync_pool

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            pool, self._sync_pool = self._sync_pool, None
        if pool is not None:
            pool.close()


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None, autocommit: bool = True) -> Connection:
    """
    Open a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection
    errors. Connections default to autocommit so callers scope their own
    transactions with `conn.transaction()`; `CREATE/DROP INDEX CONCURRENTLY`
    also requires it.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn(), autocommit=autocommit)


def get_sync_pool(min_size: Optional[int] = None, max_size: Optional[int] = None) -> ConnectionPool:
    """Get or create the shared synchronous connection pool via PoolManager."""
    return PoolManager().get_sync_pool(min_size=min_size, max_size=max_size)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((OSError, ConnectionError)),
    reraise=True,
)
async def create_async_pool(
    dsn: Optional[str] = None, min_size: Optional[int] = None, max_size: Optional[int] = None
) -> asyncpg.Pool:
    """
    Create an asyncpg pool for async readers with automatic retry.

    The caller owns the returned pool and must close it.
    """
    settings = get_settings()
    return await asyncpg.create_pool(
        dsn or build_dsn(),
        min_size=min_size or settings.db_pool_min_size,
        max_size=max_size or settings.db_pool_max_size,
    )


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "create_async_pool",
    "get_sync_connection",
    "get_sync_pool",
]
