"""
Advisory bulk lease ("bulk lock") bookkeeping.

A lease is a plain `bulk_lock` record with an expiry. Nothing in the storage
layer enforces it: the view-state write path asks `is_live` and defers its own
work while a bulk job runs. A crashed holder is only reclaimed by expiry;
there is no heartbeat.
"""

from __future__ import annotations

import contextlib
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Literal, Optional, Union

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from rowstream.config import get_settings
from rowstream.domain.models import BulkLock, lease_key
from rowstream.domain.results import LeaseResponse
from rowstream.infrastructure.db_factory import get_sync_pool
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

Clock = Callable[[], datetime]
TTL = Union[timedelta, int, float]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ttl_for_rows(count: int) -> timedelta:
    """Lease TTL for a job of `count` rows: a floor plus a per-row allowance."""
    settings = get_settings()
    return timedelta(
        seconds=settings.lease_ttl_floor_seconds,
        milliseconds=max(count, 0) * settings.lease_ttl_per_row_ms,
    )


def _as_timedelta(ttl: TTL) -> timedelta:
    if isinstance(ttl, timedelta):
        return ttl
    return timedelta(seconds=ttl)


class LeaseManager:
    """
    Acquire / check / release table-scoped bulk leases.

    Parameters
    ----------
    pool : ConnectionPool | None
        Shared pool to run lease statements on. Defaults to the process pool.
    clock : Callable[[], datetime] | None
        Source of "now" (timezone-aware). Expiry is computed and checked
        against this clock only.
    """

    def __init__(self, pool: Optional[ConnectionPool] = None, clock: Optional[Clock] = None) -> None:
        self._pool = pool
        self._clock = clock or utc_now

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = get_sync_pool()
        return self._pool

    def acquire(self, table_id: str, ttl: TTL) -> BulkLock:
        """Upsert the lease; re-acquiring a live lease extends its expiry."""
        lock = BulkLock.for_table(table_id, self._clock() + _as_timedelta(ttl))
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO bulk_lock (id, table_id, expires_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (id) DO UPDATE
                    SET expires_at = GREATEST(bulk_lock.expires_at, EXCLUDED.expires_at)
                    """,
                    (lock.id, lock.table_id, lock.expires_at),
                )
        log.info(
            "Bulk lease acquired",
            extra={"table_id": table_id, "expires_at": lock.expires_at.isoformat()},
        )
        return lock

    def get(self, table_id: str) -> Optional[BulkLock]:
        """Return the physical lease record, live or not."""
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, table_id, expires_at FROM bulk_lock WHERE id = %s",
                    (lease_key(table_id),),
                )
                row = cur.fetchone()
        return BulkLock(**row) if row else None

    def is_live(self, table_id: str) -> bool:
        lock = self.get(table_id)
        return lock is not None and lock.is_live(self._clock())

    def status(self, table_id: str) -> LeaseResponse:
        lock = self.get(table_id)
        now = self._clock()
        if lock is None or not lock.is_live(now):
            return LeaseResponse(isLocked=False, expiresAt=None, remainingMs=None)
        return LeaseResponse(
            isLocked=True,
            expiresAt=lock.expires_at.isoformat(),
            remainingMs=lock.remaining_ms(now),
        )

    def release(self, table_id: str) -> None:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM bulk_lock WHERE id = %s", (lease_key(table_id),))
        log.info("Bulk lease released", extra={"table_id": table_id})

    @contextlib.contextmanager
    def hold(self, table_id: str, ttl: TTL) -> Iterator[BulkLock]:
        """
        Hold the lease for the duration of the block.

        Release runs on every exit path. If release itself fails the error is
        logged and expiry reclaims the lease.
        """
        lock = self.acquire(table_id, ttl)
        try:
            yield lock
        finally:
            try:
                self.release(table_id)
            except psycopg.Error:
                log.exception(
                    "Bulk lease release failed; lease will lapse at expiry",
                    extra={"table_id": table_id, "expires_at": lock.expires_at.isoformat()},
                )


def defer_if_locked(
    manager: LeaseManager, table_id: str, write: Callable[[], None]
) -> Literal["written", "deferred"]:
    """
    Run a view-state write unless a bulk lease is live for the table.

    A live lease is not an error: the write is skipped and reported as deferred.
    """
    if manager.is_live(table_id):
        log.info("View-state write deferred during bulk load", extra={"table_id": table_id})
        return "deferred"
    write()
    return "written"


__all__ = ["LeaseManager", "defer_if_locked", "ttl_for_rows", "utc_now"]
