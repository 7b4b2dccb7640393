"""
Bulk row generator.

Writes `count` synthetic rows for a table as independent batch transactions:

- `count` is split into contiguous batches (`partition_batches`);
- `parallelism` writer threads each open one dedicated connection and pull
  batches from a shared queue until it is empty;
- each batch is one transaction with relaxed durability
  (`synchronous_commit = off`) and its own `statement_timeout`, running a
  single set-oriented INSERT that builds every row's `cache` server-side and
  leaves `search` NULL for the background backfill.

A failed batch rolls back alone. Batches committed by other workers stay
committed and no further batches are dispatched, so the job reports
`PartiallyCompleted` rather than pretending nothing happened.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import psycopg
from psycopg import Connection

from rowstream.bulk.background import BackgroundPasses
from rowstream.bulk.batches import Batch, partition_batches
from rowstream.bulk.indexes import IndexDefinition, IndexManager, should_drop_indexes
from rowstream.bulk.synth import sql_parameters
from rowstream.config import get_settings
from rowstream.domain.models import Column, ordered_columns
from rowstream.domain.results import BulkOutcome, Completed, PartiallyCompleted
from rowstream.errors import ValidationError
from rowstream.infrastructure.db_factory import apply_statement_timeout, get_sync_connection
from rowstream.utils.logging import get_logger

log = get_logger(__name__)

# Mirrors rowstream.bulk.synth.synthesize_value rule for rule.
INSERT_BATCH_SQL = """
WITH seq AS (
    SELECT g.n
    FROM generate_series(%(start)s::bigint, %(stop)s::bigint - 1) AS g(n)
),
cols AS (
    SELECT c.id, c.name, c.type, c.ord - 1 AS i
    FROM unnest(%(column_ids)s::text[], %(column_names)s::text[], %(column_types)s::text[])
        WITH ORDINALITY AS c(id, name, type, ord)
),
vals AS (
    SELECT
        s.n,
        c.id AS column_id,
        CASE
            WHEN c.name = 'Name' THEN to_jsonb(
                (%(name_pool)s::text[])[1 + mod(
                    %(seed)s::bigint + s.n * %(name_pn)s::bigint + c.i * %(name_pi)s::bigint,
                    cardinality(%(name_pool)s::text[])
                )]
            )
            WHEN c.name = 'Email' THEN to_jsonb(
                'user' || (%(email_base)s::bigint + mod(
                    %(seed)s::bigint + s.n * %(email_pn)s::bigint + c.i * %(email_pi)s::bigint,
                    %(email_span)s::bigint
                ))::text || '@example.com'
            )
            WHEN c.name = 'Age' THEN to_jsonb(
                %(age_min)s::bigint + mod(
                    %(seed)s::bigint + s.n * %(age_pn)s::bigint + c.i * %(age_pi)s::bigint,
                    %(age_span)s::bigint
                )
            )
            WHEN c.type = 'NUMBER' THEN to_jsonb(
                %(number_min)s::bigint + mod(
                    %(seed)s::bigint + s.n * %(number_pn)s::bigint + c.i * %(number_pi)s::bigint,
                    %(number_span)s::bigint
                )
            )
            ELSE to_jsonb(
                (%(word_pool)s::text[])[1 + mod(
                    %(seed)s::bigint + s.n * %(word_pn)s::bigint + c.i * %(word_pi)s::bigint,
                    cardinality(%(word_pool)s::text[])
                )]
            )
        END AS value
    FROM seq s
    CROSS JOIN cols c
)
INSERT INTO grid_row (id, table_id, cache, search, created_at)
SELECT
    gen_random_uuid()::text,
    %(table_id)s,
    jsonb_object_agg(v.column_id, coalesce(v.value, 'null'::jsonb)),
    NULL,
    clock_timestamp()
FROM vals v
GROUP BY v.n
ORDER BY v.n
"""


@dataclass(frozen=True)
class BatchReport:
    batch: Optional[Batch]
    committed: bool
    worker: int
    error: Optional[str] = None


class BulkRowGenerator:
    """
    Parallel batched writer for synthetic rows.

    Parameters
    ----------
    connect : Callable[[], Connection] | None
        Factory for dedicated autocommit connections, one per writer. Defaults
        to `get_sync_connection` (never the shared pool).
    batch_timeout_ms : int | None
        Per-batch `statement_timeout`. Defaults to settings.
    index_drop_threshold : int | None
        Projected value count (rows x columns) at which secondary indexes are
        dropped for the load. Defaults to settings; 0 disables.
    run_background : bool
        Whether to start the detached backfill / index / ANALYZE passes.
    """

    name: str = "bulk_row_generator"

    def __init__(
        self,
        connect: Optional[Callable[[], Connection]] = None,
        batch_timeout_ms: Optional[int] = None,
        index_drop_threshold: Optional[int] = None,
        index_manager: Optional[IndexManager] = None,
        run_background: bool = True,
    ) -> None:
        settings = get_settings()
        self._connect = connect or get_sync_connection
        self.batch_timeout_ms = (
            settings.bulk_batch_timeout_ms if batch_timeout_ms is None else batch_timeout_ms
        )
        self.index_drop_threshold = (
            settings.bulk_index_drop_threshold
            if index_drop_threshold is None
            else index_drop_threshold
        )
        self._index_manager = index_manager or IndexManager(connect=self._connect)
        self.run_background = run_background
        self.background: Optional[threading.Thread] = None
        self.reports: List[BatchReport] = []

    @property
    def rows_committed(self) -> int:
        """Rows from batches known to have committed in the last `generate` call."""
        return sum(r.batch.size for r in self.reports if r.committed and r.batch is not None)

    @staticmethod
    def _validate(columns: Sequence[Column], count: int, batch_size: int, parallelism: int) -> None:
        if count <= 0:
            raise ValidationError(f"count must be positive, got {count}")
        if not columns:
            raise ValidationError("table has no columns to generate values for")
        if batch_size <= 0:
            raise ValidationError(f"batch_size must be positive, got {batch_size}")
        if parallelism <= 0:
            raise ValidationError(f"parallelism must be positive, got {parallelism}")

    def _batch_params(self, table_id: str, columns: Sequence[Column]) -> Dict[str, object]:
        params = sql_parameters(table_id)
        params.update(
            {
                "table_id": table_id,
                "column_ids": [c.id for c in columns],
                "column_names": [c.name for c in columns],
                "column_types": [c.type.value for c in columns],
            }
        )
        return params

    def _write_batch(self, conn: Connection, batch: Batch, base_params: Dict[str, object]) -> int:
        params = dict(base_params, start=batch.start, stop=batch.stop)
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SET LOCAL synchronous_commit = off")
                apply_statement_timeout(cur, self.batch_timeout_ms, local=True)
                cur.execute(INSERT_BATCH_SQL, params)
                return cur.rowcount

    def _worker(
        self,
        worker: int,
        work: "queue.Queue[Batch]",
        stop: threading.Event,
        base_params: Dict[str, object],
        table_id: str,
    ) -> List[BatchReport]:
        reports: List[BatchReport] = []
        try:
            conn = self._connect()
        except psycopg.Error as exc:
            stop.set()
            log.exception("Bulk writer could not connect", extra={"worker": worker})
            return [BatchReport(batch=None, committed=False, worker=worker, error=str(exc))]

        try:
            while not stop.is_set():
                try:
                    batch = work.get_nowait()
                except queue.Empty:
                    break
                try:
                    self._write_batch(conn, batch, base_params)
                except psycopg.Error as exc:
                    stop.set()
                    log.exception(
                        "Batch failed and was rolled back",
                        extra={
                            "table_id": table_id,
                            "worker": worker,
                            "batch": batch.index,
                            "start": batch.start,
                            "stop": batch.stop,
                        },
                    )
                    reports.append(
                        BatchReport(batch=batch, committed=False, worker=worker, error=str(exc))
                    )
                    continue
                reports.append(BatchReport(batch=batch, committed=True, worker=worker))
                log.debug(
                    "Batch committed",
                    extra={
                        "table_id": table_id,
                        "worker": worker,
                        "batch": batch.index,
                        "rows": batch.size,
                    },
                )
        finally:
            conn.close()
        return reports

    def _drop_indexes_if_needed(self, count: int, column_count: int) -> List[IndexDefinition]:
        if not should_drop_indexes(count, column_count, self.index_drop_threshold):
            log.info(
                "Index dropping skipped",
                extra={"values": count * column_count, "threshold": self.index_drop_threshold},
            )
            return []
        dropped = self._index_manager.drop_secondary()
        log.info(
            "Secondary indexes dropped for bulk load",
            extra={"values": count * column_count, "dropped": len(dropped)},
        )
        return dropped

    def generate(
        self,
        table_id: str,
        columns: Sequence[Column],
        count: int,
        batch_size: Optional[int] = None,
        parallelism: Optional[int] = None,
        sequence_offset: int = 0,
    ) -> BulkOutcome:
        """
        Write `count` rows for `table_id` and start the background passes.

        `sequence_offset` is the first row sequence number (the table's
        existing row count, so repeated jobs keep producing fresh values).

        Raises ValidationError before any write when inputs are invalid.
        """
        settings = get_settings()
        batch_size = batch_size or settings.bulk_batch_size
        parallelism = parallelism or settings.bulk_parallelism
        self._validate(columns, count, batch_size, parallelism)
        self.reports = []

        columns = ordered_columns(columns)
        batches = partition_batches(count, batch_size, offset=sequence_offset)
        workers = min(parallelism, len(batches))
        log.info(
            "Bulk generation started",
            extra={
                "table_id": table_id,
                "rows": count,
                "columns": len(columns),
                "batches": len(batches),
                "workers": workers,
            },
        )

        dropped = self._drop_indexes_if_needed(count, len(columns))
        try:
            work: "queue.Queue[Batch]" = queue.Queue()
            for batch in batches:
                work.put(batch)
            stop = threading.Event()
            base_params = self._batch_params(table_id, columns)

            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk-writer") as pool:
                futures = [
                    pool.submit(self._worker, worker, work, stop, base_params, table_id)
                    for worker in range(workers)
                ]
                self.reports = [report for future in futures for report in future.result()]
        finally:
            if self.run_background:
                self.background = BackgroundPasses(
                    table_id,
                    columns,
                    dropped_indexes=dropped,
                    connect=self._connect,
                    index_manager=self._index_manager,
                ).start()

        return self._outcome(table_id, batches)

    def _outcome(self, table_id: str, batches: Sequence[Batch]) -> BulkOutcome:
        committed = [r for r in self.reports if r.committed]
        failed = [r for r in self.reports if not r.committed and r.batch is not None]
        rows_committed = self.rows_committed
        if len(committed) == len(batches):
            log.info(
                "Bulk generation completed",
                extra={"table_id": table_id, "rows": rows_committed, "batches": len(batches)},
            )
            return Completed(rows_added=rows_committed, batches=len(batches))

        outcome = PartiallyCompleted(
            rows_committed=rows_committed,
            batches_committed=len(committed),
            batches_failed=len(failed),
            batches_skipped=len(batches) - len(committed) - len(failed),
            errors=tuple(r.error for r in self.reports if r.error),
        )
        log.warning(
            "Bulk generation partially completed",
            extra={
                "table_id": table_id,
                "rows_committed": outcome.rows_committed,
                "batches_committed": outcome.batches_committed,
                "batches_failed": outcome.batches_failed,
                "batches_skipped": outcome.batches_skipped,
            },
        )
        return outcome


__all__ = ["BatchReport", "BulkRowGenerator", "INSERT_BATCH_SQL"]
