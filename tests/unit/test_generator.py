from __future__ import annotations

import logging
import os
import subprocess
import sys
import textwrap
import threading
from pathlib import Path
from typing import Any, List, Optional, Tuple

import psycopg
import pytest

from rowstream.bulk.background import BackgroundPasses
from rowstream.bulk.generator import BulkRowGenerator
from rowstream.bulk.indexes import IndexDefinition, should_drop_indexes
from rowstream.domain.models import Column, ColumnType
from rowstream.domain.results import Completed, PartiallyCompleted
from rowstream.errors import ValidationError

TABLE_ID = "tbl_gen"

COLUMNS = [
    Column(id="c_name", name="Name", type=ColumnType.TEXT, creation_order=0),
    Column(id="c_email", name="Email", type=ColumnType.TEXT, creation_order=1),
    Column(id="c_age", name="Age", type=ColumnType.NUMBER, creation_order=2),
    Column(id="c_notes", name="Notes", type=ColumnType.TEXT, creation_order=3),
]

TABLE_ID_INDEX = IndexDefinition(
    name="grid_row_table_id_idx",
    definition="CREATE INDEX grid_row_table_id_idx ON public.grid_row USING btree (table_id)",
)


class _FakeDatabase:
    """Shared state behind every fake connection handed to the generator."""

    def __init__(self, fail_starts: Tuple[int, ...] = (), backfill_rows: int = 0) -> None:
        self.lock = threading.Lock()
        self.fail_starts = set(fail_starts)
        self.committed: List[Tuple[int, int]] = []
        self.rolled_back: List[Tuple[int, int]] = []
        self.statements: List[str] = []
        self.opened = 0
        self.closed = 0
        self.backfill_remaining = backfill_rows

    def connect(self) -> "_FakeConnection":
        with self.lock:
            self.opened += 1
        return _FakeConnection(self)


class _FakeTransaction:
    def __init__(self, conn: "_FakeConnection") -> None:
        self._conn = conn

    def __enter__(self) -> "_FakeTransaction":
        self._conn.pending = []
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        db = self._conn.db
        with db.lock:
            if exc_type is None:
                db.committed.extend(self._conn.pending)
            else:
                db.rolled_back.extend(self._conn.pending)
        self._conn.pending = []
        return False


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection") -> None:
        self._conn = conn
        self.rowcount = -1

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def execute(self, query: Any, params: Optional[dict] = None) -> None:
        db = self._conn.db
        text = str(query)
        with db.lock:
            db.statements.append(text)
        if "INSERT INTO grid_row" in text:
            assert params is not None
            span = (params["start"], params["stop"])
            self._conn.pending.append(span)
            if params["start"] in db.fail_starts:
                raise psycopg.errors.QueryCanceled("canceling statement due to statement timeout")
            self.rowcount = span[1] - span[0]
        elif "UPDATE grid_row" in text:
            with db.lock:
                updated = min(params["chunk_size"], db.backfill_remaining)
                db.backfill_remaining -= updated
            self.rowcount = updated


class _FakeConnection:
    def __init__(self, db: _FakeDatabase) -> None:
        self.db = db
        self.pending: List[Tuple[int, int]] = []

    def __enter__(self) -> "_FakeConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def transaction(self) -> _FakeTransaction:
        return _FakeTransaction(self)

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)

    def execute(self, query: Any, params: Any = None) -> None:
        with self.db.lock:
            self.db.statements.append(str(query))

    def close(self) -> None:
        with self.db.lock:
            self.db.closed += 1


class _FakeIndexManager:
    def __init__(self, fail_rebuild: bool = False) -> None:
        self.drop_calls = 0
        self.rebuilt: List[IndexDefinition] = []
        self.fail_rebuild = fail_rebuild

    def drop_secondary(self) -> List[IndexDefinition]:
        self.drop_calls += 1
        return [TABLE_ID_INDEX]

    def rebuild(self, indexes) -> int:
        if self.fail_rebuild:
            raise psycopg.OperationalError("index build failed")
        self.rebuilt.extend(indexes)
        return len(indexes)


def _generator(db: _FakeDatabase, **kwargs: Any) -> BulkRowGenerator:
    kwargs.setdefault("run_background", False)
    kwargs.setdefault("index_drop_threshold", 0)
    kwargs.setdefault("index_manager", _FakeIndexManager())
    return BulkRowGenerator(connect=db.connect, batch_timeout_ms=5_000, **kwargs)


def test_hundred_rows_in_three_batches_across_two_workers() -> None:
    db = _FakeDatabase()
    outcome = _generator(db).generate(TABLE_ID, COLUMNS, 100, batch_size=40, parallelism=2)

    assert outcome == Completed(rows_added=100, batches=3)
    assert sorted(db.committed) == [(0, 40), (40, 80), (80, 100)]
    assert db.opened == 2
    assert db.closed == db.opened


def test_each_batch_relaxes_durability_and_sets_local_timeout() -> None:
    db = _FakeDatabase()
    _generator(db).generate(TABLE_ID, COLUMNS, 10, batch_size=10, parallelism=1)

    assert db.statements[:2] == [
        "SET LOCAL synchronous_commit = off",
        "SET LOCAL statement_timeout = 5000",
    ]


def test_workers_never_exceed_batch_count() -> None:
    db = _FakeDatabase()
    outcome = _generator(db).generate(TABLE_ID, COLUMNS, 5, batch_size=100, parallelism=8)

    assert outcome == Completed(rows_added=5, batches=1)
    assert db.opened == 1


def test_sequence_offset_shifts_batches() -> None:
    db = _FakeDatabase()
    _generator(db).generate(TABLE_ID, COLUMNS, 10, batch_size=5, parallelism=1, sequence_offset=20)

    assert db.committed == [(20, 25), (25, 30)]


def test_failed_batch_rolls_back_alone_and_stops_dispatch() -> None:
    db = _FakeDatabase(fail_starts=(40,))
    generator = _generator(db)
    outcome = generator.generate(TABLE_ID, COLUMNS, 100, batch_size=40, parallelism=1)

    assert isinstance(outcome, PartiallyCompleted)
    assert outcome.rows_committed == 40
    assert outcome.batches_committed == 1
    assert outcome.batches_failed == 1
    assert outcome.batches_skipped == 1
    assert outcome.status == "partial"
    assert "statement timeout" in outcome.errors[0]
    assert db.committed == [(0, 40)]
    assert db.rolled_back == [(40, 80)]


def test_partial_failure_with_parallel_workers_reports_committed_rows() -> None:
    db = _FakeDatabase(fail_starts=(0,))
    outcome = _generator(db).generate(TABLE_ID, COLUMNS, 100, batch_size=10, parallelism=2)

    assert isinstance(outcome, PartiallyCompleted)
    assert outcome.batches_failed == 1
    assert outcome.rows_committed == sum(stop - start for start, stop in db.committed)
    assert (
        outcome.batches_committed + outcome.batches_failed + outcome.batches_skipped == 10
    )


def test_writer_that_cannot_connect_yields_partial_outcome() -> None:
    def refuse():
        raise psycopg.OperationalError("connection refused")

    generator = BulkRowGenerator(
        connect=refuse,
        run_background=False,
        index_drop_threshold=0,
        index_manager=_FakeIndexManager(),
    )
    outcome = generator.generate(TABLE_ID, COLUMNS, 30, batch_size=10, parallelism=1)

    assert outcome == PartiallyCompleted(
        rows_committed=0,
        batches_committed=0,
        batches_failed=0,
        batches_skipped=3,
        errors=("connection refused",),
    )


@pytest.mark.parametrize(
    "count, batch_size, parallelism, columns",
    [
        (0, 10, 1, COLUMNS),
        (-5, 10, 1, COLUMNS),
        (10, 10, 1, []),
        (10, -1, 1, COLUMNS),
        (10, 10, -2, COLUMNS),
    ],
)
def test_invalid_input_is_rejected_before_any_write(count, batch_size, parallelism, columns) -> None:
    db = _FakeDatabase()
    with pytest.raises(ValidationError):
        _generator(db).generate(
            TABLE_ID, columns, count, batch_size=batch_size, parallelism=parallelism
        )
    assert db.opened == 0


def test_should_drop_indexes_threshold() -> None:
    assert should_drop_indexes(250_000, 4, 1_000_000)
    assert not should_drop_indexes(249_999, 4, 1_000_000)
    assert not should_drop_indexes(10**9, 4, 0)


def test_concurrent_create_rewrites_index_definition() -> None:
    assert TABLE_ID_INDEX.concurrent_create() == (
        "CREATE INDEX CONCURRENTLY IF NOT EXISTS grid_row_table_id_idx "
        "ON public.grid_row USING btree (table_id)"
    )
    with pytest.raises(ValueError):
        IndexDefinition("u", "CREATE UNIQUE INDEX u ON grid_row (id)").concurrent_create()


def test_large_load_drops_indexes_and_background_rebuilds_them() -> None:
    db = _FakeDatabase(backfill_rows=100)
    indexes = _FakeIndexManager()
    generator = _generator(db, index_drop_threshold=400, index_manager=indexes, run_background=True)

    outcome = generator.generate(TABLE_ID, COLUMNS, 100, batch_size=50, parallelism=2)
    assert generator.background is not None
    generator.background.join(timeout=5)

    assert isinstance(outcome, Completed)
    assert indexes.drop_calls == 1
    assert indexes.rebuilt == [TABLE_ID_INDEX]
    assert db.backfill_remaining == 0
    assert any("ANALYZE" in stmt for stmt in db.statements)


def test_small_load_keeps_indexes() -> None:
    db = _FakeDatabase()
    indexes = _FakeIndexManager()
    _generator(db, index_drop_threshold=401, index_manager=indexes).generate(
        TABLE_ID, COLUMNS, 100, batch_size=50, parallelism=1
    )
    assert indexes.drop_calls == 0


def test_background_runs_even_after_partial_failure() -> None:
    db = _FakeDatabase(fail_starts=(10,), backfill_rows=10)
    generator = _generator(db, run_background=True)

    outcome = generator.generate(TABLE_ID, COLUMNS, 20, batch_size=10, parallelism=1)
    generator.background.join(timeout=5)

    assert isinstance(outcome, PartiallyCompleted)
    assert db.backfill_remaining == 0


def test_backfill_converges_in_chunks() -> None:
    db = _FakeDatabase(backfill_rows=25)
    passes = BackgroundPasses(TABLE_ID, COLUMNS, connect=db.connect, chunk_size=10)

    assert passes.backfill_search() == 25
    updates = [s for s in db.statements if "UPDATE grid_row" in s]
    # three chunks with rows, then one empty chunk ends the loop
    assert len(updates) == 4


def test_background_failures_are_logged_and_swallowed(caplog) -> None:
    def refuse():
        raise psycopg.OperationalError("server closed the connection")

    passes = BackgroundPasses(
        TABLE_ID,
        COLUMNS,
        dropped_indexes=[TABLE_ID_INDEX],
        connect=refuse,
        index_manager=_FakeIndexManager(fail_rebuild=True),
    )
    with caplog.at_level(logging.ERROR, logger="rowstream.bulk.background"):
        passes.run()

    messages = [record.getMessage() for record in caplog.records]
    assert "Search backfill failed" in messages
    assert "Index rebuild failed" in messages
    assert "Statistics refresh failed" in messages


_EXIT_WITHOUT_JOIN = textwrap.dedent(
    """
    import contextlib
    import sys
    import time
    from pathlib import Path

    from rowstream.bulk.generator import BulkRowGenerator
    from rowstream.bulk.indexes import IndexDefinition
    from rowstream.domain.models import Column, ColumnType

    marker = Path(sys.argv[1])


    class Cursor:
        rowcount = 0

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def execute(self, query, params=None):
            if isinstance(params, dict) and "start" in params:
                self.rowcount = params["stop"] - params["start"]


    class Connection:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            self.close()

        def transaction(self):
            return contextlib.nullcontext()

        def cursor(self):
            return Cursor()

        def execute(self, query, params=None):
            pass

        def close(self):
            pass


    class SlowIndexManager:
        def drop_secondary(self):
            return [IndexDefinition("ix", "CREATE INDEX ix ON grid_row (table_id)")]

        def rebuild(self, indexes):
            time.sleep(0.5)
            marker.write_text(str(len(indexes)))
            return len(indexes)


    generator = BulkRowGenerator(
        connect=Connection,
        batch_timeout_ms=1_000,
        index_drop_threshold=1,
        index_manager=SlowIndexManager(),
        run_background=True,
    )
    columns = [Column(id="c_name", name="Name", type=ColumnType.TEXT, creation_order=0)]
    outcome = generator.generate("tbl_exit", columns, 10, batch_size=5, parallelism=2)
    print(outcome.status)
    """
)


@pytest.mark.slow
def test_background_passes_finish_before_process_exit(tmp_path: Path) -> None:
    marker = tmp_path / "rebuilt"
    env = dict(os.environ, PYTHONPATH=str(Path(__file__).resolve().parents[2]))

    proc = subprocess.run(
        [sys.executable, "-c", _EXIT_WITHOUT_JOIN, str(marker)],
        cwd=tmp_path,
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.strip() == "completed"
    assert marker.read_text() == "1"


def test_background_thread_is_not_a_daemon() -> None:
    db = _FakeDatabase()
    generator = _generator(db, run_background=True)

    generator.generate(TABLE_ID, COLUMNS, 10, batch_size=10, parallelism=1)
    generator.background.join(timeout=5)

    assert generator.background.daemon is False
