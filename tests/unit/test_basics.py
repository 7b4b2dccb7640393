from datetime import datetime, timedelta, timezone
from time import sleep

from rowstream import config
from rowstream.domain.models import BulkLock, Column, ColumnType, Row, lease_key, ordered_columns
from rowstream.errors import RowstreamError, TableNotFoundError, ValidationError
from rowstream.utils import profiler


def test_get_settings_defaults():
    settings = config.get_settings()
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.db_user == "postgres"
    assert settings.bulk_batch_size > 0
    assert settings.bulk_parallelism <= settings.bulk_max_parallelism
    assert settings.page_first_size < settings.page_max_size


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("BULK_BATCH_SIZE", "40")
    monkeypatch.setenv("PAGE_SWEEP_REMAINDER", "false")
    config.get_settings.cache_clear()
    settings = config.get_settings()
    assert settings.bulk_batch_size == 40
    assert settings.page_sweep_remainder is False


def test_profile_block_measures_time():
    with profiler.profile_block("sleep") as stats:
        sleep(0.05)
    assert stats.duration_seconds >= 0.05
    assert stats.peak_rss_bytes is None or stats.peak_rss_bytes > 0
    if stats.cpu_percent is not None:
        assert isinstance(stats.cpu_percent, float)
    assert stats.throughput(100) > 0


def test_profile_stats_throughput_without_duration():
    assert profiler.ProfileStats(label="empty").throughput(10) == 0.0


def test_error_hierarchy():
    err = TableNotFoundError("tbl_x")
    assert isinstance(err, ValidationError)
    assert isinstance(err, RowstreamError)
    assert err.table_id == "tbl_x"
    assert "tbl_x" in str(err)


def test_ordered_columns_uses_creation_order_then_id():
    cols = [
        Column(id="b", name="B", type=ColumnType.TEXT, creation_order=1),
        Column(id="z", name="Z", type=ColumnType.TEXT, creation_order=0),
        Column(id="a", name="A", type=ColumnType.NUMBER, creation_order=1),
    ]
    assert [c.id for c in ordered_columns(cols)] == ["z", "a", "b"]


def test_row_value_reads_missing_column_as_null():
    row = Row(
        id="r1",
        table_id="t1",
        cache={"c1": "Alice"},
        search=None,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    assert row.value("c1") == "Alice"
    assert row.value("c_added_later") is None


def test_bulk_lock_liveness_is_strict():
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    lock = BulkLock.for_table("t1", now + timedelta(seconds=2))
    assert lock.id == lease_key("t1")
    assert lock.is_live(now)
    assert lock.remaining_ms(now) == 2000
    assert not lock.is_live(now + timedelta(seconds=2))
