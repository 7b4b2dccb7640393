"""
Request/response operations over the lease manager, bulk generator, and
keyset reader.

Usage:
    from rowstream.service import generate_bulk_rows, get_page

    result = generate_bulk_rows("tbl_1", 50_000)
    first = get_page("tbl_1")
    second = get_page("tbl_1", cursor=first["nextCursor"])
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import psycopg

from rowstream.bulk.generator import BulkRowGenerator
from rowstream.bulk.synth import synthesize_row
from rowstream.config import get_settings
from rowstream.domain.models import CellValue
from rowstream.domain.results import (
    BulkOutcome,
    Completed,
    GenerateResponse,
    LeaseResponse,
    PageResponse,
)
from rowstream.errors import ValidationError
from rowstream.infrastructure.repository import TableRepository
from rowstream.lease.manager import LeaseManager, ttl_for_rows
from rowstream.pagination.reader import KeysetPageReader
from rowstream.utils.logging import get_logger
from rowstream.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)


def _round_float(value: float, decimals: int = 2) -> float:
    return round(value, decimals)


def _clamp(value: Optional[int], default: int, ceiling: int) -> int:
    effective = value if value is not None else default
    if ceiling > 0 and effective > ceiling:
        return ceiling
    return effective


def _message(outcome: BulkOutcome, requested: int) -> str:
    if isinstance(outcome, Completed):
        return f"Added {outcome.rows_added:,} rows in {outcome.batches} batch(es)."
    return (
        f"Added {outcome.rows_committed:,} of {requested:,} requested rows: "
        f"{outcome.batches_committed} batch(es) committed, {outcome.batches_failed} failed, "
        f"{outcome.batches_skipped} not attempted. The table may hold more rows than "
        f"reported; re-query for an exact count."
    )


def _profile_extra(stats: ProfileStats, rows: int) -> Dict[str, Any]:
    return {
        "duration_seconds": _round_float(stats.duration_seconds),
        "throughput_rows_per_sec": _round_float(stats.throughput(rows)),
        "peak_rss_bytes": stats.peak_rss_bytes,
        "cpu_percent": _round_float(stats.cpu_percent, 1) if stats.cpu_percent else None,
    }


class RowstreamService:
    """
    Wires the components together behind the exposed operations.

    Every collaborator is injectable; defaults use the process-wide pool and
    dedicated writer connections.
    """

    def __init__(
        self,
        repository: Optional[TableRepository] = None,
        leases: Optional[LeaseManager] = None,
        reader: Optional[KeysetPageReader] = None,
        generator_factory: Optional[Callable[[], BulkRowGenerator]] = None,
    ) -> None:
        self.repository = repository or TableRepository()
        self.leases = leases or LeaseManager()
        self.reader = reader or KeysetPageReader()
        self._generator_factory = generator_factory or BulkRowGenerator

    def generate_bulk_rows(
        self,
        table_id: str,
        count: int,
        *,
        batch_size: Optional[int] = None,
        parallelism: Optional[int] = None,
        wait_for_background: bool = False,
    ) -> GenerateResponse:
        """
        Bulk-load `count` synthetic rows into `table_id`.

        `count` is capped at `bulk_max_rows` and `parallelism` at
        `bulk_max_parallelism`. Invalid input comes back as
        `status="rejected"` with nothing written; a job where some batches
        failed comes back as `status="partial"` with `success=False`. A
        database error outside the batches (lease, row count, index drop)
        comes back as `status="failed"`.
        """
        settings = get_settings()
        capped = _clamp(count, count, settings.bulk_max_rows)
        if capped != count:
            log.info(
                "Requested row count capped",
                extra={"table_id": table_id, "requested": count, "capped": capped},
            )
        workers = _clamp(parallelism, settings.bulk_parallelism, settings.bulk_max_parallelism)
        generator: Optional[BulkRowGenerator] = None

        try:
            columns = self.repository.load_columns(table_id)
            if capped <= 0:
                raise ValidationError(f"count must be positive, got {count}")
            if not columns:
                raise ValidationError("table has no columns to generate values for")

            offset = self.repository.count_rows(table_id)
            generator = self._generator_factory()
            with self.leases.hold(table_id, ttl_for_rows(capped)):
                with profile_block(f"bulk:{table_id}") as stats:
                    outcome = generator.generate(
                        table_id,
                        columns,
                        capped,
                        batch_size=batch_size,
                        parallelism=workers,
                        sequence_offset=offset,
                    )
        except ValidationError as exc:
            log.warning("Bulk generation rejected", extra={"table_id": table_id, "error": str(exc)})
            return GenerateResponse(success=False, rowsAdded=0, status="rejected", message=str(exc))
        except psycopg.Error as exc:
            log.exception("Bulk generation failed", extra={"table_id": table_id})
            rows = generator.rows_committed if generator is not None else 0
            return GenerateResponse(
                success=False,
                rowsAdded=rows,
                status="failed",
                message=(
                    f"Bulk generation failed: {exc}. At least {rows:,} rows were committed; "
                    f"re-query for an exact count."
                ),
            )

        if wait_for_background and generator.background is not None:
            generator.background.join()

        return GenerateResponse(
            success=isinstance(outcome, Completed),
            rowsAdded=outcome.rows_added,
            status=outcome.status,
            message=_message(outcome, capped),
            extra=_profile_extra(stats, outcome.rows_added),
        )

    def get_page(
        self, table_id: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> PageResponse:
        return self.reader.page(table_id, cursor=cursor, limit=limit).to_response()

    def check_lease(self, table_id: str) -> LeaseResponse:
        return self.leases.status(table_id)

    def preview_rows(self, table_id: str, count: int = 5) -> List[Dict[str, CellValue]]:
        """Synthesize the next `count` rows for `table_id` without writing them."""
        columns = self.repository.load_columns(table_id)
        offset = self.repository.count_rows(table_id)
        return [synthesize_row(table_id, offset + n, columns) for n in range(max(count, 0))]


_default_service: Optional[RowstreamService] = None


def get_service() -> RowstreamService:
    global _default_service
    if _default_service is None:
        _default_service = RowstreamService()
    return _default_service


def generate_bulk_rows(
    table_id: str,
    count: int,
    *,
    batch_size: Optional[int] = None,
    parallelism: Optional[int] = None,
    wait_for_background: bool = False,
) -> GenerateResponse:
    return get_service().generate_bulk_rows(
        table_id,
        count,
        batch_size=batch_size,
        parallelism=parallelism,
        wait_for_background=wait_for_background,
    )


def get_page(table_id: str, cursor: Optional[str] = None, limit: Optional[int] = None) -> PageResponse:
    return get_service().get_page(table_id, cursor=cursor, limit=limit)


def check_lease(table_id: str) -> LeaseResponse:
    return get_service().check_lease(table_id)


__all__ = [
    "RowstreamService",
    "check_lease",
    "generate_bulk_rows",
    "get_page",
    "get_service",
]
