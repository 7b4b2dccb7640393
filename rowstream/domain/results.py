"""
Result contracts for rowstream operations.

Bulk jobs report through a small sum type (`Completed | PartiallyCompleted`)
so partial success can never be mistaken for all-or-nothing. The request/
response shapes exposed by `rowstream.service` are TypedDicts, keyed the way
upstream callers expect them (camelCase).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TypedDict, Union

from rowstream.domain.models import CellValue


@dataclass(frozen=True)
class Completed:
    """Every batch committed."""

    rows_added: int
    batches: int

    @property
    def status(self) -> str:
        return "completed"


@dataclass(frozen=True)
class PartiallyCompleted:
    """
    At least one batch failed (or a writer never connected).

    `rows_committed` counts rows from batches known to have committed; the
    table may hold more than that, so re-query for an exact count.
    `batches_skipped` were never dispatched because the job stopped early.
    """

    rows_committed: int
    batches_committed: int
    batches_failed: int
    batches_skipped: int = 0
    errors: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def rows_added(self) -> int:
        return self.rows_committed

    @property
    def status(self) -> str:
        return "partial"


BulkOutcome = Union[Completed, PartiallyCompleted]


class GenerateResponse(TypedDict, total=False):
    success: bool
    rowsAdded: int
    status: str
    message: str
    extra: Dict[str, Any]


class PageRow(TypedDict):
    id: str
    createdAt: str
    data: Dict[str, CellValue]


class PageResponse(TypedDict):
    rows: List[PageRow]
    nextCursor: Optional[str]
    hasMore: bool
    totalCount: int


class LeaseResponse(TypedDict):
    isLocked: bool
    expiresAt: Optional[str]
    remainingMs: Optional[int]


__all__ = [
    "BulkOutcome",
    "Completed",
    "GenerateResponse",
    "LeaseResponse",
    "PageResponse",
    "PageRow",
    "PartiallyCompleted",
]
