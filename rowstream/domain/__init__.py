"""
Domain package for rowstream.

Exports the core domain models and result contracts used across the bulk
generator, readers and lease manager. Keep this package focused on data
definitions and validation concerns.
"""

from rowstream.domain.models import (
    BulkLock,
    CellValue,
    Column,
    ColumnType,
    Row,
    lease_key,
    ordered_columns,
)
from rowstream.domain.results import (
    BulkOutcome,
    Completed,
    GenerateResponse,
    LeaseResponse,
    PageResponse,
    PageRow,
    PartiallyCompleted,
)

__all__ = [
    "BulkLock",
    "BulkOutcome",
    "CellValue",
    "Column",
    "ColumnType",
    "Completed",
    "GenerateResponse",
    "LeaseResponse",
    "PageResponse",
    "PageRow",
    "PartiallyCompleted",
    "Row",
    "lease_key",
    "ordered_columns",
]
