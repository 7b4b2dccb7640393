"""
Domain models for rowstream.

Defines the table/column/row/lease schema aligned with
`rowstream.infrastructure.schema`. These models are used for validation,
serialization, and type hints across the generator, readers and lease manager.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

CellValue = Union[str, int, float, None]


class ColumnType(str, Enum):
    TEXT = "TEXT"
    NUMBER = "NUMBER"


class Column(BaseModel):
    """
    A typed column owned by exactly one table.

    `creation_order` is the canonical iteration order used when synthesizing
    row values and when concatenating them into `search`.
    """

    id: str = Field(..., description="Column id; key into Row.cache.")
    name: str = Field(..., description="Display name; drives the synthesis rule.")
    type: ColumnType = Field(..., description="TEXT or NUMBER.")
    creation_order: int = Field(..., ge=0, description="Position in creation order.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }


def ordered_columns(columns: Iterable[Column]) -> List[Column]:
    """Return columns sorted by creation order (ties broken by id)."""
    return sorted(columns, key=lambda c: (c.creation_order, c.id))


class Row(BaseModel):
    """
    Representation of a single row in `grid_row`.

    `cache` is the only source of truth for visible data. Columns created after
    the row was written are simply absent and read as null.
    """

    id: str = Field(..., description="Row id.")
    table_id: str = Field(..., description="Owning table id.")
    cache: Dict[str, CellValue] = Field(default_factory=dict)
    search: Optional[str] = Field(None, description="NULL until the backfill pass runs.")
    created_at: datetime = Field(..., description="Insertion timestamp; keyset major key.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    def value(self, column_id: str) -> CellValue:
        return self.cache.get(column_id)


def lease_key(table_id: str) -> str:
    """Primary key of the lease record for a table."""
    return f"bulk:{table_id}"


class BulkLock(BaseModel):
    """
    Advisory lease record. Live purely while `expires_at > now`.
    """

    id: str
    table_id: str
    expires_at: datetime

    model_config = {
        "frozen": True,
    }

    @classmethod
    def for_table(cls, table_id: str, expires_at: datetime) -> "BulkLock":
        return cls(id=lease_key(table_id), table_id=table_id, expires_at=expires_at)

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    def remaining_ms(self, now: datetime) -> int:
        return max(int((self.expires_at - now).total_seconds() * 1000), 0)


__all__ = [
    "BulkLock",
    "CellValue",
    "Column",
    "ColumnType",
    "Row",
    "lease_key",
    "ordered_columns",
]
