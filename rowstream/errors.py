"""
Exception hierarchy for rowstream.

Only input problems are raised as exceptions; batch failures, background-pass
failures and cursor problems are reported through results or logs instead.
"""

from __future__ import annotations


class RowstreamError(Exception):
    """Base class for errors raised by rowstream."""


class ValidationError(RowstreamError):
    """Request rejected before any write took place."""


class TableNotFoundError(ValidationError):
    """The requested table id does not exist."""

    def __init__(self, table_id: str) -> None:
        super().__init__(f"Table '{table_id}' not found")
        self.table_id = table_id


__all__ = ["RowstreamError", "ValidationError", "TableNotFoundError"]
