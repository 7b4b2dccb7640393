"""
rowstream - bulk loading and keyset pagination for a multi-tenant tabular
datastore on PostgreSQL.

- Advisory, expiry-based bulk leases per table
- Deterministic synthetic rows written as parallel batched transactions
- Background search backfill, index rebuild, and statistics refresh
- Keyset pagination over (created_at, id), sync and async
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from rowstream.config import Settings, get_settings
from rowstream.domain.results import BulkOutcome, Completed, PartiallyCompleted
from rowstream.errors import RowstreamError, TableNotFoundError, ValidationError
from rowstream.service import RowstreamService, check_lease, generate_bulk_rows, get_page
from rowstream.utils.logging import configure_logging, get_logger
from rowstream.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Operations
    "RowstreamService",
    "check_lease",
    "generate_bulk_rows",
    "get_page",
    # Results and errors
    "BulkOutcome",
    "Completed",
    "PartiallyCompleted",
    "RowstreamError",
    "TableNotFoundError",
    "ValidationError",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
