"""
Infrastructure package for rowstream.

Centralizes database connectivity concerns (dedicated connections, the shared
pool, async pools), DDL, and table lookups. Keep this layer focused on I/O
and resource management, decoupled from generator/reader logic.
"""

from rowstream.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    create_async_pool,
    get_sync_connection,
    get_sync_pool,
)
from rowstream.infrastructure.repository import TableRepository
from rowstream.infrastructure.schema import ROW_RELATION, SCHEMA_SQL, apply_schema

__all__ = [
    "PoolManager",
    "ROW_RELATION",
    "SCHEMA_SQL",
    "TableRepository",
    "apply_schema",
    "apply_statement_timeout",
    "build_dsn",
    "create_async_pool",
    "get_sync_connection",
    "get_sync_pool",
]
