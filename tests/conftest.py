"""
Pytest configuration for rowstream.

Provides fixtures for:
- Database connection management
- Schema setup and per-test cleanup
- A freshly created demo table for integration tests
"""

from __future__ import annotations

import os
from typing import Generator, List, Tuple

import psycopg
import pytest

from rowstream.config import Settings, get_settings
from rowstream.domain.models import Column, ColumnType
from rowstream.infrastructure.schema import apply_schema


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Generator[None, None, None]:
    """Drop the cached Settings so monkeypatched env vars take effect per test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "rowstream"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        apply_schema(conn)
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection) -> Generator[None, None, None]:
    """
    Empty every rowstream relation before and after each test function.
    """
    truncate = "TRUNCATE TABLE grid_row, grid_column, grid_table, bulk_lock CASCADE;"
    db_connection.execute(truncate)
    yield
    db_connection.execute(truncate)


@pytest.fixture(scope="function")
def demo_table(clean_tables) -> Tuple[str, List[Column]]:
    """
    Create a Name / Email / Age / Notes table and return (table_id, columns).
    """
    from rowstream.infrastructure.repository import TableRepository

    return TableRepository().create_table(
        "Demo",
        [
            ("Name", ColumnType.TEXT),
            ("Email", ColumnType.TEXT),
            ("Age", ColumnType.NUMBER),
            ("Notes", ColumnType.TEXT),
        ],
    )
