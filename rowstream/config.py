"""
Configuration settings for rowstream.

Uses Pydantic Settings to load environment variables for database connections,
logging, bulk-load tuning knobs, lease sizing, and pagination policy.
"""
from __future__ import annotations

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("rowstream", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(30_000, alias="DB_STATEMENT_TIMEOUT_MS")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Bulk row generation
    bulk_batch_size: int = Field(20_000, alias="BULK_BATCH_SIZE")
    bulk_parallelism: int = Field(2, alias="BULK_PARALLELISM")
    bulk_max_parallelism: int = Field(8, alias="BULK_MAX_PARALLELISM")
    bulk_max_rows: int = Field(100_000, alias="BULK_MAX_ROWS")
    bulk_batch_timeout_ms: int = Field(120_000, alias="BULK_BATCH_TIMEOUT_MS")
    bulk_index_drop_threshold: int = Field(1_000_000, alias="BULK_INDEX_DROP_THRESHOLD")
    backfill_chunk_size: int = Field(10_000, alias="BACKFILL_CHUNK_SIZE")

    # Lease sizing
    lease_ttl_floor_seconds: int = Field(60, alias="LEASE_TTL_FLOOR_SECONDS")
    lease_ttl_per_row_ms: int = Field(2, alias="LEASE_TTL_PER_ROW_MS")

    # Pagination policy
    page_first_size: int = Field(500, alias="PAGE_FIRST_SIZE")
    page_max_size: int = Field(50_000, alias="PAGE_MAX_SIZE")
    page_sweep_remainder: bool = Field(True, alias="PAGE_SWEEP_REMAINDER")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
