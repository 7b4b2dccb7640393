"""
Keyset pagination readers (sync psycopg and async asyncpg) and their shared
cursor codec and page sizing policy.
"""

from rowstream.pagination.async_reader import AsyncKeysetPageReader
from rowstream.pagination.cursor import PageCursor, decode_cursor
from rowstream.pagination.policy import PageSizePolicy
from rowstream.pagination.reader import KeysetPageReader, PageResult

__all__ = [
    "AsyncKeysetPageReader",
    "KeysetPageReader",
    "PageCursor",
    "PageResult",
    "PageSizePolicy",
    "decode_cursor",
]
