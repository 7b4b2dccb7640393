"""
Page sizing: a small first page for time-to-first-row, then large pages that
can sweep the remainder of a known total in one round trip.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rowstream.config import get_settings


@dataclass(frozen=True)
class PageSizePolicy:
    first_page_size: int
    max_page_size: int
    sweep_remainder: bool = True

    @classmethod
    def from_settings(cls) -> "PageSizePolicy":
        settings = get_settings()
        return cls(
            first_page_size=settings.page_first_size,
            max_page_size=settings.page_max_size,
            sweep_remainder=settings.page_sweep_remainder,
        )

    def size_for(self, limit: Optional[int], first_page: bool, total_count: int) -> int:
        """
        Rows to return for this request (before the +1 look-ahead row).

        First page: `min(limit, first_page_size)`. Later pages: `limit`, or
        `max(limit, total_count)` when sweeping. Always within
        `[1, max_page_size]`.
        """
        requested = limit if limit and limit > 0 else self.first_page_size
        if first_page:
            size = min(requested, self.first_page_size)
        elif self.sweep_remainder:
            size = max(requested, total_count)
        else:
            size = requested
        return max(1, min(size, self.max_page_size))


__all__ = ["PageSizePolicy"]
