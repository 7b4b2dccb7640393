"""
Partitioning of a bulk job into contiguous batches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Batch:
    """Row sequence numbers [start, stop), written in one transaction."""

    index: int
    start: int
    stop: int

    @property
    def size(self) -> int:
        return self.stop - self.start


def partition_batches(count: int, batch_size: int, offset: int = 0) -> List[Batch]:
    """
    Split `[offset, offset + count)` into contiguous batches of at most `batch_size`.

    Example: count=100, batch_size=40 -> [0, 40), [40, 80), [80, 100).
    """
    if count <= 0:
        return []
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    batches: List[Batch] = []
    start = offset
    end = offset + count
    while start < end:
        stop = min(start + batch_size, end)
        batches.append(Batch(index=len(batches), start=start, stop=stop))
        start = stop
    return batches


__all__ = ["Batch", "partition_batches"]
