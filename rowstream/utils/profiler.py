"""
Profiling utilities for rowstream bulk jobs.

`profile_block` wraps the write phase of a bulk load and records:
- Wall-clock time (perf_counter)
- CPU usage of this process (psutil)
- Peak RSS via a background sampling thread (psutil)
- Peak Python allocations (tracemalloc), off by default

Usage:
    from rowstream.utils.profiler import profile_block

    with profile_block("bulk:tbl_1") as stats:
        generator.generate(...)

    print(stats.duration_seconds, stats.peak_rss_bytes)
"""

from __future__ import annotations

import contextlib
import threading
import time
import tracemalloc
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    peak_traced_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)
    extra: dict[str, Any] = field(default_factory=dict)

    def throughput(self, rows: int) -> float:
        """Rows per second over the measured duration (0.0 when nothing was timed)."""
        return rows / self.duration_seconds if self.duration_seconds > 0 else 0.0


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 50, enable_tracemalloc: bool = False
) -> Generator[ProfileStats, None, None]:
    """
    Context manager to profile a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        Interval in milliseconds for RSS sampling.
    enable_tracemalloc : bool
        Whether to enable tracemalloc for tracking Python-level allocations.

    Notes
    -----
    Bulk writes spend most of their time waiting on the server, so RSS peaks
    come from result handling rather than generation; sampling catches them
    where start/end snapshots would not.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    peak_rss = process.memory_info().rss
    stop_sampling = threading.Event()

    def _sample_memory() -> None:
        nonlocal peak_rss
        while not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                return
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    tracemalloc_was_running = tracemalloc.is_tracing()
    if enable_tracemalloc and not tracemalloc_was_running:
        tracemalloc.start()

    # CPU percent needs a priming call
    process.cpu_percent(interval=None)

    sampler = threading.Thread(target=_sample_memory, name=f"rss-{label}", daemon=True)
    sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts

        stop_sampling.set()
        sampler.join(timeout=1.0)

        stats.peak_rss_bytes = peak_rss if peak_rss > 0 else None
        stats.cpu_percent = process.cpu_percent(interval=None)

        if enable_tracemalloc and tracemalloc.is_tracing():
            _, peak_traced = tracemalloc.get_traced_memory()
            stats.peak_traced_bytes = peak_traced
            # Stop tracemalloc only if we started it
            if not tracemalloc_was_running:
                tracemalloc.stop()


__all__ = ["ProfileStats", "profile_block"]
