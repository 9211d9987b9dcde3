"""
Counters behind a cache's ``get_stats()``.

Pure bookkeeping: the store calls the ``record_*`` methods as it serves,
loads, evicts and invalidates, and this class never drives control flow.
The hit rate is derived from hits and misses whenever it is read.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import Any

from .models import CacheStats

_MB = 1024 * 1024

# (label, formatter) pairs in the order format() prints them
_SUMMARY_LINES = (
    ("Entries", lambda s: str(s.total_entries)),
    ("Hit Rate", lambda s: f"{s.hit_rate * 100:.1f}%"),
    ("Cache Size", lambda s: f"{s.total_size_bytes / _MB:.2f}MB"),
    ("Bytes Served", lambda s: f"{s.bytes_served / _MB:.2f}MB"),
    ("Bytes Read", lambda s: f"{s.bytes_read / _MB:.2f}MB"),
    ("Evictions", lambda s: str(s.evictions)),
    ("Invalidations", lambda s: str(s.invalidations)),
)


class CacheStatistics:
    """Thread-safe counters for one cache; reset only through :meth:`reset`."""

    def __init__(self) -> None:
        self._current = CacheStats()
        self._lock = threading.Lock()

    def _bump(self, **deltas: int) -> None:
        with self._lock:
            for name, delta in deltas.items():
                setattr(self._current, name, getattr(self._current, name) + delta)

    def record_hit(self, size_bytes: int = 0) -> None:
        self._bump(hits=1, bytes_served=size_bytes)

    def record_miss(self) -> None:
        self._bump(misses=1)

    def record_load(self, size_bytes: int) -> None:
        """Bytes a loader produced after a miss, stored or not."""
        self._bump(bytes_read=size_bytes)

    def record_eviction(self, count: int = 1) -> None:
        self._bump(evictions=count)

    def record_invalidation(self, count: int = 1) -> None:
        self._bump(invalidations=count)

    def record_skip(self) -> None:
        self._bump(skipped=1)

    def record_deduplicated(self) -> None:
        """A miss that joined an in-flight load instead of starting its own."""
        self._bump(deduplicated=1)

    def update_totals(self, entries: int, size_bytes: int) -> None:
        with self._lock:
            self._current.total_entries = entries
            self._current.total_size_bytes = size_bytes

    def hit_rate(self) -> float:
        return self.snapshot().hit_rate

    def snapshot(self) -> CacheStats:
        with self._lock:
            return dataclasses.replace(self._current)

    def get_stats_dict(self, additional_stats: dict[str, Any] | None = None) -> dict[str, Any]:
        return {**self.snapshot().to_dict(), **(additional_stats or {})}

    def reset(self) -> None:
        with self._lock:
            self._current = CacheStats()

    def format(self, title: str = "Cache Statistics") -> str:
        snap = self.snapshot()
        return "\n".join([title, *(f"  {label}: {render(snap)}" for label, render in _SUMMARY_LINES)])
