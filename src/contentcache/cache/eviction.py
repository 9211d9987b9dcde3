"""
Capacity-driven eviction.

The policy is LRU biased towards frequently read entries: every entry gets
``score = last_accessed + hit_count * hit_weight`` and the lowest score is
evicted first. With the default weight of ten seconds per hit, a handful of
reads keeps an entry alive against more recently touched but unread ones.
Ties go to the entry with fewer hits, then to the oldest insertion.

Limits are soft. When the store is empty and an incoming item still does not
fit the byte budget, the insert goes ahead over budget.
"""

from __future__ import annotations

from collections.abc import Mapping

from .models import CacheEntry


class EvictionPolicy:
    """Chooses eviction victims for a :class:`ContentStore`."""

    def __init__(self, max_entries: int, max_total_size_bytes: int, hit_weight: float = 10.0):
        self.max_entries = max_entries
        self.max_total_size_bytes = max_total_size_bytes
        self.hit_weight = hit_weight

    def score(self, entry: CacheEntry) -> float:
        """Eviction score; lower is evicted first."""
        return entry.last_accessed + entry.hit_count * self.hit_weight

    def select_victim(self, entries: Mapping[str, CacheEntry]) -> str | None:
        """Return the key with the lowest score, or None if there are no entries."""
        victim: str | None = None
        best_score = float("inf")
        best_hits = float("inf")

        # Mapping iteration is insertion ordered, so strict comparisons keep
        # the oldest entry among exact ties.
        for key, entry in entries.items():
            entry_score = self.score(entry)
            if entry_score < best_score or (
                entry_score == best_score and entry.hit_count < best_hits
            ):
                victim = key
                best_score = entry_score
                best_hits = entry.hit_count

        return victim

    def over_entry_limit(self, entry_count: int) -> bool:
        """True while one more insert would exceed ``max_entries``."""
        return entry_count >= self.max_entries

    def over_size_limit(self, total_size: int, incoming_size: int) -> bool:
        return total_size + incoming_size > self.max_total_size_bytes
