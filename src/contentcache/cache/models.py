"""
Cache data models for contentcache.

This module contains the core data structures used by the caching system:
cache entries with their staleness fingerprint and access bookkeeping,
loader results, read results and performance statistics.

Classes:
    Fingerprint: Cheap staleness signal (mtime + size) for a backing resource
    CacheEntry: A cached value with hash, expiry and access metadata
    LoadResult: What a loader may return to attach metadata to a value
    ReadResult: What a read returns to the caller
    CacheStats: Cache performance statistics and metrics
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Generic, TypeVar

V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class Fingerprint:
    """Modification time and size of a backing resource."""

    mtime: float
    size: int


@dataclass
class CacheEntry(Generic[V]):
    """Represents a cached value with metadata."""

    key: str
    value: V
    content_hash: str
    created_at: float
    expires_at: float  # float("inf") when the cache has no TTL
    last_accessed: float
    size_bytes: int
    fingerprint: Fingerprint | None = None
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        """Check if the entry has expired at ``now``."""
        return now > self.expires_at

    def touch(self, now: float) -> None:
        """Update last accessed time and increment the hit count."""
        self.last_accessed = now
        self.hit_count += 1

    def age_seconds(self, now: float) -> float:
        return now - self.created_at


@dataclass(slots=True)
class LoadResult(Generic[V]):
    """A loader's value plus optional fingerprint and measured size.

    Loaders may return a bare value instead; it is wrapped with no
    fingerprint and an estimated size.
    """

    value: V
    fingerprint: Fingerprint | None = None
    size_bytes: int | None = None


@dataclass(slots=True)
class ReadResult(Generic[V]):
    """Outcome of a cache read."""

    value: V
    cached: bool
    content_hash: str | None = None
    fingerprint: Fingerprint | None = None


@dataclass
class CacheStats:
    """Cache performance statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    invalidations: int = 0
    bytes_served: int = 0
    bytes_read: int = 0
    skipped: int = 0
    deduplicated: int = 0
    total_entries: int = 0
    total_size_bytes: int = 0

    @property
    def hit_rate(self) -> float:
        """Hits over reads, 0.0 when nothing has been read."""
        return self.hits / max(1, self.hits + self.misses)

    @property
    def total_reads(self) -> int:
        return self.hits + self.misses

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data
