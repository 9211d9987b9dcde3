"""
Core cache components.

The :class:`ContentStore` composes the pieces exported here; most callers
only need the store, its config and the result types.
"""

from .cleanup import PeriodicWorker
from .dependencies import DependencyTracker
from .events import CacheEvent, CacheEventType, CacheNotifier
from .eviction import EvictionPolicy
from .invalidation import InvalidationRouter
from .models import CacheEntry, CacheStats, Fingerprint, LoadResult, ReadResult
from .staleness import StalenessValidator, stat_fingerprint
from .statistics import CacheStatistics
from .store import ContentStore

__all__ = [
    "CacheEntry",
    "CacheEvent",
    "CacheEventType",
    "CacheNotifier",
    "CacheStatistics",
    "CacheStats",
    "ContentStore",
    "DependencyTracker",
    "EvictionPolicy",
    "Fingerprint",
    "InvalidationRouter",
    "LoadResult",
    "PeriodicWorker",
    "ReadResult",
    "StalenessValidator",
    "stat_fingerprint",
]
