"""
Bounded, TTL-governed content store.

This module ties the cache components together: entries live in an
insertion-ordered dict guarded by one re-entrant lock, eviction is delegated
to :class:`EvictionPolicy`, staleness checks to :class:`StalenessValidator`,
invalidation to :class:`InvalidationRouter`, counters to
:class:`CacheStatistics` and notifications to :class:`CacheNotifier`.

Classes:
    ContentStore: Read-through cache with TTL, eviction and invalidation

Features:
    - Async read-through with sync or async loaders
    - Optional mtime/size staleness validation on every hit
    - LRU eviction biased by hit count, byte and entry limits
    - Key, pattern, prefix and dependency invalidation
    - Optional single-flight loading for concurrent misses
    - Chunked background sweep of expired entries
    - Observer callbacks for hits, misses, evictions and invalidations

Example:
    Basic usage:
        >>> from contentcache.cache import ContentStore
        >>> from contentcache.config import CacheConfig
        >>>
        >>> store = ContentStore(CacheConfig(auto_cleanup=False), name="docs")
        >>> result = await store.read("readme", lambda: "hello")
        >>> result.cached
        False
        >>> store.dispose()
"""

from __future__ import annotations

import asyncio
import inspect
import math
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any, Generic

from ..config import CacheConfig
from ..error_handling import ErrorCollector
from ..logging_config import get_logger
from ..utils import estimate_size, hash_content
from .cleanup import PeriodicWorker
from .dependencies import DependencyTracker
from .eviction import EvictionPolicy
from .events import CacheEvent, CacheEventType, CacheListener, CacheNotifier
from .invalidation import InvalidationRouter
from .models import CacheEntry, CacheStats, Fingerprint, LoadResult, ReadResult, V
from .staleness import FingerprintProbe, StalenessValidator
from .statistics import CacheStatistics

Loader = Callable[[], Any]


class ContentStore(Generic[V]):
    """
    Read-through cache keyed by string.

    All bookkeeping happens under ``self._lock``. Loaders, probes and
    observer callbacks always run outside of it.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        fingerprint_probe: FingerprintProbe | None = None,
        size_estimator: Callable[[Any], int] | None = None,
        hasher: Callable[[Any], str] | None = None,
        clock: Callable[[], float] = time.time,
        name: str = "cache",
    ):
        """
        Initialize the store.

        Args:
            config: Limits and behaviour; defaults to ``CacheConfig()``
            fingerprint_probe: Returns the current fingerprint for a key.
                Without one, entries are never checked for staleness.
            size_estimator: Byte size of a value when the loader does not say
            hasher: Content hash of a value
            clock: Time source in seconds
            name: Used in logs, events and error reports
        """
        self.config = config or CacheConfig()
        self.name = name
        self.clock = clock
        self.size_estimator = size_estimator or estimate_size
        self.hasher = hasher or hash_content
        self.logger = get_logger()

        self.errors = ErrorCollector()
        self.statistics = CacheStatistics()
        self.notifier = CacheNotifier(self.errors)
        self.policy = EvictionPolicy(
            self.config.max_entries,
            self.config.max_total_size_bytes,
            self.config.hit_weight,
        )
        self.dependencies = DependencyTracker()
        self.router = InvalidationRouter(self, self.dependencies)
        self.validator = (
            StalenessValidator(fingerprint_probe, cache_name=name, errors=self.errors)
            if fingerprint_probe is not None
            else None
        )

        self._entries: dict[str, CacheEntry[V]] = {}
        self._total_size = 0
        self._lock = threading.RLock()
        self._inflight: dict[str, asyncio.Future] = {}
        self._disposed = False

        self._sweeper: PeriodicWorker | None = None
        if self.config.enabled and self.config.auto_cleanup:
            self._sweeper = PeriodicWorker(
                self.cleanup_expired,
                interval=self.config.cleanup_interval,
                name=f"{name}-sweep",
            )

    # ------------------------------------------------------------------
    # reads

    async def read(self, key: str, loader: Loader) -> ReadResult[V]:
        """
        Return the cached value for ``key`` or load it.

        On a hit the entry's fingerprint is re-validated when
        ``validate_on_read`` is set and a probe is configured. Exceptions
        raised by ``loader`` propagate unchanged and nothing is stored.
        """
        return await self._read(key, loader, validate=self.config.validate_on_read)

    async def get_or_compute(
        self, key: str, compute: Loader, *, ttl: float | None = None
    ) -> ReadResult[V]:
        """Like :meth:`read` but never checks staleness; ``ttl`` overrides the default."""
        return await self._read(key, compute, validate=False, ttl=ttl)

    async def _read(
        self, key: str, loader: Loader, validate: bool, ttl: float | None = None
    ) -> ReadResult[V]:
        if not self.config.enabled:
            loaded = await self._call_loader(loader)
            return ReadResult(
                loaded.value,
                cached=False,
                content_hash=self.hasher(loaded.value),
                fingerprint=loaded.fingerprint,
            )

        entry = self._lookup(key)
        if entry is not None and validate and self.validator is not None:
            if not await self.validator.is_valid(entry):
                self._drop_stale(entry)
                entry = None

        if entry is not None:
            self._record_hit(entry)
            return ReadResult(
                entry.value,
                cached=True,
                content_hash=entry.content_hash,
                fingerprint=entry.fingerprint,
            )

        self._record_miss(key)
        if self.config.single_flight:
            return await self._load_shared(key, loader, ttl)
        return await self._load_and_store(key, loader, ttl)

    def get(self, key: str) -> V | None:
        """
        Synchronous lookup without a loader. Counts as a hit or a miss.

        No staleness check is done here; use :meth:`read` for that.
        """
        if not self.config.enabled:
            return None
        entry = self._lookup(key)
        if entry is None:
            self._record_miss(key)
            return None
        self._record_hit(entry)
        return entry.value

    def has(self, key: str) -> bool:
        """True if a non-expired entry exists. No bookkeeping."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self.clock())

    __contains__ = has

    def peek(self, key: str) -> CacheEntry[V] | None:
        """Return the live entry without touching it or the stats."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self.clock()):
                return None
            return entry

    def get_hash(self, key: str) -> str | None:
        entry = self.peek(key)
        return entry.content_hash if entry is not None else None

    def _lookup(self, key: str) -> CacheEntry[V] | None:
        events: list[CacheEvent] = []
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self.clock()):
                self._evict(key, "expired", events)
                self._sync_totals()
                entry = None
        self._emit_all(events)
        return entry

    def _record_hit(self, entry: CacheEntry[V]) -> None:
        with self._lock:
            entry.touch(self.clock())
        self.statistics.record_hit(entry.size_bytes)
        self.notifier.emit(CacheEvent(CacheEventType.HIT, self.name, key=entry.key))

    def _record_miss(self, key: str) -> None:
        self.statistics.record_miss()
        self.notifier.emit(CacheEvent(CacheEventType.MISS, self.name, key=key))

    def _drop_stale(self, entry: CacheEntry[V]) -> None:
        with self._lock:
            # only drop the entry we validated; a concurrent reload may have replaced it
            if self._entries.get(entry.key) is not entry:
                return
        self._remove_entries([entry.key], reason="stale")

    # ------------------------------------------------------------------
    # loading and storing

    @staticmethod
    async def _call_loader(loader: Loader) -> LoadResult:
        result = loader()
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, LoadResult):
            return result
        return LoadResult(result)

    async def _load_and_store(
        self, key: str, loader: Loader, ttl: float | None = None
    ) -> ReadResult[V]:
        loaded = await self._call_loader(loader)
        value = loaded.value
        size = loaded.size_bytes if loaded.size_bytes is not None else self.size_estimator(value)
        content_hash = self.hasher(value)
        self.statistics.record_load(size)

        self._insert(key, value, content_hash, size, loaded.fingerprint, ttl)
        return ReadResult(value, cached=False, content_hash=content_hash, fingerprint=loaded.fingerprint)

    async def _load_shared(
        self, key: str, loader: Loader, ttl: float | None = None
    ) -> ReadResult[V]:
        pending = self._inflight.get(key)
        if pending is not None:
            self.statistics.record_deduplicated()
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if not pending.cancelled() or (task is not None and task.cancelling()):
                    raise
            # the leader was cancelled, not this caller; load (or join a new leader)
            return await self._load_shared(key, loader, ttl)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        # mark the exception retrieved when nobody else joined the load
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = future
        try:
            result = await self._load_and_store(key, loader, ttl)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    def put(
        self,
        key: str,
        value: V,
        *,
        fingerprint: Fingerprint | None = None,
        size_bytes: int | None = None,
        ttl: float | None = None,
    ) -> bool:
        """
        Insert a value directly.

        Args:
            ttl: Per-entry TTL in seconds; ``None`` uses the configured TTL

        Returns:
            True if the value was stored, False if caching is disabled or the
            value exceeds ``max_item_size_bytes``
        """
        if not self.config.enabled:
            return False
        size = size_bytes if size_bytes is not None else self.size_estimator(value)
        return self._insert(key, value, self.hasher(value), size, fingerprint, ttl)

    def _insert(
        self,
        key: str,
        value: V,
        content_hash: str,
        size: int,
        fingerprint: Fingerprint | None,
        ttl: float | None = None,
    ) -> bool:
        limit = self.config.max_item_size_bytes
        if size > limit:
            self.statistics.record_skip()
            self.logger.log_skip(self.name, key, size, limit)
            self.notifier.emit(
                CacheEvent(
                    CacheEventType.SKIP,
                    self.name,
                    key=key,
                    reason="too_large",
                    data={"size_bytes": size, "limit": limit},
                )
            )
            return False

        ttl = self.config.ttl if ttl is None else ttl
        events: list[CacheEvent] = []
        with self._lock:
            now = self.clock()
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._total_size -= previous.size_bytes

            self._make_room(size, now, events)

            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                content_hash=content_hash,
                created_at=now,
                expires_at=now + ttl,
                last_accessed=now,
                size_bytes=size,
                fingerprint=fingerprint,
            )
            self._total_size += size
            self._sync_totals()
        self._emit_all(events)
        return True

    def _make_room(self, incoming_size: int, now: float, events: list[CacheEvent]) -> None:
        # caller holds the lock
        if not (
            self.policy.over_entry_limit(len(self._entries))
            or self.policy.over_size_limit(self._total_size, incoming_size)
        ):
            return

        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            self._evict(key, "expired", events)

        while self._entries and self.policy.over_entry_limit(len(self._entries)):
            self._evict(self.policy.select_victim(self._entries), "capacity", events)

        while self._entries and self.policy.over_size_limit(self._total_size, incoming_size):
            self._evict(self.policy.select_victim(self._entries), "size", events)

    def _evict(self, key: str, reason: str, events: list[CacheEvent]) -> None:
        # caller holds the lock
        entry = self._entries.pop(key)
        self._total_size -= entry.size_bytes
        self.dependencies.remove_dependencies(key)
        self.statistics.record_eviction()
        self.logger.log_eviction(self.name, key, reason)
        events.append(CacheEvent(CacheEventType.EVICT, self.name, key=key, reason=reason))

    def _remove_entries(self, keys: Iterable[str], reason: str) -> int:
        """Remove ``keys`` as invalidations; returns how many existed."""
        removed: list[str] = []
        with self._lock:
            for key in keys:
                entry = self._entries.pop(key, None)
                if entry is None:
                    continue
                self._total_size -= entry.size_bytes
                self.dependencies.remove_dependencies(key)
                removed.append(key)
            if removed:
                self.statistics.record_invalidation(len(removed))
                self._sync_totals()

        for key in removed:
            self.notifier.emit(
                CacheEvent(CacheEventType.INVALIDATE, self.name, key=key, reason=reason)
            )
        return len(removed)

    def _sync_totals(self) -> None:
        self.statistics.update_totals(len(self._entries), self._total_size)

    def _emit_all(self, events: list[CacheEvent]) -> None:
        for event in events:
            self.notifier.emit(event)

    # ------------------------------------------------------------------
    # invalidation

    def invalidate(self, key: str) -> bool:
        return self.router.invalidate_key(key)

    def invalidate_pattern(self, pattern: Any) -> int:
        return self.router.invalidate_pattern(pattern)

    def invalidate_prefix(self, prefix: str) -> int:
        return self.router.invalidate_prefix(prefix)

    def invalidate_where(self, predicate: Callable[[str, V], bool], reason: str = "predicate") -> int:
        """Remove every entry for which ``predicate(key, value)`` is true."""
        with self._lock:
            targets = [key for key, entry in self._entries.items() if predicate(key, entry.value)]
        return self._remove_entries(targets, reason=reason)

    def register_dependency(self, dependent_key: str, resource_ids: Iterable[str]) -> None:
        self.router.register_dependency(dependent_key, resource_ids)

    def unregister_dependency(self, dependent_key: str) -> None:
        self.router.unregister_dependency(dependent_key)

    def invalidate_for_resource(self, resource_id: str) -> int:
        return self.router.invalidate_for_resource(resource_id)

    # ------------------------------------------------------------------
    # maintenance

    def cleanup_expired(self) -> int:
        """
        Evict every expired entry.

        Works through a snapshot of the keys in chunks of
        ``sweep_chunk_size``, releasing the lock between chunks so readers
        are not blocked for the whole sweep.

        Returns:
            Number of entries evicted
        """
        keys = self.keys()
        chunk_size = self.config.sweep_chunk_size
        removed = 0

        for start in range(0, len(keys), chunk_size):
            events: list[CacheEvent] = []
            with self._lock:
                now = self.clock()
                for key in keys[start : start + chunk_size]:
                    entry = self._entries.get(key)
                    if entry is not None and entry.is_expired(now):
                        self._evict(key, "expired", events)
                if events:
                    self._sync_totals()
            self._emit_all(events)
            removed += len(events)

        if removed:
            self.logger.debug(f"{self.name}: swept {removed} expired entries")
        return removed

    def shrink(self, fraction: float) -> int:
        """Evict ``fraction`` of the entries by eviction score (memory pressure)."""
        events: list[CacheEvent] = []
        with self._lock:
            target = math.ceil(len(self._entries) * min(max(fraction, 0.0), 1.0))
            for _ in range(target):
                victim = self.policy.select_victim(self._entries)
                if victim is None:
                    break
                self._evict(victim, "pressure", events)
            self._sync_totals()
        self._emit_all(events)
        return len(events)

    def clear(self) -> None:
        """Drop all entries and dependency edges and zero the statistics."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._total_size = 0
            self.dependencies.clear_all_dependencies()
            self.statistics.reset()
            self.errors.clear()
        self.logger.debug(f"{self.name}: cleared {count} entries")
        self.notifier.emit(CacheEvent(CacheEventType.CLEAR, self.name, data={"entries": count}))

    def dispose(self) -> None:
        """Stop the sweep, clear the cache and detach listeners. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None
        self.clear()
        self.notifier.clear()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __enter__(self) -> ContentStore[V]:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # introspection

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def total_size_bytes(self) -> int:
        with self._lock:
            return self._total_size

    def get_stats(self) -> CacheStats:
        return self.statistics.snapshot()

    def format_stats(self, title: str | None = None) -> str:
        return self.statistics.format(title or f"{self.name} cache")

    def get_error_summary(self) -> dict[str, Any]:
        return self.errors.get_summary()

    def subscribe(
        self, event_type: CacheEventType | None, callback: CacheListener
    ) -> Callable[[], None]:
        return self.notifier.subscribe(event_type, callback)

    def unsubscribe(self, event_type: CacheEventType | None, callback: CacheListener) -> bool:
        return self.notifier.unsubscribe(event_type, callback)
