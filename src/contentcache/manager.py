"""
Cache manager for contentcache.

This module composes the four domain caches behind one interface and adds the
cross-cache concerns: file-driven invalidation, dependency tracking between
arbitrary cache keys and files, debounced invalidation for file watchers,
metrics sampling, memory pressure handling and persistence of the manager's
own state.

Classes:
    CacheManager: Unified cache management interface

Functions:
    get_cache_manager: Shared instance accessor
    initialize_cache_manager: Shared instance accessor that also starts
        background work
    reset_cache_manager: Dispose and drop the shared instance

Features:
    - File invalidation fanned out to every cache
    - Debounced invalidation queue for bursts of file events
    - Combined statistics with estimated time saved and memory use
    - Bounded metrics history with trends and a health summary
    - Memory pressure relief by shrinking every cache
    - JSON persistence of dependencies and metrics history
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import orjson

from .cache import ContentStore, DependencyTracker, PeriodicWorker, ReadResult
from .caches.embedding import DEFAULT_MODEL, EmbeddingCache, Vector
from .caches.file_content import FileContentCache, _read_with_fingerprint, normalize_path
from .caches.llm_response import CachedResponse, LLMResponseCache, Message
from .caches.search_results import SearchResultsCache, SearchType
from .config import ManagerConfig
from .error_handling import ErrorCategory, ErrorCollector, PersistenceError
from .logging_config import get_logger
from .utils import hash_text, key_under_prefix
from .watcher import CacheFileWatcher

STATE_FILE = "cache-manager-state.json"
METRICS_FILE = "metrics-history.json"

STATE_MAX_AGE = 24 * 60 * 60  # seconds
METRICS_RESTORE_WINDOW = 60 * 60  # seconds

# Rough cost of recomputing a cached value, in milliseconds
LLM_CALL_MS = 2000
FILE_READ_MS = 10
EMBEDDING_MS = 50
SEARCH_MS = 500


class CacheManager:
    """
    Unified interface over the file content, embedding, search results and
    LLM response caches.

    Caches may be injected; otherwise they are built from ``config``.
    """

    def __init__(
        self,
        config: ManagerConfig | None = None,
        *,
        file_cache: FileContentCache | None = None,
        embedding_cache: EmbeddingCache | None = None,
        search_cache: SearchResultsCache | None = None,
        llm_cache: LLMResponseCache | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ManagerConfig()
        self.clock = clock
        self.logger = get_logger()
        self.errors = ErrorCollector()

        self.file_cache = file_cache or FileContentCache(self.config.file_content)
        self.embedding_cache = embedding_cache or EmbeddingCache(self.config.embedding)
        self.search_cache = search_cache or SearchResultsCache(self.config.search_results)
        self.llm_cache = llm_cache or LLMResponseCache(self.config.llm_response)

        # file -> cache keys in any of the caches that were derived from it
        self.dependencies = DependencyTracker()

        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._invalidation_timer: threading.Timer | None = None

        self.metrics_history: deque[dict[str, Any]] = deque(
            maxlen=self.config.metrics_history_size
        )
        self._metrics_worker: PeriodicWorker | None = None
        self._watcher: CacheFileWatcher | None = None

        self._initialized = False
        self._disposed = False

    @property
    def stores(self) -> dict[str, ContentStore]:
        return {
            "file_content": self.file_cache.store,
            "embedding": self.embedding_cache.store,
            "search_results": self.search_cache.store,
            "llm_response": self.llm_cache.store,
        }

    def initialize(self, watch_root: Path | str | None = None) -> None:
        """
        Start metrics sampling and, if enabled, file watching.

        Args:
            watch_root: Directory to watch; defaults to the current directory
        """
        if self._initialized:
            return

        if self.config.enable_metrics:
            self._metrics_worker = PeriodicWorker(
                self.sample_metrics,
                interval=self.config.metrics_interval,
                name="CacheMetrics",
            )

        if self.config.enable_file_watching:
            self.start_watching(watch_root or Path.cwd())

        self._initialized = True
        self.logger.debug("Cache manager initialized")

    def start_watching(self, root: Path | str) -> bool:
        """Watch ``root`` and queue invalidations for changed files."""
        if self._watcher is not None:
            self._watcher.stop()
        self._watcher = CacheFileWatcher(self, root)
        return self._watcher.start()

    def stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    # ------------------------------------------------------------------
    # file content

    async def read_file(self, path: str | Path, encoding: str = "utf-8") -> ReadResult[str]:
        if not self.config.enabled:
            loaded = await asyncio.to_thread(_read_with_fingerprint, normalize_path(path), encoding)
            return ReadResult(
                loaded.value,
                cached=False,
                content_hash=hash_text(loaded.value),
                fingerprint=loaded.fingerprint,
            )
        return await self.file_cache.read_file(path, encoding)

    def invalidate_file(self, path: str | Path) -> int:
        """Drop the cached content of ``path`` and search results built from it."""
        key = normalize_path(path)
        count = int(self.file_cache.invalidate(key))
        count += self.search_cache.invalidate_for_file(key)
        return count

    async def has_file_changed(self, path: str | Path) -> bool:
        return await self.file_cache.has_changed(path)

    def get_file_hash(self, path: str | Path) -> str | None:
        return self.file_cache.get_hash(path)

    # ------------------------------------------------------------------
    # embeddings

    def get_embedding(self, content: str, model: str = DEFAULT_MODEL) -> Vector | None:
        if not self.config.enabled:
            return None
        return self.embedding_cache.get(content, model)

    def set_embedding(
        self,
        content: str,
        vector: Vector,
        *,
        model: str = DEFAULT_MODEL,
        source: str | Path | None = None,
    ) -> bool:
        if not self.config.enabled:
            return False
        return self.embedding_cache.set(
            content, vector, model=model, source=self._resource(source)
        )

    async def get_or_compute_embedding(
        self,
        content: str,
        compute: Callable[[str], Vector | Awaitable[Vector]],
        *,
        model: str = DEFAULT_MODEL,
        source: str | Path | None = None,
    ) -> Vector:
        if not self.config.enabled:
            result = compute(content)
            return await result if inspect.isawaitable(result) else result
        return await self.embedding_cache.get_or_compute(
            content, compute, model=model, source=self._resource(source)
        )

    # ------------------------------------------------------------------
    # search results

    def get_search_results(
        self,
        query: str,
        search_type: SearchType | str,
        options: Mapping[str, Any] | None = None,
    ) -> Any | None:
        if not self.config.enabled:
            return None
        return self.search_cache.get(query, search_type, options)

    def set_search_results(
        self,
        query: str,
        search_type: SearchType | str,
        results: Any,
        *,
        affected_files: Iterable[str | Path] = (),
        execution_time_ms: float | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        if not self.config.enabled:
            return False
        return self.search_cache.set(
            query,
            search_type,
            results,
            affected_files=[normalize_path(p) for p in affected_files],
            execution_time_ms=execution_time_ms,
            options=options,
        )

    async def get_or_compute_search_results(
        self,
        query: str,
        search_type: SearchType | str,
        compute: Callable[[], Any | Awaitable[Any]],
        *,
        affected_files: Iterable[str | Path] = (),
        options: Mapping[str, Any] | None = None,
    ) -> tuple[Any, bool]:
        if not self.config.enabled:
            result = compute()
            return (await result if inspect.isawaitable(result) else result), False
        return await self.search_cache.get_or_compute(
            query,
            search_type,
            compute,
            affected_files=[normalize_path(p) for p in affected_files],
            options=options,
        )

    # ------------------------------------------------------------------
    # LLM responses

    def get_llm_response(
        self, messages: Sequence[Message], model: str, **key_options: Any
    ) -> CachedResponse | None:
        if not self.config.enabled:
            return None
        return self.llm_cache.get(messages, model, **key_options)

    def set_llm_response(
        self, messages: Sequence[Message], response: CachedResponse, **key_options: Any
    ) -> bool:
        if not self.config.enabled:
            return False
        return self.llm_cache.set(messages, response, **key_options)

    # ------------------------------------------------------------------
    # invalidation and dependencies

    @staticmethod
    def _resource(path: str | Path | None) -> str | None:
        return normalize_path(path) if path is not None else None

    def invalidate_for_file(self, path: str | Path) -> int:
        """
        Invalidate everything derived from ``path``.

        Covers the file's content, search results and embeddings computed
        from it, and every key registered through :meth:`register_dependency`.

        Returns:
            Number of entries removed across all caches
        """
        key = normalize_path(path)
        count = int(self.file_cache.invalidate(key))
        count += self.search_cache.invalidate_for_file(key)
        count += self.embedding_cache.invalidate_source(key)
        if self.config.enable_dependency_tracking:
            count += self._invalidate_dependents(key)
        self.logger.log_invalidation("manager", f"file {key}", count)
        return count

    def invalidate_for_directory(self, directory: str | Path) -> int:
        """Invalidate every cached file and derived entry under ``directory``."""
        prefix = normalize_path(directory)
        count = self.file_cache.invalidate_directory(prefix)

        for cache in (self.search_cache.store, self.embedding_cache.store):
            for resource in cache.dependencies.get_resources_with_dependents():
                if key_under_prefix(resource, prefix):
                    count += cache.invalidate_for_resource(resource)

        if self.config.enable_dependency_tracking:
            for resource in self.dependencies.get_resources_with_dependents():
                if key_under_prefix(resource, prefix):
                    count += self._invalidate_dependents(resource)

        self.logger.log_invalidation("manager", f"directory {prefix}", count)
        return count

    def register_dependency(self, cache_key: str, file_paths: Iterable[str | Path]) -> None:
        """Record that ``cache_key`` (in any cache) was derived from ``file_paths``."""
        if not self.config.enable_dependency_tracking:
            return
        self.dependencies.add_dependencies(cache_key, [normalize_path(p) for p in file_paths])

    def unregister_dependency(self, cache_key: str) -> None:
        if not self.config.enable_dependency_tracking:
            return
        self.dependencies.remove_dependencies(cache_key)

    def _invalidate_dependents(self, path: str) -> int:
        keys = self.dependencies.pop_dependents(path)
        if not keys:
            return 0
        self.logger.debug(f"Invalidating {len(keys)} cache entries dependent on {path}")
        count = 0
        for cache_key in keys:
            for store in self.stores.values():
                count += int(store.invalidate(cache_key))
        return count

    def queue_invalidation(self, path: str | Path) -> None:
        """
        Queue ``path`` for invalidation.

        Bursts of calls are coalesced: the queue is flushed once no new path
        has arrived for ``file_watch_debounce`` seconds.
        """
        with self._pending_lock:
            self._pending.add(normalize_path(path))
            if self._invalidation_timer is not None:
                self._invalidation_timer.cancel()
            timer = threading.Timer(self.config.file_watch_debounce, self.flush_invalidations)
            timer.daemon = True
            self._invalidation_timer = timer
            timer.start()

    def flush_invalidations(self) -> int:
        """
        Process queued invalidations now.

        Returns:
            Number of files processed
        """
        with self._pending_lock:
            paths = sorted(self._pending)
            self._pending.clear()
            if self._invalidation_timer is not None:
                self._invalidation_timer.cancel()
                self._invalidation_timer = None

        if not paths:
            return 0

        self.logger.debug(f"Processing {len(paths)} pending invalidations")
        for path in paths:
            self.invalidate_for_file(path)
        return len(paths)

    def pending_invalidations(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def get_dependency_stats(self) -> dict[str, int]:
        return {
            "tracked_files": self.dependencies.get_dependency_count(),
            "tracked_cache_keys": self.dependencies.get_tracked_key_count(),
            "total_dependencies": self.dependencies.get_edge_count(),
        }

    # ------------------------------------------------------------------
    # statistics

    def get_stats(self) -> dict[str, Any]:
        file_stats = self.file_cache.get_stats().to_dict()
        embedding_stats = self.embedding_cache.get_stats().to_dict()
        embedding_stats["computations_saved"] = self.embedding_cache.computations_saved
        search_stats = self.search_cache.get_stats()
        llm_stats = self.llm_cache.get_stats()

        per_cache = {
            "file_content": file_stats,
            "embedding": embedding_stats,
            "search_results": search_stats,
            "llm_response": llm_stats,
        }
        total_hits = sum(s["hits"] for s in per_cache.values())
        total_misses = sum(s["misses"] for s in per_cache.values())
        reads = total_hits + total_misses

        estimated_time_saved_ms = (
            llm_stats["hits"] * LLM_CALL_MS
            + file_stats["hits"] * FILE_READ_MS
            + embedding_stats["computations_saved"] * EMBEDDING_MS
            + (search_stats["hits"] + search_stats["deduplicated"]) * SEARCH_MS
        )

        return {
            **per_cache,
            "overall": {
                "total_entries": sum(s["total_entries"] for s in per_cache.values()),
                "total_hits": total_hits,
                "total_misses": total_misses,
                "total_evictions": sum(s["evictions"] for s in per_cache.values()),
                "hit_rate": total_hits / reads if reads else 0.0,
                "estimated_cost_saved": llm_stats["estimated_cost_saved"],
                "estimated_time_saved_ms": estimated_time_saved_ms,
                "memory_usage_estimate": sum(s["total_size_bytes"] for s in per_cache.values()),
            },
        }

    def format_stats(self) -> str:
        stats = self.get_stats()["overall"]
        rule, thin = "=" * 50, "-" * 50
        lines = [
            rule,
            "CACHE MANAGER STATISTICS",
            rule,
            "",
            f"Overall Hit Rate: {stats['hit_rate'] * 100:.1f}%",
            f"Total Entries: {stats['total_entries']}",
            f"Est. Cost Saved: ${stats['estimated_cost_saved']:.4f}",
            f"Est. Time Saved: {stats['estimated_time_saved_ms'] / 1000:.1f}s",
            f"Memory Usage: ~{stats['memory_usage_estimate'] / (1024 * 1024):.2f}MB",
        ]
        for cache in (self.llm_cache, self.file_cache, self.embedding_cache, self.search_cache):
            lines.extend(["", thin, cache.format_stats()])
        lines.append(rule)
        return "\n".join(lines)

    def sample_metrics(self) -> int:
        """Append one sample to the metrics history and check memory pressure."""
        stats = self.get_stats()
        self.metrics_history.append({"timestamp": self.clock(), "stats": stats})

        overall = stats["overall"]
        if overall["total_hits"] or overall["total_misses"]:
            self.logger.debug(
                f"Cache stats: hit rate {overall['hit_rate'] * 100:.1f}%, "
                f"entries {overall['total_entries']}"
            )
        self.check_memory_pressure(overall["memory_usage_estimate"])
        return 1

    def check_memory_pressure(self, memory_bytes: int | None = None) -> int:
        """
        Shrink every cache when estimated memory exceeds the threshold.

        Returns:
            Number of entries evicted
        """
        if not self.config.enable_memory_pressure_handling:
            return 0
        if memory_bytes is None:
            memory_bytes = sum(store.total_size_bytes for store in self.stores.values())
        memory_mb = memory_bytes / (1024 * 1024)
        if memory_mb <= self.config.memory_threshold_mb:
            return 0

        evicted = sum(
            store.shrink(self.config.pressure_shrink_fraction) for store in self.stores.values()
        )
        self.logger.warning(
            f"Cache memory pressure: {memory_mb:.2f}MB > {self.config.memory_threshold_mb}MB, "
            f"evicted {evicted} entries"
        )
        return evicted

    def get_metrics_trend(self) -> dict[str, list[float]]:
        samples = list(self.metrics_history)
        return {
            "hit_rate": [s["stats"]["overall"]["hit_rate"] for s in samples],
            "entries": [s["stats"]["overall"]["total_entries"] for s in samples],
            "memory": [s["stats"]["overall"]["memory_usage_estimate"] for s in samples],
            "timestamps": [s["timestamp"] for s in samples],
        }

    def get_detailed_metrics(self) -> dict[str, Any]:
        """Current stats, trend, dependency counts and a health summary."""
        current = self.get_stats()
        overall = current["overall"]
        operations = overall["total_hits"] + overall["total_misses"]

        issues: list[str] = []
        status = "healthy"

        def escalate() -> str:
            return "critical" if status == "warning" else "warning"

        if overall["hit_rate"] < 0.3 and operations > 100:
            issues.append(f"Low hit rate: {overall['hit_rate'] * 100:.1f}%")
            status = "warning"

        memory_mb = overall["memory_usage_estimate"] / (1024 * 1024)
        if memory_mb > self.config.memory_threshold_mb * 0.9:
            issues.append(f"High memory usage: {memory_mb:.1f}MB")
            status = escalate()

        if operations > 0 and overall["total_evictions"] / operations > 0.5:
            issues.append(
                f"High eviction rate: {overall['total_evictions'] / operations * 100:.1f}%"
            )
            status = escalate()

        return {
            "current": current,
            "trend": self.get_metrics_trend(),
            "dependencies": self.get_dependency_stats(),
            "health": {"status": status, "issues": issues},
        }

    # ------------------------------------------------------------------
    # persistence

    def export_state(self) -> dict[str, Any]:
        return {
            "timestamp": self.clock(),
            "metrics": self.get_stats(),
            "dependencies": self.dependencies.export_edges(),
        }

    def import_state(self, state: Mapping[str, Any]) -> None:
        """
        Merge dependencies from a state produced by :meth:`export_state`.

        Raises:
            PersistenceError: If the state is malformed
        """
        edges = state.get("dependencies") if isinstance(state, Mapping) else None
        if not isinstance(edges, Mapping) or not all(
            isinstance(keys, list) for keys in edges.values()
        ):
            raise PersistenceError(
                "Malformed cache manager state", {"type": type(state).__name__}
            )
        self.dependencies.import_edges(edges)
        self.logger.debug(f"Imported cache state with {len(edges)} file dependencies")

    def persist_to_disk(self, base_path: Path | str | None = None) -> bool:
        """
        Write the manager state and metrics history as JSON.

        Returns:
            True on success; failures are logged and recorded
        """
        base = Path(base_path) if base_path is not None else self.config.persist_dir
        try:
            base.mkdir(parents=True, exist_ok=True)
            (base / STATE_FILE).write_bytes(
                orjson.dumps(self.export_state(), option=orjson.OPT_INDENT_2)
            )
            (base / METRICS_FILE).write_bytes(
                orjson.dumps(
                    {"history": list(self.metrics_history), "saved_at": self.clock()},
                    option=orjson.OPT_INDENT_2,
                )
            )
        except (OSError, TypeError) as e:
            self.logger.log_recovered_error("manager", "persist", str(e), path=str(base))
            self.errors.add_error(e, category=ErrorCategory.PERSISTENCE)
            return False

        self.logger.debug(f"Cache state persisted to {base}")
        return True

    def restore_from_disk(self, base_path: Path | str | None = None) -> bool:
        """
        Restore state written by :meth:`persist_to_disk`.

        State older than a day is ignored; only the last hour of metrics
        history is kept.

        Returns:
            True if state was restored
        """
        base = Path(base_path) if base_path is not None else self.config.persist_dir
        state_path = base / STATE_FILE
        if not state_path.exists():
            self.logger.debug("No persisted cache state found")
            return False

        try:
            state = orjson.loads(state_path.read_bytes())
            now = self.clock()
            if now - float(state.get("timestamp", 0)) > STATE_MAX_AGE:
                self.logger.debug("Persisted cache state is too old, ignoring")
                return False

            self.import_state(state)

            metrics_path = base / METRICS_FILE
            if metrics_path.exists():
                history = orjson.loads(metrics_path.read_bytes()).get("history") or []
                cutoff = now - METRICS_RESTORE_WINDOW
                self.metrics_history.clear()
                self.metrics_history.extend(
                    sample for sample in history if sample.get("timestamp", 0) > cutoff
                )
        except (OSError, orjson.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            self.logger.log_recovered_error("manager", "restore", str(e), path=str(base))
            self.errors.add_error(e, category=ErrorCategory.PERSISTENCE)
            return False
        except PersistenceError as e:
            self.logger.log_recovered_error("manager", "restore", str(e), path=str(base))
            self.errors.add_error(e)
            return False

        self.logger.debug(f"Cache state restored from {base}")
        return True

    def cleanup_old_cache_files(
        self, base_path: Path | str | None = None, max_age_days: float = 7
    ) -> int:
        """Delete files in the persistence directory older than ``max_age_days``."""
        base = Path(base_path) if base_path is not None else self.config.persist_dir
        if not base.is_dir():
            return 0

        cutoff = self.clock() - max_age_days * 24 * 60 * 60
        cleaned = 0
        for path in base.iterdir():
            try:
                if path.is_file() and path.stat().st_mtime < cutoff:
                    path.unlink()
                    cleaned += 1
            except OSError as e:
                self.logger.log_recovered_error("manager", "cleanup_files", str(e), path=str(path))

        if cleaned:
            self.logger.debug(f"Cleaned up {cleaned} old cache files")
        return cleaned

    # ------------------------------------------------------------------
    # lifecycle

    def get_caches(self) -> dict[str, Any]:
        return {
            "file": self.file_cache,
            "embedding": self.embedding_cache,
            "search": self.search_cache,
            "llm": self.llm_cache,
        }

    def clear_all(self) -> None:
        for cache in self.get_caches().values():
            cache.clear()
        self.logger.debug("All caches cleared")

    def dispose(self) -> None:
        """Stop background work, optionally persist, and dispose every cache."""
        if self._disposed:
            return
        self._disposed = True

        with self._pending_lock:
            if self._invalidation_timer is not None:
                self._invalidation_timer.cancel()
                self._invalidation_timer = None
            self._pending.clear()

        self.stop_watching()
        if self._metrics_worker is not None:
            self._metrics_worker.stop()
            self._metrics_worker = None

        if self.config.auto_persist:
            self.persist_to_disk()

        for cache in self.get_caches().values():
            cache.dispose()

        self.dependencies.clear_all_dependencies()
        self.metrics_history.clear()
        self._initialized = False
        self.logger.debug("Cache manager disposed")

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __enter__(self) -> CacheManager:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.dispose()


_cache_manager: CacheManager | None = None
_manager_lock = threading.Lock()


def get_cache_manager(config: ManagerConfig | None = None) -> CacheManager:
    """Return the shared manager, creating it with ``config`` on first use."""
    global _cache_manager
    with _manager_lock:
        if _cache_manager is None:
            _cache_manager = CacheManager(config)
        return _cache_manager


def initialize_cache_manager(
    config: ManagerConfig | None = None, watch_root: Path | str | None = None
) -> CacheManager:
    manager = get_cache_manager(config)
    manager.initialize(watch_root)
    return manager


def reset_cache_manager() -> None:
    global _cache_manager
    with _manager_lock:
        manager, _cache_manager = _cache_manager, None
    if manager is not None:
        manager.dispose()
