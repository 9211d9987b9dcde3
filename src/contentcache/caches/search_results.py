"""
Search results cache.

Results are keyed by search type, the normalized query and the search
options, so ``"Foo  Bar"`` and ``"foo bar"`` share one entry. Each search
type gets its own TTL (text results go stale fastest, symbol lookups
slowest). Results remember the files they were computed from; changing one
of those files drops them.

Concurrent ``get_or_compute`` calls for the same query share one
computation.
"""

from __future__ import annotations

import inspect
import re
import threading
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..cache import ContentStore
from ..cache.invalidation import compile_pattern
from ..config import CacheConfig
from ..utils import hash_content, hash_text

QUERY_HASH_LENGTH = 12

_WHITESPACE = re.compile(r"\s+")


class SearchType(str, Enum):
    TEXT = "text"
    FILE = "file"
    SYMBOL = "symbol"
    REFERENCE = "reference"


DEFAULT_TYPE_TTLS: dict[SearchType, float] = {
    SearchType.TEXT: 60.0,
    SearchType.FILE: 300.0,
    SearchType.SYMBOL: 600.0,
    SearchType.REFERENCE: 600.0,
}


@dataclass
class SearchEntry:
    """Stored value: the results plus what produced them."""

    results: Any
    normalized_query: str
    search_type: SearchType
    affected_files: list[str] = field(default_factory=list)
    execution_time_ms: float | None = None
    options: dict[str, Any] | None = None

    @property
    def result_count(self) -> int | None:
        return len(self.results) if isinstance(self.results, (list, tuple)) else None


def normalize_query(query: str) -> str:
    return _WHITESPACE.sub(" ", query.lower()).strip()


class SearchResultsCache:
    """Cache of search results with per-type TTLs and file dependencies."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        tiered_ttl: bool = True,
        type_ttls: Mapping[SearchType | str, float] | None = None,
        **store_kwargs: Any,
    ):
        self.config = config or CacheConfig.for_search_results()
        self.store: ContentStore[SearchEntry] = ContentStore(
            self.config, name="search_results", **store_kwargs
        )
        self.tiered_ttl = tiered_ttl
        self.type_ttls = dict(DEFAULT_TYPE_TTLS)
        for search_type, ttl in (type_ttls or {}).items():
            self.type_ttls[SearchType(search_type)] = ttl

        self.hits_by_type: dict[SearchType, int] = {t: 0 for t in SearchType}
        self.total_time_saved_ms = 0.0
        self._stats_lock = threading.Lock()

    def ttl_for(self, search_type: SearchType | str) -> float:
        if not self.tiered_ttl:
            return self.config.ttl
        return self.type_ttls.get(SearchType(search_type), self.config.ttl)

    @staticmethod
    def make_key(
        query: str, search_type: SearchType | str, options: Mapping[str, Any] | None = None
    ) -> str:
        """``type:hash(normalized query)[:hash(sorted options)]``."""
        parts = [SearchType(search_type).value, hash_text(normalize_query(query), QUERY_HASH_LENGTH)]
        if options:
            parts.append(hash_content(dict(options), QUERY_HASH_LENGTH))
        return ":".join(parts)

    def get(
        self,
        query: str,
        search_type: SearchType | str,
        options: Mapping[str, Any] | None = None,
    ) -> Any | None:
        """Cached results, or None on a miss."""
        entry = self.store.get(self.make_key(query, search_type, options))
        if entry is None:
            return None
        self._record_type_hit(entry)
        return entry.results

    def set(
        self,
        query: str,
        search_type: SearchType | str,
        results: Any,
        *,
        affected_files: Iterable[str] = (),
        execution_time_ms: float | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        search_type = SearchType(search_type)
        key = self.make_key(query, search_type, options)
        entry = SearchEntry(
            results=results,
            normalized_query=normalize_query(query),
            search_type=search_type,
            affected_files=list(affected_files),
            execution_time_ms=execution_time_ms,
            options=dict(options) if options else None,
        )
        stored = self.store.put(key, entry, ttl=self.ttl_for(search_type))
        self._track_files(key, entry, stored)
        return stored

    async def get_or_compute(
        self,
        query: str,
        search_type: SearchType | str,
        compute: Callable[[], Any | Awaitable[Any]],
        *,
        affected_files: Iterable[str] = (),
        options: Mapping[str, Any] | None = None,
    ) -> tuple[Any, bool]:
        """
        Return ``(results, cached)``, computing and caching on a miss.

        Exceptions from ``compute`` propagate; nothing is cached for them.
        """
        search_type = SearchType(search_type)
        key = self.make_key(query, search_type, options)
        files = list(affected_files)

        async def _compute() -> SearchEntry:
            start = time.perf_counter()
            results = compute()
            if inspect.isawaitable(results):
                results = await results
            return SearchEntry(
                results=results,
                normalized_query=normalize_query(query),
                search_type=search_type,
                affected_files=files,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                options=dict(options) if options else None,
            )

        result = await self.store.get_or_compute(key, _compute, ttl=self.ttl_for(search_type))
        entry = result.value
        if result.cached:
            self._record_type_hit(entry)
        else:
            self._track_files(key, entry, self.store.peek(key) is not None)
        return entry.results, result.cached

    def _track_files(self, key: str, entry: SearchEntry, stored: bool) -> None:
        self.store.unregister_dependency(key)
        if stored and entry.affected_files:
            self.store.register_dependency(key, entry.affected_files)

    def _record_type_hit(self, entry: SearchEntry) -> None:
        with self._stats_lock:
            self.hits_by_type[entry.search_type] += 1
            if entry.execution_time_ms:
                self.total_time_saved_ms += entry.execution_time_ms

    def invalidate_for_file(self, file_path: str) -> int:
        """Drop every result computed from ``file_path``."""
        return self.store.invalidate_for_resource(file_path)

    def invalidate_pattern(self, pattern: Any) -> int:
        """Drop results whose normalized query matches ``pattern``."""
        compiled = compile_pattern(pattern)
        return self.store.invalidate_where(
            lambda _key, entry: bool(compiled.search(entry.normalized_query)), reason="pattern"
        )

    def invalidate_by_type(self, search_type: SearchType | str) -> int:
        search_type = SearchType(search_type)
        return self.store.invalidate_where(
            lambda _key, entry: entry.search_type is search_type, reason="type"
        )

    def get_stats(self) -> dict[str, Any]:
        stats = self.store.get_stats().to_dict()
        with self._stats_lock:
            stats["by_type"] = {t.value: n for t, n in self.hits_by_type.items()}
            stats["total_time_saved_ms"] = self.total_time_saved_ms
        return stats

    def format_stats(self) -> str:
        stats = self.get_stats()
        lines = [
            "Search Results Cache Statistics",
            f"  Entries: {stats['total_entries']}",
            f"  Hit Rate: {stats['hit_rate'] * 100:.1f}%",
            f"  Deduplicated: {stats['deduplicated']}",
            f"  Invalidations: {stats['invalidations']}",
            "  By Type:",
        ]
        lines.extend(f"    {name.title()}: {count}" for name, count in stats["by_type"].items())
        return "\n".join(lines)

    def clear(self) -> None:
        self.store.clear()
        with self._stats_lock:
            self.hits_by_type = {t: 0 for t in SearchType}
            self.total_time_saved_ms = 0.0

    def dispose(self) -> None:
        self.store.dispose()

    def __len__(self) -> int:
        return len(self.store)


_search_results_cache: SearchResultsCache | None = None


def get_search_results_cache(config: CacheConfig | None = None) -> SearchResultsCache:
    global _search_results_cache
    if _search_results_cache is None:
        _search_results_cache = SearchResultsCache(config)
    return _search_results_cache


def reset_search_results_cache() -> None:
    global _search_results_cache
    if _search_results_cache is not None:
        _search_results_cache.dispose()
    _search_results_cache = None
