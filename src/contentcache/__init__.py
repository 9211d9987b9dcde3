"""
contentcache: bounded, TTL-governed caches for file contents and derived data.

This package caches expensive-to-produce values (file contents, embeddings,
search results, model responses) in memory with a time-to-live, a
hit-weighted LRU eviction policy, byte and entry budgets, cheap mtime/size
staleness checks and invalidation by key, pattern, directory prefix or
resource dependency.

Key Features:
    - **Read-through API**: ``await store.read(key, loader)`` with sync or async loaders
    - **Staleness checks**: Hits re-validated against the file's mtime and size
    - **Bounded memory**: Entry and byte limits with hit-weighted LRU eviction
    - **Targeted invalidation**: Keys, regex patterns, directory prefixes, dependencies
    - **Observability**: Hit/miss/eviction statistics, event callbacks, structured logging
    - **Manager**: One interface over the four domain caches, with file watching,
      metrics history, memory pressure handling and persistence

Main Classes:
    ContentStore: The bounded TTL cache all other caches build on
    CacheConfig: Limits and behaviour of one cache
    FileContentCache: Path-keyed cache of text file contents
    EmbeddingCache: Content-hash-keyed cache of embedding vectors
    SearchResultsCache: Normalized-query cache of search results
    LLMResponseCache: Exact-match cache of model responses
    CacheManager: Unified interface over the four caches

Example Usage:
    Caching file reads:
        >>> from contentcache import FileContentCache
        >>> cache = FileContentCache()
        >>> first = await cache.read_file("README.md")
        >>> second = await cache.read_file("README.md")
        >>> (first.cached, second.cached)
        (False, True)

    CLI usage:
        $ contentcache warm src --include "**/*.py" --passes 2
"""

from .cache import (
    CacheEntry,
    CacheEvent,
    CacheEventType,
    CacheStats,
    ContentStore,
    Fingerprint,
    LoadResult,
    ReadResult,
    stat_fingerprint,
)
from .caches import (
    CachedResponse,
    EmbeddingCache,
    FileContentCache,
    LLMResponseCache,
    SearchResultsCache,
    SearchType,
    get_embedding_cache,
    get_file_content_cache,
    get_llm_response_cache,
    get_search_results_cache,
    reset_embedding_cache,
    reset_file_content_cache,
    reset_llm_response_cache,
    reset_search_results_cache,
)
from .config import CacheConfig, ManagerConfig, load_config
from .error_handling import CacheError, ConfigurationError, PersistenceError
from .logging_config import configure_logging, get_logger
from .manager import (
    CacheManager,
    get_cache_manager,
    initialize_cache_manager,
    reset_cache_manager,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "CacheEntry",
    "CacheEvent",
    "CacheEventType",
    "CacheStats",
    "ContentStore",
    "Fingerprint",
    "LoadResult",
    "ReadResult",
    "stat_fingerprint",
    # Caches
    "CachedResponse",
    "EmbeddingCache",
    "FileContentCache",
    "LLMResponseCache",
    "SearchResultsCache",
    "SearchType",
    "get_embedding_cache",
    "get_file_content_cache",
    "get_llm_response_cache",
    "get_search_results_cache",
    "reset_embedding_cache",
    "reset_file_content_cache",
    "reset_llm_response_cache",
    "reset_search_results_cache",
    # Manager
    "CacheManager",
    "get_cache_manager",
    "initialize_cache_manager",
    "reset_cache_manager",
    # Configuration and errors
    "CacheConfig",
    "ManagerConfig",
    "load_config",
    "CacheError",
    "ConfigurationError",
    "PersistenceError",
    "configure_logging",
    "get_logger",
]
