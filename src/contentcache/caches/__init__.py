"""Domain caches built on :class:`~contentcache.cache.ContentStore`."""

from .embedding import EmbeddingCache, get_embedding_cache, reset_embedding_cache
from .file_content import FileContentCache, get_file_content_cache, reset_file_content_cache
from .llm_response import (
    CachedResponse,
    LLMResponseCache,
    get_llm_response_cache,
    reset_llm_response_cache,
)
from .search_results import (
    SearchResultsCache,
    SearchType,
    get_search_results_cache,
    reset_search_results_cache,
)

__all__ = [
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
]
