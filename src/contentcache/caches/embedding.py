"""
Embedding cache.

Embeddings are pure functions of (model, content), so entries are addressed
by a content hash and never checked against the filesystem. A vector can be
tagged with the resource it was computed from (usually a file path) so that
editing the file drops its embeddings.
"""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..cache import ContentStore
from ..cache.models import CacheStats
from ..config import CacheConfig
from ..utils import hash_text

DEFAULT_MODEL = "default"

Vector = Sequence[float]


def embedding_key(content: str, model: str = DEFAULT_MODEL) -> str:
    return f"{model}:{hash_text(content, length=64)}"


class EmbeddingCache:
    """Cache of embedding vectors keyed by model and content hash."""

    def __init__(self, config: CacheConfig | None = None, **store_kwargs: Any):
        self.config = config or CacheConfig.for_embeddings()
        self.store: ContentStore[Vector] = ContentStore(self.config, name="embedding", **store_kwargs)
        self._saved_lock = threading.Lock()
        self.computations_saved = 0

    def get(self, content: str, model: str = DEFAULT_MODEL) -> Vector | None:
        vector = self.store.get(embedding_key(content, model))
        if vector is not None:
            self._count_saved()
        return vector

    def set(
        self,
        content: str,
        vector: Vector,
        *,
        model: str = DEFAULT_MODEL,
        source: str | None = None,
    ) -> bool:
        """Store a vector; ``source`` links it to the resource it came from."""
        key = embedding_key(content, model)
        stored = self.store.put(key, vector)
        if stored and source is not None:
            self.store.register_dependency(key, [source])
        return stored

    async def get_or_compute(
        self,
        content: str,
        compute: Callable[[str], Vector | Awaitable[Vector]],
        *,
        model: str = DEFAULT_MODEL,
        source: str | None = None,
    ) -> Vector:
        """Return the cached vector or ``compute(content)`` it and cache it."""
        key = embedding_key(content, model)
        result = await self.store.get_or_compute(key, lambda: compute(content))
        if result.cached:
            self._count_saved()
        elif source is not None and self.store.has(key):
            self.store.register_dependency(key, [source])
        return result.value

    def _count_saved(self) -> None:
        with self._saved_lock:
            self.computations_saved += 1

    def invalidate(self, content: str, model: str = DEFAULT_MODEL) -> bool:
        return self.store.invalidate(embedding_key(content, model))

    def invalidate_source(self, source: str) -> int:
        """Drop every vector registered as computed from ``source``."""
        return self.store.invalidate_for_resource(source)

    def invalidate_model(self, model: str) -> int:
        """Drop every vector computed by ``model``."""
        prefix = f"{model}:"
        return self.store.invalidate_where(lambda key, _vector: key.startswith(prefix), reason="model")

    def get_stats(self) -> CacheStats:
        return self.store.get_stats()

    def format_stats(self) -> str:
        return "\n".join(
            [
                self.store.format_stats("Embedding Cache Statistics"),
                f"  Computations Saved: {self.computations_saved}",
            ]
        )

    def clear(self) -> None:
        self.store.clear()
        with self._saved_lock:
            self.computations_saved = 0

    def dispose(self) -> None:
        self.store.dispose()

    def __len__(self) -> int:
        return len(self.store)


_embedding_cache: EmbeddingCache | None = None


def get_embedding_cache(config: CacheConfig | None = None) -> EmbeddingCache:
    global _embedding_cache
    if _embedding_cache is None:
        _embedding_cache = EmbeddingCache(config)
    return _embedding_cache


def reset_embedding_cache() -> None:
    global _embedding_cache
    if _embedding_cache is not None:
        _embedding_cache.dispose()
    _embedding_cache = None
