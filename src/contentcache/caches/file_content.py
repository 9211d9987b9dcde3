"""
File content cache.

Caches decoded file contents keyed by absolute path. Every hit is validated
against the file's current mtime and size (unless ``validate_on_read`` is
off), so an edited file is re-read on the next access even before its TTL
runs out.

Classes:
    FileContentCache: Path-keyed view over a :class:`ContentStore`

Functions:
    get_file_content_cache: Shared instance accessor
    reset_file_content_cache: Dispose and drop the shared instance
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..cache import ContentStore, Fingerprint, LoadResult, ReadResult, stat_fingerprint
from ..cache.models import CacheStats
from ..config import CacheConfig
from ..logging_config import get_logger
from ..utils import hash_text

PathLike = str | os.PathLike[str]


def normalize_path(path: PathLike) -> str:
    return os.path.abspath(os.fspath(path))


def _read_with_fingerprint(path: str, encoding: str) -> LoadResult[str]:
    # stat before reading: a write that lands in between leaves an older
    # fingerprint behind, so the next read revalidates instead of serving stale text
    st = os.stat(path)
    with open(path, encoding=encoding, newline="") as f:
        content = f.read()
    return LoadResult(
        content,
        fingerprint=Fingerprint(mtime=st.st_mtime, size=st.st_size),
        size_bytes=st.st_size,
    )


class FileContentCache:
    """Read-through cache of text file contents."""

    def __init__(self, config: CacheConfig | None = None, **store_kwargs: Any):
        self.config = config or CacheConfig.for_file_content()
        self.store: ContentStore[str] = ContentStore(
            self.config,
            fingerprint_probe=stat_fingerprint,
            hasher=hash_text,
            name="file_content",
            **store_kwargs,
        )
        self.logger = get_logger()

    async def read_file(self, path: PathLike, encoding: str = "utf-8") -> ReadResult[str]:
        """
        Read a file through the cache.

        Raises whatever ``open``/``os.stat`` raise (e.g. ``FileNotFoundError``).
        Files larger than ``max_item_size_bytes`` are returned but not cached.
        """
        key = normalize_path(path)
        return await self.store.read(
            key, lambda: asyncio.to_thread(_read_with_fingerprint, key, encoding)
        )

    def invalidate(self, path: PathLike) -> bool:
        return self.store.invalidate(normalize_path(path))

    def invalidate_directory(self, directory: PathLike) -> int:
        """Drop every cached file under ``directory``."""
        return self.store.invalidate_prefix(normalize_path(directory))

    def invalidate_pattern(self, pattern: Any) -> int:
        return self.store.invalidate_pattern(pattern)

    async def has_changed(self, path: PathLike, encoding: str = "utf-8") -> bool:
        """
        True if the file differs from the cached copy.

        Uncached files and files that can no longer be read count as changed.
        When the fingerprint matches, the content hash is cross-checked.
        """
        key = normalize_path(path)
        entry = self.store.peek(key)
        if entry is None:
            return True
        try:
            loaded = await asyncio.to_thread(_read_with_fingerprint, key, encoding)
        except (OSError, UnicodeDecodeError) as e:
            self.logger.debug(f"has_changed: cannot read {key}: {e}")
            return True
        if loaded.fingerprint != entry.fingerprint:
            return True
        return self.store.validator.has_changed(entry, loaded.value)

    def get_hash(self, path: PathLike) -> str | None:
        return self.store.get_hash(normalize_path(path))

    def is_cached(self, path: PathLike) -> bool:
        return self.store.has(normalize_path(path))

    async def preload(self, paths: Iterable[PathLike]) -> int:
        """
        Warm the cache with ``paths``.

        Missing paths, directories, oversize and unreadable files are skipped.

        Returns:
            Number of files read
        """
        loaded = 0
        limit = self.config.max_item_size_bytes
        for path in paths:
            p = Path(path)
            try:
                if not p.is_file() or p.stat().st_size > limit:
                    continue
                await self.read_file(p)
                loaded += 1
            except (OSError, UnicodeDecodeError) as e:
                self.logger.debug(f"preload: skipping {p}: {e}")
        return loaded

    def get_stats(self) -> CacheStats:
        return self.store.get_stats()

    def format_stats(self) -> str:
        return self.store.format_stats("File Content Cache Statistics")

    def clear(self) -> None:
        self.store.clear()

    def dispose(self) -> None:
        self.store.dispose()

    def __len__(self) -> int:
        return len(self.store)


_file_content_cache: FileContentCache | None = None


def get_file_content_cache(config: CacheConfig | None = None) -> FileContentCache:
    """Return the shared cache, creating it with ``config`` on first use."""
    global _file_content_cache
    if _file_content_cache is None:
        _file_content_cache = FileContentCache(config)
    return _file_content_cache


def reset_file_content_cache() -> None:
    global _file_content_cache
    if _file_content_cache is not None:
        _file_content_cache.dispose()
    _file_content_cache = None
