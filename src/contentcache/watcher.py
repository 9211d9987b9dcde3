"""
File system watching for cache invalidation.

Forwards create/modify/delete/move events under a root directory to a
:class:`~contentcache.manager.CacheManager`, which debounces them and
invalidates every cache entry derived from the changed files.

Classes:
    CacheEventHandler: Filters watchdog events through include/ignore patterns
    CacheFileWatcher: Owns the watchdog observer

Example:
    >>> from contentcache.manager import CacheManager
    >>> from contentcache.watcher import CacheFileWatcher
    >>>
    >>> manager = CacheManager()
    >>> watcher = CacheFileWatcher(manager, "/path/to/project")
    >>> watcher.start()
    >>> # edits under /path/to/project now invalidate cached reads
    >>> watcher.stop()
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pathspec
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .logging_config import get_logger

if TYPE_CHECKING:
    from .manager import CacheManager


class CacheEventHandler(FileSystemEventHandler):
    """Queues an invalidation for every accepted file event."""

    def __init__(
        self,
        manager: CacheManager,
        root: Path,
        watch_patterns: list[str],
        ignore_patterns: list[str],
    ):
        super().__init__()
        self.manager = manager
        self.root = root
        self.watch_spec = pathspec.PathSpec.from_lines("gitwildmatch", watch_patterns or ["**/*"])
        self.ignore_spec = pathspec.PathSpec.from_lines("gitwildmatch", ignore_patterns)
        self.events_seen = 0
        self.events_queued = 0
        self.logger = get_logger()

    def should_process(self, path: str) -> bool:
        try:
            rel = Path(path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return False
        if self.ignore_spec.match_file(rel):
            return False
        return self.watch_spec.match_file(rel)

    def _queue(self, path: str) -> None:
        self.events_seen += 1
        if not self.should_process(path):
            return
        self.events_queued += 1
        try:
            self.manager.queue_invalidation(path)
        except Exception as e:
            self.logger.error(f"Error queueing invalidation for {path}: {e}")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # both the old and the new location are stale
        self._queue(os.fsdecode(event.src_path))
        dest = getattr(event, "dest_path", None)
        if dest:
            self._queue(os.fsdecode(dest))


class CacheFileWatcher:
    """Watches ``root`` recursively and invalidates caches on change."""

    def __init__(
        self,
        manager: CacheManager,
        root: Path | str,
        watch_patterns: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
    ):
        self.root = Path(root).resolve()
        self.handler = CacheEventHandler(
            manager,
            self.root,
            list(watch_patterns if watch_patterns is not None else manager.config.watch_patterns),
            list(ignore_patterns if ignore_patterns is not None else manager.config.ignore_patterns),
        )
        self.logger = get_logger()
        self._observer: Any = None
        self._lock = threading.Lock()

    def start(self) -> bool:
        """
        Start watching.

        Returns:
            True if the observer is running
        """
        with self._lock:
            if self._observer is not None:
                self.logger.warning("File watcher already running")
                return True
            observer = Observer()
            try:
                observer.schedule(self.handler, str(self.root), recursive=True)
                observer.start()
            except OSError as e:
                self.logger.error(f"Failed to start file watcher on {self.root}: {e}")
                return False
            self._observer = observer
        self.logger.info(f"Started watching: {self.root}")
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching. Safe to call more than once."""
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=timeout)
        self.logger.info("Stopped file watcher")

    def is_running(self) -> bool:
        with self._lock:
            return self._observer is not None and self._observer.is_alive()

    def get_stats(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "running": self.is_running(),
            "events_seen": self.handler.events_seen,
            "events_queued": self.handler.events_queued,
        }

    def __enter__(self) -> CacheFileWatcher:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()
