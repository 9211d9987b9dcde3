"""
Periodic background maintenance.

This module runs a callback on a fixed interval from a daemon thread. The
caches use it for the proactive TTL sweep and the manager uses it for
metrics sampling.

Classes:
    PeriodicWorker: Interval-driven background worker

Features:
    - Daemon thread driven by a stop event (no busy waiting)
    - Manual single runs for tests and callers
    - Idempotent, bounded-time shutdown
    - Callback failures are logged and the worker keeps running
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

from ..logging_config import get_logger

logger = get_logger()


class PeriodicWorker:
    """
    Runs ``callback`` every ``interval`` seconds on a background thread.

    The callback should return the number of items it processed; non-zero
    results are logged at debug level.
    """

    def __init__(
        self,
        callback: Callable[[], int | None],
        interval: float = 60.0,
        name: str = "CacheCleanup",
        auto_start: bool = True,
    ):
        """
        Initialize the worker.

        Args:
            callback: Function to call on each tick
            interval: Seconds between runs
            name: Thread name, also used in log messages
            auto_start: Whether to start the thread immediately
        """
        self.callback = callback
        self.interval = interval
        self.name = name
        self.runs = 0
        self.failures = 0

        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        if auto_start:
            self.start()

    def start(self) -> None:
        """Start the background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning(f"{self.name} worker is already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True, name=self.name)
        self._thread.start()
        logger.debug(f"{self.name} worker started with interval {self.interval}s")

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the background thread. Safe to call more than once.

        Args:
            timeout: Maximum time to wait for the thread to stop
        """
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is None or not thread.is_alive():
            return
        if thread is threading.current_thread():
            # stop() requested from inside the callback
            return

        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning(f"{self.name} worker did not stop within timeout")
        else:
            logger.debug(f"{self.name} worker stopped")

    def _worker(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.run_once()

    def run_once(self) -> int:
        """
        Run the callback once in the calling thread.

        Returns:
            The callback's result (0 on failure or None)
        """
        start_time = time.time()
        try:
            result = self.callback() or 0
        except Exception as e:
            self.failures += 1
            logger.error(f"Error in {self.name} worker: {e}")
            return 0
        finally:
            self.runs += 1

        if result > 0:
            elapsed = time.time() - start_time
            logger.debug(f"{self.name} processed {result} items in {elapsed:.3f}s")
        return result

    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop_event.is_set()
        )

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "interval": self.interval,
            "running": self.is_running(),
            "runs": self.runs,
            "failures": self.failures,
        }
