"""
Observer notifications for cache activity.

A cache holds a :class:`CacheNotifier` and calls into it; observers
subscribe callbacks per event type (or ``None`` for every type). Callbacks
run synchronously on the thread that raised the event. A failing callback
is logged and recorded, never propagated into the cache operation.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..error_handling import ErrorCategory, ErrorCollector
from ..logging_config import get_logger


class CacheEventType(str, Enum):
    HIT = "hit"
    MISS = "miss"
    EVICT = "evict"
    INVALIDATE = "invalidate"
    SKIP = "skip"
    CLEAR = "clear"


@dataclass(slots=True)
class CacheEvent:
    """A single notification raised by a cache."""

    type: CacheEventType
    cache: str
    key: str | None = None
    reason: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


CacheListener = Callable[[CacheEvent], Any]


class CacheNotifier:
    """Lightweight publish/subscribe hub owned by a cache."""

    def __init__(self, errors: ErrorCollector | None = None) -> None:
        self._listeners: dict[CacheEventType | None, list[CacheListener]] = defaultdict(list)
        self._lock = threading.RLock()
        self._errors = errors
        self.logger = get_logger()

    def subscribe(
        self, event_type: CacheEventType | None, callback: CacheListener
    ) -> Callable[[], None]:
        """
        Register ``callback`` for ``event_type`` (``None`` = all events).

        Returns:
            A function that removes the subscription when called
        """
        with self._lock:
            self._listeners[event_type].append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(event_type, callback)

        return _unsubscribe

    def unsubscribe(self, event_type: CacheEventType | None, callback: CacheListener) -> bool:
        with self._lock:
            listeners = self._listeners.get(event_type)
            if listeners and callback in listeners:
                listeners.remove(callback)
                return True
            return False

    def listener_count(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._listeners.values())

    def emit(self, event: CacheEvent) -> None:
        with self._lock:
            targets = list(self._listeners.get(event.type, ())) + list(
                self._listeners.get(None, ())
            )

        for callback in targets:
            try:
                callback(event)
            except Exception as e:
                self.logger.log_recovered_error(event.cache, f"notify:{event.type.value}", str(e))
                if self._errors is not None:
                    self._errors.add_error(e, category=ErrorCategory.OBSERVER, key=event.key)

    def clear(self) -> None:
        """Detach every listener."""
        with self._lock:
            self._listeners.clear()
