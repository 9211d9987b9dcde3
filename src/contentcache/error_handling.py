"""
Error classification and collection for contentcache.

The caches follow one propagation rule: failures raised by caller supplied
code (loaders, compute functions) reach the caller unchanged, while failures
inside the cache's own bookkeeping (staleness probes, observer callbacks,
background sweeps) are recovered locally and recorded here so they can be
inspected later.

Classes:
    ErrorSeverity: How bad a recorded failure is
    ErrorCategory: Which part of the cache a failure came from
    ErrorInfo: One recorded failure
    CacheError: Base exception, carries category, severity and suggestions
    ConfigurationError: Invalid cache or manager configuration
    PersistenceError: Malformed persisted manager state
    ErrorCollector: Bounded, thread-safe record of recovered failures

Functions:
    create_error_report: Render a collector as plain text

Example:
    >>> from contentcache.error_handling import ErrorCollector, ErrorCategory
    >>> collector = ErrorCollector()
    >>> try:
    ...     os.stat("missing.txt")
    ... except OSError as e:
    ...     collector.add_error(e, category=ErrorCategory.STALENESS)
    >>> collector.get_summary()["total_errors"]
    1
"""

from __future__ import annotations

import threading
import time
import traceback
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    LOADER = "loader"
    STALENESS = "staleness"
    EVICTION = "eviction"
    OBSERVER = "observer"
    CONFIGURATION = "configuration"
    PERSISTENCE = "persistence"
    UNKNOWN = "unknown"


# Checked in order; first match wins
_CLASSIFICATION: tuple[tuple[Any, ErrorCategory], ...] = (
    (OSError, ErrorCategory.STALENESS),
    ((TypeError, ValueError), ErrorCategory.CONFIGURATION),
)


@dataclass
class ErrorInfo:
    """A recovered failure as stored by :class:`ErrorCollector`."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    key: str | None = None
    exception_type: str | None = None
    trace: str | None = None
    timestamp: float = field(default_factory=time.time)
    context: dict[str, Any] = field(default_factory=dict)
    suggestions: list[str] = field(default_factory=list)

    def describe(self) -> str:
        text = f"[{self.category.value}] {self.message}"
        return f"{text} (key: {self.key})" if self.key else text


class CacheError(Exception):
    """
    Base exception for contentcache.

    Subclasses set the class-level defaults; instances may override them.
    """

    default_category: ClassVar[ErrorCategory] = ErrorCategory.UNKNOWN
    default_severity: ClassVar[ErrorSeverity] = ErrorSeverity.MEDIUM
    default_suggestions: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        key: str | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.key = key
        self.suggestions = list(suggestions or self.default_suggestions)
        self.timestamp = time.time()


class ConfigurationError(CacheError):
    """Raised when a cache or manager is configured with nonsensical values."""

    default_category = ErrorCategory.CONFIGURATION
    default_severity = ErrorSeverity.HIGH
    default_suggestions = (
        "Check the TOML file for typos in section and option names",
        "Use non-negative TTLs and positive size limits",
        "Start from the defaults printed by `contentcache config`",
    )


class PersistenceError(CacheError):
    """Raised when persisted manager state cannot be interpreted."""

    default_category = ErrorCategory.PERSISTENCE
    default_suggestions = (
        "Delete the persisted state directory",
        "Restore from a state written by the same version",
    )


class ErrorCollector:
    """
    Record of failures the cache recovered from instead of raising.

    At most ``max_errors`` :class:`ErrorInfo` objects are kept; per-category
    counts keep growing past that so summaries stay accurate.
    """

    def __init__(self, max_errors: int = 100) -> None:
        self.max_errors = max_errors
        self.errors: list[ErrorInfo] = []
        self.counts: Counter[ErrorCategory] = Counter()
        self.suppressed: set[ErrorCategory] = set()
        self._lock = threading.Lock()

    def add_error(
        self,
        exception: BaseException,
        category: ErrorCategory | None = None,
        severity: ErrorSeverity | None = None,
        key: str | None = None,
        context: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
    ) -> ErrorInfo | None:
        """
        Record ``exception``.

        A :class:`CacheError` keeps its own category and severity; explicit
        ``context`` is merged over the exception's. Other exceptions use the
        given category, or one inferred from the exception type.

        Returns:
            The recorded info, or None if the category is suppressed
        """
        if isinstance(exception, CacheError):
            info = ErrorInfo(
                category=exception.category,
                severity=exception.severity,
                message=exception.message,
                key=exception.key or key,
                context={**exception.context, **(context or {})},
                suggestions=exception.suggestions or list(suggestions or []),
            )
        else:
            info = ErrorInfo(
                category=category or classify_exception(exception),
                severity=severity or ErrorSeverity.LOW,
                message=str(exception),
                key=key,
                context=dict(context or {}),
                suggestions=list(suggestions or []),
            )

        if info.category in self.suppressed:
            return None

        info.exception_type = type(exception).__name__
        if exception.__traceback__ is not None:
            info.trace = "".join(traceback.format_exception(exception))

        with self._lock:
            self.counts[info.category] += 1
            if len(self.errors) < self.max_errors:
                self.errors.append(info)
        return info

    def suppress_category(self, category: ErrorCategory) -> None:
        self.suppressed.add(category)

    def unsuppress_category(self, category: ErrorCategory) -> None:
        self.suppressed.discard(category)

    def get_errors_by_category(self, category: ErrorCategory) -> list[ErrorInfo]:
        return [info for info in self.errors if info.category is category]

    def has_critical_errors(self) -> bool:
        return any(info.severity is ErrorSeverity.CRITICAL for info in self.errors)

    def get_summary(self) -> dict[str, Any]:
        with self._lock:
            severities = Counter(info.severity for info in self.errors)
            return {
                "total_errors": sum(self.counts.values()),
                "recorded_errors": len(self.errors),
                "by_category": {cat.value: n for cat, n in self.counts.items()},
                "by_severity": {sev.value: severities[sev] for sev in ErrorSeverity},
                "suppressed_categories": sorted(cat.value for cat in self.suppressed),
                "has_critical": severities[ErrorSeverity.CRITICAL] > 0,
            }

    def clear(self) -> None:
        with self._lock:
            self.errors.clear()
            self.counts.clear()


def classify_exception(exception: BaseException) -> ErrorCategory:
    """Infer a category for an exception that did not come with one."""
    for types, category in _CLASSIFICATION:
        if isinstance(exception, types):
            return category
    return ErrorCategory.UNKNOWN


def create_error_report(error_collector: ErrorCollector, recent: int = 5) -> str:
    """Plain-text report of a collector: totals, per-category counts, latest errors."""
    if not error_collector.errors:
        return "No errors were recovered by the cache."

    summary = error_collector.get_summary()
    lines = [
        "Cache Error Report",
        "=" * 50,
        f"Total errors: {summary['total_errors']} "
        f"({summary['by_severity']['critical']} critical)",
        "",
        "By category:",
        *(f"  {name}: {count}" for name, count in summary["by_category"].items()),
        "",
        f"Last {min(recent, len(error_collector.errors))}:",
    ]
    for info in error_collector.errors[-recent:]:
        lines.append(f"  - {info.describe()}")
        if info.suggestions:
            lines.append(f"    Suggestions: {'; '.join(info.suggestions)}")
    return "\n".join(lines)
