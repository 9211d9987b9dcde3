"""
Logging configuration for contentcache.

All caches log through one process-wide :class:`CacheLogger` bound to the
``contentcache`` stdlib logger. Records can be rendered as plain text, as
``key=value`` structured lines or as JSON lines via orjson.

Classes:
    LogLevel: Levels accepted by configure_logging
    LogFormat: Output formats for cache log records
    JsonFormatter: One JSON object per record
    StructuredFormatter: Human readable records with trailing key=value fields
    CacheLogger: Logger wrapper with cache specific helpers

Functions:
    get_logger: Return the shared logger, creating it on first use
    configure_logging: Replace the shared logger with a new configuration
    disable_logging: Silence the shared logger
    enable_debug_logging: Switch the shared logger to DEBUG
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from collections.abc import Callable
from enum import Enum
from functools import partialmethod
from pathlib import Path
from typing import Any

import orjson


class LogLevel(str, Enum):
    """Log levels accepted by :func:`configure_logging`."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def numeric(self) -> int:
        return logging.getLevelName(self.value)


class LogFormat(str, Enum):
    """Output formats for cache log records."""

    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"
    STRUCTURED = "structured"


_OFF = logging.CRITICAL + 1

# Attributes present on every LogRecord; anything else came in through ``extra=``
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, extra fields merged at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
            **_extra_fields(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


class StructuredFormatter(logging.Formatter):
    """Human-readable line followed by ``key=value`` pairs for extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        head = (
            f"{self.formatTime(record, self.datefmt)} "
            f"[{record.levelname}] {record.name}: {record.getMessage()}"
        )
        pairs = " ".join(f"{k}={v}" for k, v in _extra_fields(record).items())
        parts = [f"{head} | {pairs}" if pairs else head]
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return "\n".join(parts)


_FORMATTERS: dict[LogFormat, Callable[[], logging.Formatter]] = {
    LogFormat.SIMPLE: lambda: logging.Formatter("%(levelname)s: %(message)s"),
    LogFormat.DETAILED: lambda: logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s (%(filename)s:%(lineno)d) %(message)s"
    ),
    LogFormat.JSON: JsonFormatter,
    LogFormat.STRUCTURED: StructuredFormatter,
}


class CacheLogger:
    """
    Logger shared by every cache in the process.

    Wraps a stdlib logger named ``contentcache`` with a console handler on
    stderr and an optional rotating file handler. Keyword arguments passed to
    the log methods become record attributes, which the JSON and structured
    formatters render.
    """

    def __init__(
        self,
        name: str = "contentcache",
        level: LogLevel = LogLevel.WARNING,
        format_type: LogFormat = LogFormat.SIMPLE,
        log_file: Path | None = None,
        max_file_size: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        enable_console: bool = True,
        enable_file: bool = False,
    ):
        self.name = name
        self.format_type = format_type
        self.log_file = log_file

        self.logger = logging.getLogger(name)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        if enable_console:
            self._attach(logging.StreamHandler(sys.stderr))
        if enable_file and log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._attach(
                logging.handlers.RotatingFileHandler(
                    log_file, maxBytes=max_file_size, backupCount=backup_count, encoding="utf-8"
                )
            )
        self.set_level(level)

    def _attach(self, handler: logging.Handler) -> None:
        handler.setFormatter(self._get_formatter())
        self.logger.addHandler(handler)

    def _get_formatter(self) -> logging.Formatter:
        return _FORMATTERS.get(self.format_type, _FORMATTERS[LogFormat.SIMPLE])()

    def set_level(self, level: LogLevel) -> None:
        """Apply ``level`` to the logger and all of its handlers."""
        self.level = level
        self.logger.setLevel(level.numeric)
        for handler in self.logger.handlers:
            handler.setLevel(level.numeric)

    def _log(self, level: int, message: str, **fields: Any) -> None:
        self.logger.log(level, message, extra=fields)

    debug = partialmethod(_log, logging.DEBUG)
    info = partialmethod(_log, logging.INFO)
    warning = partialmethod(_log, logging.WARNING)
    error = partialmethod(_log, logging.ERROR)
    critical = partialmethod(_log, logging.CRITICAL)

    def exception(self, message: str, **fields: Any) -> None:
        self.logger.error(message, exc_info=True, extra=fields)

    # Cache-specific records

    def log_eviction(self, cache: str, key: str, reason: str, **fields: Any) -> None:
        self.debug(
            f"[{cache}] evicted {key} ({reason})",
            operation="evict", cache=cache, key=key, reason=reason, **fields,
        )

    def log_invalidation(self, cache: str, target: str, count: int, **fields: Any) -> None:
        self.debug(
            f"[{cache}] invalidated {count} entries for {target}",
            operation="invalidate", cache=cache, target=target, count=count, **fields,
        )

    def log_skip(self, cache: str, key: str, size_bytes: int, limit: int, **fields: Any) -> None:
        """An item that was served but not stored because it is too large."""
        self.debug(
            f"[{cache}] not caching {key}: {size_bytes} bytes exceeds {limit}",
            operation="skip", cache=cache, key=key, size_bytes=size_bytes, limit=limit, **fields,
        )

    def log_recovered_error(self, cache: str, operation: str, error: str, **fields: Any) -> None:
        """An internal failure that the cache turned into a miss."""
        self.warning(
            f"[{cache}] recovered from error during {operation}: {error}",
            operation=operation, cache=cache, error=error, **fields,
        )


_global_logger: CacheLogger | None = None


def get_logger() -> CacheLogger:
    """Return the process-wide logger, creating it on first use."""
    global _global_logger
    if _global_logger is None:
        _global_logger = CacheLogger()
    return _global_logger


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: LogFormat = LogFormat.SIMPLE,
    log_file: Path | None = None,
    enable_console: bool = True,
    enable_file: bool = False,
    **kwargs: Any,
) -> CacheLogger:
    """Replace the process-wide logger."""
    global _global_logger
    _global_logger = CacheLogger(
        level=level,
        format_type=format_type,
        log_file=log_file,
        enable_console=enable_console,
        enable_file=enable_file,
        **kwargs,
    )
    return _global_logger


def disable_logging() -> None:
    get_logger().logger.setLevel(_OFF)


def enable_debug_logging() -> None:
    get_logger().set_level(LogLevel.DEBUG)
