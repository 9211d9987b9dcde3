"""Tests for contentcache.logging_config module."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from contentcache import logging_config
from contentcache.logging_config import (
    CacheLogger,
    JsonFormatter,
    LogFormat,
    LogLevel,
    StructuredFormatter,
    configure_logging,
    disable_logging,
    enable_debug_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def _restore_logger():
    yield
    configure_logging(level=LogLevel.WARNING)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("contentcache", logging.INFO, __file__, 10, "evicted %s", ("k",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCacheLogger:
    """Tests for CacheLogger."""

    def test_defaults(self):
        logger = CacheLogger(name="contentcache.test")
        assert logger.level == LogLevel.WARNING
        assert logger.logger.level == logging.WARNING
        assert len(logger.logger.handlers) == 1

    def test_file_handler(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "cache.log"
        logger = CacheLogger(
            name="contentcache.filetest",
            level=LogLevel.DEBUG,
            log_file=log_file,
            enable_console=False,
            enable_file=True,
        )
        logger.log_eviction("files", "/a.py", "capacity")
        for handler in logger.logger.handlers:
            handler.flush()
        assert "evicted /a.py (capacity)" in log_file.read_text()

    def test_domain_helpers_pass_extra_fields(self, caplog):
        logger = CacheLogger(name="contentcache.extra", level=LogLevel.DEBUG, enable_console=False)
        logger.logger.propagate = True
        with caplog.at_level(logging.DEBUG, logger="contentcache.extra"):
            logger.log_invalidation("search", "file /a.py", 3)
            logger.log_skip("files", "/big.bin", 2048, 1024)
            logger.log_recovered_error("files", "validate", "gone")

        invalidation, skip, recovered = caplog.records
        assert invalidation.count == 3
        assert skip.size_bytes == 2048
        assert recovered.levelno == logging.WARNING
        assert recovered.operation == "validate"


class TestFormatters:
    def test_json_formatter_includes_extra(self):
        output = json.loads(JsonFormatter().format(_record(cache="files", reason="expired")))
        assert output["message"] == "evicted k"
        assert output["cache"] == "files"
        assert output["reason"] == "expired"
        assert output["level"] == "INFO"

    def test_structured_formatter(self):
        line = StructuredFormatter().format(_record(cache="files"))
        assert "[INFO] contentcache: evicted k" in line
        assert "cache=files" in line

    @pytest.mark.parametrize("fmt", list(LogFormat))
    def test_every_format_has_a_formatter(self, fmt):
        logger = CacheLogger(name="contentcache.fmt", format_type=fmt)
        assert isinstance(logger._get_formatter(), logging.Formatter)


class TestGlobalLogger:
    def test_get_logger_is_shared(self):
        assert get_logger() is get_logger()

    def test_configure_replaces_instance(self):
        before = get_logger()
        after = configure_logging(level=LogLevel.ERROR, format_type=LogFormat.JSON)
        assert after is not before
        assert get_logger() is after
        assert after.logger.level == logging.ERROR

    def test_disable_and_enable_debug(self):
        configure_logging(level=LogLevel.INFO)
        disable_logging()
        assert get_logger().logger.level > logging.CRITICAL
        enable_debug_logging()
        assert get_logger().logger.level == logging.DEBUG

    def test_disable_before_first_use(self, monkeypatch):
        monkeypatch.setattr(logging_config, "_global_logger", None)
        disable_logging()
        assert logging_config._global_logger is not None
        assert logging.getLogger("contentcache").level > logging.CRITICAL

    def test_enable_debug_before_first_use(self, monkeypatch):
        monkeypatch.setattr(logging_config, "_global_logger", None)
        enable_debug_logging()
        assert get_logger().logger.level == logging.DEBUG
