"""Tests for contentcache.cache.staleness module."""

from __future__ import annotations

from pathlib import Path

import pytest

from contentcache.cache import CacheEntry, Fingerprint, StalenessValidator, stat_fingerprint
from contentcache.error_handling import ErrorCategory, ErrorCollector
from contentcache.utils import hash_content


def _entry(key: str, value: str = "v", fingerprint: Fingerprint | None = None) -> CacheEntry:
    return CacheEntry(
        key=key,
        value=value,
        content_hash=hash_content(value),
        created_at=0.0,
        expires_at=float("inf"),
        last_accessed=0.0,
        size_bytes=len(value),
        fingerprint=fingerprint,
    )


class TestStatFingerprint:
    def test_matches_os_stat(self, tmp_path: Path):
        path = tmp_path / "f.txt"
        path.write_text("12345")
        fp = stat_fingerprint(path)
        assert fp.size == 5
        assert fp.mtime == path.stat().st_mtime

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            stat_fingerprint(tmp_path / "missing")


class TestStalenessValidator:
    """Tests for StalenessValidator."""

    @pytest.mark.asyncio
    async def test_unchanged_file_is_valid(self, tmp_path: Path):
        path = tmp_path / "f.txt"
        path.write_text("abc")
        validator = StalenessValidator(stat_fingerprint)
        assert await validator.is_valid(_entry(str(path), fingerprint=stat_fingerprint(path)))

    @pytest.mark.asyncio
    async def test_touched_file_is_stale(self, tmp_path: Path, touch):
        path = tmp_path / "f.txt"
        path.write_text("abc")
        entry = _entry(str(path), fingerprint=stat_fingerprint(path))
        touch(path)
        assert not await StalenessValidator(stat_fingerprint).is_valid(entry)

    @pytest.mark.asyncio
    async def test_probe_failure_is_stale_and_recorded(self, tmp_path: Path):
        errors = ErrorCollector()
        validator = StalenessValidator(stat_fingerprint, cache_name="files", errors=errors)
        entry = _entry(str(tmp_path / "gone"), fingerprint=Fingerprint(1.0, 1))

        assert not await validator.is_valid(entry)
        recorded = errors.get_errors_by_category(ErrorCategory.STALENESS)
        assert len(recorded) == 1
        assert recorded[0].key == entry.key

    @pytest.mark.asyncio
    async def test_async_probe(self):
        async def probe(key: str) -> Fingerprint:
            return Fingerprint(2.0, 2)

        validator = StalenessValidator(probe)
        assert await validator.is_valid(_entry("k", fingerprint=Fingerprint(2.0, 2)))
        assert not await validator.is_valid(_entry("k", fingerprint=Fingerprint(1.0, 2)))

    @pytest.mark.asyncio
    async def test_inline_sync_probe(self):
        validator = StalenessValidator(lambda key: Fingerprint(1.0, 1), offload_sync_probe=False)
        assert await validator.is_valid(_entry("k", fingerprint=Fingerprint(1.0, 1)))

    @pytest.mark.asyncio
    async def test_entry_without_fingerprint_is_valid(self):
        def probe(key: str) -> Fingerprint:
            raise AssertionError("not called")

        assert await StalenessValidator(probe).is_valid(_entry("k"))

    def test_has_changed_compares_content_hash(self):
        entry = _entry("k", value="same")
        assert not StalenessValidator.has_changed(entry, "same")
        assert StalenessValidator.has_changed(entry, "different")
