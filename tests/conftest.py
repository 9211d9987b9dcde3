"""
Shared test fixtures for contentcache tests.

Provides a controllable clock, a store factory that disposes everything it
built, a small on-disk project tree and singleton resets between tests.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from contentcache.cache import ContentStore
from contentcache.caches import (
    reset_embedding_cache,
    reset_file_content_cache,
    reset_llm_response_cache,
    reset_search_results_cache,
)
from contentcache.config import CacheConfig
from contentcache.manager import reset_cache_manager

SAMPLE_FILES = {
    "src/app.py": "def main():\n    return 'ok'\n",
    "src/util.py": "def helper(x):\n    return x * 2\n",
    "src/nested/deep.ts": "export const answer = 42;\n",
    "srcOther/c.ts": "export const other = true;\n",
    "README.md": "# sample project\n",
    "node_modules/pkg/index.js": "module.exports = {};\n",
}


class FakeClock:
    """Manually advanced time source, in seconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def bump_mtime(path: Path, seconds: float = 5.0) -> None:
    """Move a file's mtime forward so fingerprint checks notice the edit."""
    st = path.stat()
    os.utime(path, (st.st_atime, st.st_mtime + seconds))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def touch():
    return bump_mtime


@pytest.fixture
def make_store(clock):
    """Factory for stores on the fake clock with the background sweep off."""
    created: list[ContentStore] = []

    def _make(**overrides) -> ContentStore:
        kwargs = {
            key: overrides.pop(key)
            for key in ("fingerprint_probe", "size_estimator", "hasher", "name")
            if key in overrides
        }
        config = CacheConfig(auto_cleanup=False).with_overrides(**overrides)
        store = ContentStore(config, clock=clock, **kwargs)
        created.append(store)
        return store

    yield _make
    for store in created:
        store.dispose()


@pytest.fixture
def temp_project_dir(tmp_path: Path) -> Path:
    """A small source tree with a sibling directory sharing a name prefix."""
    for rel, content in SAMPLE_FILES.items():
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return tmp_path


@pytest.fixture(autouse=True)
def _reset_singletons():
    yield
    reset_cache_manager()
    reset_file_content_cache()
    reset_embedding_cache()
    reset_search_results_cache()
    reset_llm_response_cache()


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests that may take longer to run")
    config.addinivalue_line("markers", "cli: CLI-related tests")
    config.addinivalue_line("markers", "cache: Cache-related tests")
