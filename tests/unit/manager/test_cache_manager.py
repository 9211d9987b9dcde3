"""Tests for contentcache.manager module."""

from __future__ import annotations

import os
import time
from pathlib import Path

import orjson
import pytest

from contentcache.caches import CachedResponse
from contentcache.caches.embedding import embedding_key
from contentcache.config import CacheConfig, ManagerConfig
from contentcache.error_handling import PersistenceError
from contentcache.manager import (
    METRICS_FILE,
    STATE_FILE,
    CacheManager,
    get_cache_manager,
    initialize_cache_manager,
    reset_cache_manager,
)


def _manager_config(tmp_path: Path, **overrides) -> ManagerConfig:
    quiet = {"auto_cleanup": False}
    return ManagerConfig(
        persist_dir=tmp_path / "state",
        file_content=CacheConfig.for_file_content().with_overrides(**quiet),
        embedding=CacheConfig.for_embeddings().with_overrides(**quiet),
        search_results=CacheConfig.for_search_results().with_overrides(**quiet),
        llm_response=CacheConfig.for_llm_responses().with_overrides(**quiet),
        **overrides,
    )


@pytest.fixture
def make_manager(tmp_path, clock):
    created: list[CacheManager] = []

    def _make(*, use_clock: bool = True, **overrides) -> CacheManager:
        kwargs = {"clock": clock} if use_clock else {}
        manager = CacheManager(_manager_config(tmp_path, **overrides), **kwargs)
        created.append(manager)
        return manager

    yield _make
    for manager in created:
        manager.dispose()


class TestFileOperations:
    """File reads and file driven invalidation."""

    @pytest.mark.asyncio
    async def test_read_file_is_cached(self, make_manager, temp_project_dir: Path):
        manager = make_manager()
        path = temp_project_dir / "src" / "app.py"
        assert (await manager.read_file(path)).cached is False
        assert (await manager.read_file(path)).cached is True
        assert manager.get_file_hash(path) is not None
        assert not await manager.has_file_changed(path)

    @pytest.mark.asyncio
    async def test_disabled_manager_bypasses_caches(self, make_manager, temp_project_dir: Path):
        manager = make_manager(enabled=False)
        path = temp_project_dir / "README.md"
        assert (await manager.read_file(path)).cached is False
        assert (await manager.read_file(path)).cached is False
        assert len(manager.file_cache) == 0

        assert manager.set_embedding("t", [1.0]) is False
        assert manager.get_embedding("t") is None
        assert await manager.get_or_compute_embedding("t", lambda c: [2.0]) == [2.0]
        assert manager.set_search_results("q", "text", [1]) is False
        assert manager.get_search_results("q", "text") is None
        assert await manager.get_or_compute_search_results("q", "text", lambda: [3]) == ([3], False)

    @pytest.mark.asyncio
    async def test_invalidate_file_drops_content_and_searches(
        self, make_manager, temp_project_dir: Path
    ):
        manager = make_manager()
        path = temp_project_dir / "src" / "app.py"
        await manager.read_file(path)
        manager.set_search_results("main", "text", ["app.py:1"], affected_files=[path])

        assert manager.invalidate_file(path) == 2
        assert manager.get_search_results("main", "text") is None

    @pytest.mark.asyncio
    async def test_invalidate_for_file_fans_out(self, make_manager, temp_project_dir: Path):
        manager = make_manager()
        path = temp_project_dir / "src" / "util.py"
        await manager.read_file(path)
        manager.set_search_results("helper", "symbol", ["util.py:1"], affected_files=[str(path)])
        manager.set_embedding("def helper", [0.5], source=path)
        manager.set_embedding("unrelated chunk", [0.1])
        manager.register_dependency(embedding_key("unrelated chunk"), [path])

        assert manager.invalidate_for_file(path) == 4
        assert len(manager.embedding_cache) == 0
        assert manager.get_dependency_stats()["tracked_files"] == 0

    @pytest.mark.asyncio
    async def test_invalidate_for_directory(self, make_manager, temp_project_dir: Path):
        manager = make_manager()
        await manager.read_file(temp_project_dir / "src" / "app.py")
        await manager.read_file(temp_project_dir / "srcOther" / "c.ts")
        manager.set_search_results(
            "helper", "text", [1], affected_files=[temp_project_dir / "src" / "util.py"]
        )
        manager.set_search_results(
            "other", "text", [2], affected_files=[temp_project_dir / "srcOther" / "c.ts"]
        )

        assert manager.invalidate_for_directory(temp_project_dir / "src") == 2
        assert manager.file_cache.is_cached(temp_project_dir / "srcOther" / "c.ts")
        assert manager.get_search_results("other", "text") == [2]

    def test_dependency_tracking_can_be_disabled(self, make_manager):
        manager = make_manager(enable_dependency_tracking=False)
        manager.register_dependency("k", ["/a.py"])
        assert manager.get_dependency_stats()["tracked_files"] == 0

    def test_register_and_unregister_dependency(self, make_manager):
        manager = make_manager()
        manager.register_dependency("k1", ["/a.py", "/b.py"])
        manager.register_dependency("k2", ["/a.py"])
        assert manager.get_dependency_stats() == {
            "tracked_files": 2,
            "tracked_cache_keys": 2,
            "total_dependencies": 3,
        }
        manager.unregister_dependency("k1")
        assert manager.get_dependency_stats()["total_dependencies"] == 1


class TestInvalidationQueue:
    """Debounced invalidation for file events."""

    @pytest.mark.asyncio
    async def test_flush_processes_unique_paths(self, make_manager, temp_project_dir: Path):
        manager = make_manager(file_watch_debounce=60)
        path = temp_project_dir / "README.md"
        await manager.read_file(path)

        manager.queue_invalidation(path)
        manager.queue_invalidation(str(path))
        manager.queue_invalidation(temp_project_dir / "src" / "app.py")
        assert manager.pending_invalidations() == 2

        assert manager.flush_invalidations() == 2
        assert manager.pending_invalidations() == 0
        assert not manager.file_cache.is_cached(path)
        assert manager.flush_invalidations() == 0

    @pytest.mark.asyncio
    async def test_timer_flushes_after_quiet_period(self, make_manager, temp_project_dir: Path):
        manager = make_manager(file_watch_debounce=0.01)
        path = temp_project_dir / "README.md"
        await manager.read_file(path)

        manager.queue_invalidation(path)
        deadline = time.monotonic() + 5
        while manager.file_cache.is_cached(path) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert not manager.file_cache.is_cached(path)

    def test_dispose_drops_pending(self, make_manager):
        manager = make_manager(file_watch_debounce=60)
        manager.queue_invalidation("/a.py")
        manager.dispose()
        assert manager.pending_invalidations() == 0


class TestStatistics:
    """Combined statistics, metrics history and health."""

    @pytest.mark.asyncio
    async def test_overall_stats(self, make_manager, temp_project_dir: Path):
        manager = make_manager()
        path = temp_project_dir / "README.md"
        await manager.read_file(path)
        await manager.read_file(path)
        manager.set_embedding("chunk", [1.0, 2.0])
        manager.get_embedding("chunk")

        stats = manager.get_stats()
        overall = stats["overall"]
        assert set(stats) == {"file_content", "embedding", "search_results", "llm_response", "overall"}
        assert overall["total_entries"] == 2
        assert overall["total_hits"] == 2
        assert overall["total_misses"] == 1
        assert overall["hit_rate"] == pytest.approx(2 / 3)
        assert overall["estimated_time_saved_ms"] == 10 + 50
        assert overall["memory_usage_estimate"] == path.stat().st_size + 16
        assert stats["embedding"]["computations_saved"] == 1

    def test_llm_savings_reach_overall(self, make_manager):
        manager = make_manager()
        messages = [{"role": "user", "content": "Explain the hit weighted eviction score."}]
        response = CachedResponse(
            content="answer", model="m", prompt_tokens=800, completion_tokens=200
        )
        assert manager.set_llm_response(messages, response)
        assert manager.get_llm_response(messages, "m") is not None

        overall = manager.get_stats()["overall"]
        assert overall["estimated_cost_saved"] == pytest.approx(1000 / 1_000_000 * 3.0)
        assert overall["estimated_time_saved_ms"] == 2000

    @pytest.mark.asyncio
    async def test_search_pass_throughs(self, make_manager, temp_project_dir: Path):
        manager = make_manager()
        results, cached = await manager.get_or_compute_search_results(
            "needle", "text", lambda: ["hit"], affected_files=[temp_project_dir / "README.md"]
        )
        assert (results, cached) == (["hit"], False)
        assert manager.get_search_results("needle", "text") == ["hit"]
        assert manager.invalidate_for_file(temp_project_dir / "README.md") == 1

    @pytest.mark.asyncio
    async def test_embedding_pass_through_registers_source(self, make_manager, tmp_path: Path):
        manager = make_manager()
        source = tmp_path / "doc.md"
        vector = await manager.get_or_compute_embedding("text", lambda c: [1.0], source=source)
        assert vector == [1.0]
        assert manager.invalidate_for_file(source) == 1

    def test_format_stats(self, make_manager):
        text = make_manager().format_stats()
        assert "CACHE MANAGER STATISTICS" in text
        for title in (
            "LLM Response Cache Statistics",
            "File Content Cache Statistics",
            "Embedding Cache Statistics",
            "Search Results Cache Statistics",
        ):
            assert title in text

    def test_metrics_history_and_trend(self, make_manager, clock):
        manager = make_manager(metrics_history_size=2)
        manager.set_embedding("a", [1.0])
        for _ in range(3):
            assert manager.sample_metrics() == 1
            clock.advance(60)

        trend = manager.get_metrics_trend()
        assert len(trend["timestamps"]) == 2
        assert trend["entries"] == [1, 1]
        assert trend["timestamps"][1] - trend["timestamps"][0] == 60

    def test_memory_pressure_shrinks_every_cache(self, make_manager):
        manager = make_manager(pressure_shrink_fraction=0.25)
        for i in range(4):
            manager.set_embedding(f"chunk {i}", [float(i)])
        manager.set_search_results("q", "text", [1])

        assert manager.check_memory_pressure(memory_bytes=1) == 0
        evicted = manager.check_memory_pressure(memory_bytes=10**12)
        assert evicted == 2
        assert len(manager.embedding_cache) == 3
        assert len(manager.search_cache) == 0

    def test_memory_pressure_handling_can_be_disabled(self, make_manager):
        manager = make_manager(enable_memory_pressure_handling=False)
        manager.set_embedding("a", [1.0])
        assert manager.check_memory_pressure(memory_bytes=10**12) == 0

    def test_health_states(self, make_manager):
        manager = make_manager()
        assert manager.get_detailed_metrics()["health"] == {"status": "healthy", "issues": []}

        tight = make_manager(memory_threshold_mb=1e-9)
        tight.set_embedding("a", [1.0])
        assert tight.get_detailed_metrics()["health"]["status"] == "warning"

        for i in range(101):
            tight.get_embedding(f"missing {i}")
        health = tight.get_detailed_metrics()["health"]
        assert health["status"] == "critical"
        assert len(health["issues"]) == 2

    def test_detailed_metrics_sections(self, make_manager):
        metrics = make_manager().get_detailed_metrics()
        assert set(metrics) == {"current", "trend", "dependencies", "health"}


class TestPersistence:
    """State export, import and disk round trips."""

    def test_persist_and_restore(self, make_manager, tmp_path: Path):
        source = make_manager()
        source.register_dependency("k1", ["/a.py", "/b.py"])
        source.sample_metrics()
        assert source.persist_to_disk() is True
        assert (tmp_path / "state" / STATE_FILE).exists()
        assert (tmp_path / "state" / METRICS_FILE).exists()

        restored = make_manager()
        assert restored.restore_from_disk() is True
        assert restored.get_dependency_stats() == source.get_dependency_stats()
        assert len(restored.get_metrics_trend()["timestamps"]) == 1

    def test_restore_ignores_old_state(self, make_manager, clock):
        make_manager().persist_to_disk()
        clock.advance(2 * 24 * 60 * 60)
        assert make_manager().restore_from_disk() is False

    def test_restore_drops_old_metrics(self, make_manager, clock):
        source = make_manager()
        source.sample_metrics()
        clock.advance(2 * 60 * 60)
        source.persist_to_disk()

        restored = make_manager()
        assert restored.restore_from_disk() is True
        assert restored.get_metrics_trend()["timestamps"] == []

    def test_restore_without_state(self, make_manager, tmp_path: Path):
        assert make_manager().restore_from_disk(tmp_path / "nowhere") is False

    def test_restore_corrupt_state_is_recovered(self, make_manager, tmp_path: Path):
        state_dir = tmp_path / "state"
        state_dir.mkdir()
        (state_dir / STATE_FILE).write_text("{not json")
        manager = make_manager()
        assert manager.restore_from_disk() is False
        assert manager.errors.get_summary()["by_category"] == {"persistence": 1}

    def test_restore_malformed_state_is_recovered(self, make_manager, tmp_path: Path, clock):
        state_dir = tmp_path / "state"
        state_dir.mkdir()
        (state_dir / STATE_FILE).write_bytes(
            orjson.dumps({"timestamp": clock(), "dependencies": ["not", "a", "mapping"]})
        )
        manager = make_manager()
        assert manager.restore_from_disk() is False
        assert manager.errors.get_summary()["by_category"] == {"persistence": 1}

    def test_import_state_validates(self, make_manager):
        manager = make_manager()
        with pytest.raises(PersistenceError):
            manager.import_state({"dependencies": {"/a.py": "k1"}})
        manager.import_state({"dependencies": {"/a.py": ["k1"]}})
        assert manager.get_dependency_stats()["tracked_files"] == 1

    def test_export_state_shape(self, make_manager, clock):
        state = make_manager().export_state()
        assert state["timestamp"] == clock()
        assert set(state) == {"timestamp", "metrics", "dependencies"}

    def test_cleanup_old_cache_files(self, make_manager, tmp_path: Path):
        manager = make_manager(use_clock=False)
        base = tmp_path / "old-state"
        base.mkdir()
        old, fresh = base / "old.json", base / "fresh.json"
        old.write_text("{}")
        fresh.write_text("{}")
        week_ago = time.time() - 8 * 24 * 60 * 60
        os.utime(old, (week_ago, week_ago))

        assert manager.cleanup_old_cache_files(base, max_age_days=7) == 1
        assert not old.exists()
        assert fresh.exists()
        assert manager.cleanup_old_cache_files(tmp_path / "missing") == 0

    def test_auto_persist_on_dispose(self, make_manager, tmp_path: Path):
        manager = make_manager(auto_persist=True)
        manager.register_dependency("k", ["/a.py"])
        manager.dispose()
        assert (tmp_path / "state" / STATE_FILE).exists()


class TestLifecycle:
    """Initialization, disposal and the shared instance."""

    def test_clear_all(self, make_manager):
        manager = make_manager()
        manager.set_embedding("a", [1.0])
        manager.set_search_results("q", "text", [1])
        manager.clear_all()
        assert manager.get_stats()["overall"]["total_entries"] == 0

    def test_dispose_is_idempotent(self, make_manager):
        manager = make_manager()
        manager.initialize()
        manager.dispose()
        manager.dispose()
        assert manager.disposed
        assert all(store.disposed for store in manager.stores.values())

    def test_initialize_starts_metrics_and_watching(self, make_manager, temp_project_dir: Path):
        manager = make_manager(enable_file_watching=True, metrics_interval=3600)
        manager.initialize(watch_root=temp_project_dir)
        try:
            assert manager._metrics_worker is not None
            assert manager._metrics_worker.is_running()
            assert manager._watcher is not None
            assert manager._watcher.is_running()
        finally:
            manager.dispose()
        assert manager._watcher is None
        assert manager._metrics_worker is None

    def test_context_manager(self, tmp_path: Path):
        with CacheManager(_manager_config(tmp_path)) as manager:
            manager.set_embedding("a", [1.0])
        assert manager.disposed

    def test_shared_instance(self, tmp_path: Path):
        config = _manager_config(tmp_path, enable_metrics=False)
        manager = initialize_cache_manager(config)
        assert get_cache_manager() is manager

        reset_cache_manager()
        assert manager.disposed
        assert get_cache_manager(config) is not manager
        reset_cache_manager()
