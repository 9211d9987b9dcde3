"""Tests for contentcache.config module."""

from __future__ import annotations

from pathlib import Path

import pytest

from contentcache.config import (
    MIB,
    CacheConfig,
    ManagerConfig,
    config_from_dict,
    load_config,
)
from contentcache.error_handling import ConfigurationError


class TestCacheConfig:
    """Tests for CacheConfig."""

    def test_defaults(self):
        config = CacheConfig()
        assert config.enabled is True
        assert config.ttl == 300.0
        assert config.max_entries == 1000
        assert config.max_item_size_bytes == 1 * MIB
        assert config.max_total_size_bytes == 100 * MIB
        assert config.validate_on_read is True
        assert config.single_flight is False

    @pytest.mark.parametrize(
        "field, value",
        [
            ("ttl", -1),
            ("max_entries", 0),
            ("max_item_size_bytes", -5),
            ("hit_weight", -0.1),
            ("cleanup_interval", 0),
            ("sweep_chunk_size", 0),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ConfigurationError):
            CacheConfig(**{field: value})

    def test_with_overrides(self):
        base = CacheConfig()
        tuned = base.with_overrides(ttl=0, max_entries=5)
        assert (tuned.ttl, tuned.max_entries) == (0, 5)
        assert base.ttl == 300.0

    def test_with_overrides_validates(self):
        with pytest.raises(ConfigurationError, match="Unknown cache options"):
            CacheConfig().with_overrides(ttl_ms=5)
        with pytest.raises(ConfigurationError):
            CacheConfig().with_overrides(ttl=-1)

    def test_variants(self):
        assert CacheConfig.for_embeddings().validate_on_read is False
        assert CacheConfig.for_search_results().single_flight is True
        assert CacheConfig.for_search_results().max_entries == 200
        assert CacheConfig.for_llm_responses().ttl == 3600.0

    def test_configuration_error_carries_context(self):
        with pytest.raises(ConfigurationError) as excinfo:
            CacheConfig(ttl=-2)
        assert excinfo.value.context == {"ttl": -2}
        assert excinfo.value.suggestions


class TestManagerConfig:
    """Tests for ManagerConfig."""

    def test_defaults(self):
        config = ManagerConfig()
        assert config.enable_file_watching is False
        assert config.auto_persist is False
        assert config.persist_dir == Path(".contentcache")
        assert "**/node_modules/**" in config.ignore_patterns
        assert config.embedding.max_entries == 5000

    def test_persist_dir_is_coerced(self):
        assert ManagerConfig(persist_dir="state").persist_dir == Path("state")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"memory_threshold_mb": 0},
            {"pressure_shrink_fraction": 0},
            {"pressure_shrink_fraction": 1.5},
            {"metrics_interval": -1},
            {"file_watch_debounce": -0.1},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            ManagerConfig(**kwargs)


class TestLoading:
    """config_from_dict and load_config."""

    def test_sections_override_their_variant(self):
        config = config_from_dict(
            {"manager": {"metrics_interval": 5}, "search_results": {"ttl": 30}}
        )
        assert config.metrics_interval == 5
        assert config.search_results.ttl == 30
        assert config.search_results.single_flight is True
        assert config.file_content.ttl == 300.0

    def test_unknown_section(self):
        with pytest.raises(ConfigurationError, match="sections"):
            config_from_dict({"redis": {}})

    def test_unknown_manager_option(self):
        with pytest.raises(ConfigurationError, match="manager options"):
            config_from_dict({"manager": {"cluster": True}})

    def test_cache_section_cannot_be_set_through_manager(self):
        with pytest.raises(ConfigurationError):
            config_from_dict({"manager": {"embedding": {}}})

    def test_load_toml(self, tmp_path: Path):
        path = tmp_path / "contentcache.toml"
        path.write_text(
            "[manager]\n"
            "memory_threshold_mb = 256\n"
            "watch_patterns = ['**/*.rs']\n"
            "\n"
            "[file_content]\n"
            "ttl = 0\n"
            "validate_on_read = false\n"
        )
        config = load_config(path)
        assert config.memory_threshold_mb == 256
        assert config.watch_patterns == ["**/*.rs"]
        assert config.file_content.ttl == 0
        assert config.file_content.validate_on_read is False

    def test_load_invalid_toml(self, tmp_path: Path):
        path = tmp_path / "broken.toml"
        path.write_text("[manager\n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_config(path)

    def test_load_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_config(tmp_path / "missing.toml")
