"""
Configuration for contentcache.

This module defines the dataclasses that configure a single bounded cache
(`CacheConfig`) and the manager that composes the cache family
(`ManagerConfig`), plus a TOML loader.

Classes:
    CacheConfig: Limits, TTL and behaviour toggles for one cache instance
    ManagerConfig: Manager-wide settings and one CacheConfig per managed cache

Functions:
    load_config: Build a ManagerConfig from a TOML file

Example:
    Tuning the file content cache:
        >>> from contentcache.config import CacheConfig
        >>> config = CacheConfig.for_file_content().with_overrides(
        ...     ttl=30.0,
        ...     max_entries=200,
        ... )

    Loading from TOML:
        >>> # contentcache.toml
        >>> # [manager]
        >>> # memory_threshold_mb = 256
        >>> # [search_results]
        >>> # ttl = 60
        >>> config = load_config("contentcache.toml")
"""

from __future__ import annotations

import dataclasses
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .error_handling import ConfigurationError

MIB = 1024 * 1024


@dataclass(slots=True)
class CacheConfig:
    # Behaviour
    enabled: bool = True
    ttl: float = 300.0  # seconds; math.inf keeps entries until evicted or invalidated
    validate_on_read: bool = True  # compare mtime+size before serving a hit

    # Capacity (soft limits, see EvictionPolicy)
    max_entries: int = 1000
    max_item_size_bytes: int = 1 * MIB
    max_total_size_bytes: int = 100 * MIB

    # Eviction score weight per hit, in seconds of recency
    hit_weight: float = 10.0

    # Background sweep
    auto_cleanup: bool = True
    cleanup_interval: float = 60.0
    sweep_chunk_size: int = 500

    # Share one in-flight load between concurrent misses on the same key
    single_flight: bool = False

    def __post_init__(self) -> None:
        if self.ttl < 0:
            raise ConfigurationError(f"ttl must be >= 0, got {self.ttl}", {"ttl": self.ttl})
        if self.max_entries < 1:
            raise ConfigurationError(
                f"max_entries must be >= 1, got {self.max_entries}",
                {"max_entries": self.max_entries},
            )
        if self.max_item_size_bytes < 0 or self.max_total_size_bytes < 0:
            raise ConfigurationError(
                "size limits must be >= 0",
                {
                    "max_item_size_bytes": self.max_item_size_bytes,
                    "max_total_size_bytes": self.max_total_size_bytes,
                },
            )
        if self.hit_weight < 0:
            raise ConfigurationError(f"hit_weight must be >= 0, got {self.hit_weight}")
        if self.cleanup_interval <= 0:
            raise ConfigurationError(
                f"cleanup_interval must be > 0, got {self.cleanup_interval}"
            )
        if self.sweep_chunk_size < 1:
            raise ConfigurationError(
                f"sweep_chunk_size must be >= 1, got {self.sweep_chunk_size}"
            )

    def with_overrides(self, **overrides: Any) -> CacheConfig:
        """Return a validated copy with the given fields replaced."""
        unknown = set(overrides) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown cache options: {sorted(unknown)}")
        return dataclasses.replace(self, **overrides)

    @classmethod
    def for_file_content(cls) -> CacheConfig:
        return cls()

    @classmethod
    def for_embeddings(cls) -> CacheConfig:
        # Pure computation cache: nothing on disk to validate against
        return cls(ttl=3600.0, max_entries=5000, validate_on_read=False)

    @classmethod
    def for_search_results(cls) -> CacheConfig:
        return cls(
            ttl=120.0,
            max_entries=200,
            max_total_size_bytes=50 * MIB,
            validate_on_read=False,
            single_flight=True,
        )

    @classmethod
    def for_llm_responses(cls) -> CacheConfig:
        return cls(
            ttl=3600.0,
            max_entries=500,
            max_total_size_bytes=50 * MIB,
            validate_on_read=False,
        )


def _default_watch_patterns() -> list[str]:
    return ["**/*.py", "**/*.ts", "**/*.tsx", "**/*.js", "**/*.jsx", "**/*.json"]


def _default_ignore_patterns() -> list[str]:
    return ["**/.git/**", "**/node_modules/**", "**/__pycache__/**", "**/.venv/**", "**/dist/**"]


@dataclass(slots=True)
class ManagerConfig:
    enabled: bool = True

    # Memory pressure
    enable_memory_pressure_handling: bool = True
    memory_threshold_mb: float = 512.0
    pressure_shrink_fraction: float = 0.25

    # Metrics sampling
    enable_metrics: bool = True
    metrics_interval: float = 60.0
    metrics_history_size: int = 60

    # File watching
    enable_file_watching: bool = False
    file_watch_debounce: float = 0.3
    watch_patterns: list[str] = field(default_factory=_default_watch_patterns)
    ignore_patterns: list[str] = field(default_factory=_default_ignore_patterns)

    # Dependencies
    enable_dependency_tracking: bool = True

    # Persistence
    auto_persist: bool = False
    persist_dir: Path = field(default_factory=lambda: Path(".contentcache"))

    # Per-cache settings
    file_content: CacheConfig = field(default_factory=CacheConfig.for_file_content)
    embedding: CacheConfig = field(default_factory=CacheConfig.for_embeddings)
    search_results: CacheConfig = field(default_factory=CacheConfig.for_search_results)
    llm_response: CacheConfig = field(default_factory=CacheConfig.for_llm_responses)

    def __post_init__(self) -> None:
        if self.memory_threshold_mb <= 0:
            raise ConfigurationError(
                f"memory_threshold_mb must be > 0, got {self.memory_threshold_mb}"
            )
        if not 0 < self.pressure_shrink_fraction <= 1:
            raise ConfigurationError(
                f"pressure_shrink_fraction must be in (0, 1], got {self.pressure_shrink_fraction}"
            )
        if self.metrics_interval <= 0:
            raise ConfigurationError(f"metrics_interval must be > 0, got {self.metrics_interval}")
        if self.file_watch_debounce < 0:
            raise ConfigurationError(
                f"file_watch_debounce must be >= 0, got {self.file_watch_debounce}"
            )
        self.persist_dir = Path(self.persist_dir)


_CACHE_SECTIONS = ("file_content", "embedding", "search_results", "llm_response")


_SECTION_FACTORIES = {
    "file_content": "for_file_content",
    "embedding": "for_embeddings",
    "search_results": "for_search_results",
    "llm_response": "for_llm_responses",
}


def _build_cache_config(section: str, values: dict[str, Any]) -> CacheConfig:
    base: CacheConfig = getattr(CacheConfig, _SECTION_FACTORIES[section])()
    return base.with_overrides(**values)


def config_from_dict(data: dict[str, Any]) -> ManagerConfig:
    """Build a ManagerConfig from a parsed mapping (e.g. TOML)."""
    unknown_sections = set(data) - {"manager", *_CACHE_SECTIONS}
    if unknown_sections:
        raise ConfigurationError(f"Unknown config sections: {sorted(unknown_sections)}")

    manager_values = dict(data.get("manager", {}))
    manager_fields = {f.name for f in dataclasses.fields(ManagerConfig)} - set(_CACHE_SECTIONS)
    unknown = set(manager_values) - manager_fields
    if unknown:
        raise ConfigurationError(f"Unknown manager options: {sorted(unknown)}")

    for section in _CACHE_SECTIONS:
        if section in data:
            manager_values[section] = _build_cache_config(section, dict(data[section]))

    return ManagerConfig(**manager_values)


def load_config(path: Path | str) -> ManagerConfig:
    """Load a ManagerConfig from a TOML file."""
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e

    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

    return config_from_dict(data)
