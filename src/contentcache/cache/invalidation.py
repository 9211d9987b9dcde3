"""
Invalidation routing for a content store.

Supports single keys, regular expressions over keys, directory prefixes and
resource dependencies. Dependencies fan out exactly one level: invalidating a
resource removes the resource's own entry and the keys registered as derived
from it, but not keys derived from those keys.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

import regex as regex_mod  # better regex engine

from ..logging_config import get_logger
from ..utils import key_under_prefix
from .dependencies import DependencyTracker


class _RemovableStore(Protocol):
    name: str

    def keys(self) -> list[str]: ...

    def _remove_entries(self, keys: Iterable[str], reason: str) -> int: ...


def compile_pattern(pattern: Any) -> Any:
    """Accept a pattern string or an already compiled ``re``/``regex`` pattern."""
    if isinstance(pattern, str):
        return regex_mod.compile(pattern)
    if not hasattr(pattern, "search"):
        raise TypeError(f"Expected a pattern string or compiled pattern, got {type(pattern)!r}")
    return pattern


class InvalidationRouter:
    """Translates invalidation requests into key removals on a store."""

    def __init__(self, store: _RemovableStore, dependencies: DependencyTracker):
        self.store = store
        self.dependencies = dependencies
        self.logger = get_logger()

    def invalidate_key(self, key: str) -> bool:
        """Remove one entry; True if it existed."""
        return self.store._remove_entries([key], reason="invalidate") > 0

    def invalidate_pattern(self, pattern: Any) -> int:
        """Remove every key the pattern matches anywhere (search semantics)."""
        compiled = compile_pattern(pattern)
        targets = [key for key in self.store.keys() if compiled.search(key)]
        count = self.store._remove_entries(targets, reason="pattern")
        self.logger.log_invalidation(self.store.name, f"pattern {compiled.pattern!r}", count)
        return count

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key equal to or under a directory/namespace prefix."""
        targets = [key for key in self.store.keys() if key_under_prefix(key, prefix)]
        count = self.store._remove_entries(targets, reason="prefix")
        self.logger.log_invalidation(self.store.name, f"prefix {prefix}", count)
        return count

    def register_dependency(self, dependent_key: str, resource_ids: Iterable[str]) -> None:
        """Record that ``dependent_key``'s value was derived from ``resource_ids``."""
        self.dependencies.add_dependencies(dependent_key, resource_ids)

    def unregister_dependency(self, dependent_key: str) -> None:
        self.dependencies.remove_dependencies(dependent_key)

    def invalidate_for_resource(self, resource_id: str) -> int:
        """Remove the resource's own entry plus its direct dependents."""
        targets = {resource_id}
        targets.update(self.dependencies.pop_dependents(resource_id))
        count = self.store._remove_entries(targets, reason="resource")
        if count:
            self.logger.log_invalidation(self.store.name, f"resource {resource_id}", count)
        return count
