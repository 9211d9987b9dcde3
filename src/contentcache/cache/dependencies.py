"""
Resource dependency tracking for cache invalidation.

This module records which cache keys were derived from which resources, so
that a change to one resource can invalidate every key built from it.

Classes:
    DependencyTracker: Many-to-many resource <-> cache key edges

Features:
    - Thread-safe dependency tracking
    - Forward (resource -> keys) and reverse (key -> resources) lookup
    - Edges are only created by explicit registration, never inferred
    - Automatic cleanup of empty resource entries
"""

from __future__ import annotations

import builtins
import threading
from collections.abc import Iterable
from typing import Set


class DependencyTracker:
    """
    Tracks resource dependencies for cache entries.

    This class manages the mapping between resources (usually file paths)
    and the cache keys whose values were derived from them.
    """

    def __init__(self) -> None:
        # resource -> set of cache_keys that depend on it
        self._resource_dependents: dict[str, set[str]] = {}
        # cache_key -> set of resources it depends on
        self._key_resources: dict[str, set[str]] = {}
        self._dependency_lock = threading.RLock()

    def add_dependencies(self, cache_key: str, resource_ids: Iterable[str]) -> None:
        """
        Add resource dependencies for a cache key.

        Args:
            cache_key: The cache key that depends on the resources
            resource_ids: Resources the cached value was derived from
        """
        with self._dependency_lock:
            key_deps = self._key_resources.setdefault(cache_key, set())
            for resource_id in resource_ids:
                self._resource_dependents.setdefault(resource_id, set()).add(cache_key)
                key_deps.add(resource_id)
            if not key_deps:
                del self._key_resources[cache_key]

    def remove_dependencies(self, cache_key: str) -> None:
        """
        Remove all resource dependencies for a cache key.

        Args:
            cache_key: The cache key to remove dependencies for
        """
        with self._dependency_lock:
            resources = self._key_resources.pop(cache_key, set())
            for resource_id in resources:
                keys = self._resource_dependents.get(resource_id)
                if keys is None:
                    continue
                keys.discard(cache_key)
                if not keys:
                    del self._resource_dependents[resource_id]

    def get_dependent_keys(self, resource_id: str) -> Set[str]:
        """
        Get all cache keys that depend on a specific resource.

        Returns:
            A copy of the dependent key set
        """
        with self._dependency_lock:
            return self._resource_dependents.get(resource_id, set()).copy()

    def get_resources(self, cache_key: str) -> Set[str]:
        """Resources registered for ``cache_key``."""
        with self._dependency_lock:
            return self._key_resources.get(cache_key, set()).copy()

    def pop_dependents(self, resource_id: str) -> Set[str]:
        """Remove the resource and return the keys that depended on it."""
        with self._dependency_lock:
            keys = self._resource_dependents.pop(resource_id, set())
            for key in keys:
                resources = self._key_resources.get(key)
                if resources is not None:
                    resources.discard(resource_id)
                    if not resources:
                        del self._key_resources[key]
            return keys

    def get_dependency_count(self) -> int:
        """Number of resources being tracked."""
        with self._dependency_lock:
            return len(self._resource_dependents)

    def get_edge_count(self) -> int:
        with self._dependency_lock:
            return sum(len(keys) for keys in self._resource_dependents.values())

    def get_tracked_key_count(self) -> int:
        with self._dependency_lock:
            return len(self._key_resources)

    def get_resources_with_dependents(self) -> builtins.set[str]:
        """All resources that have cache keys depending on them."""
        with self._dependency_lock:
            return set(self._resource_dependents.keys())

    def clear_all_dependencies(self) -> None:
        """Clear all dependencies."""
        with self._dependency_lock:
            self._resource_dependents.clear()
            self._key_resources.clear()

    def export_edges(self) -> dict[str, list[str]]:
        """Resource -> sorted dependent keys, for persistence."""
        with self._dependency_lock:
            return {res: sorted(keys) for res, keys in self._resource_dependents.items()}

    def import_edges(self, edges: dict[str, Iterable[str]]) -> None:
        """Merge resource -> keys edges produced by :meth:`export_edges`."""
        with self._dependency_lock:
            for resource_id, keys in edges.items():
                for key in keys:
                    self._resource_dependents.setdefault(resource_id, set()).add(key)
                    self._key_resources.setdefault(key, set()).add(resource_id)
