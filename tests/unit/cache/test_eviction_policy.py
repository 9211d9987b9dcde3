"""Tests for contentcache.cache.eviction module."""

from __future__ import annotations

from contentcache.cache import CacheEntry, EvictionPolicy


def _entry(key: str, last_accessed: float, hits: int = 0) -> CacheEntry:
    return CacheEntry(
        key=key,
        value="v",
        content_hash="h",
        created_at=0.0,
        expires_at=float("inf"),
        last_accessed=last_accessed,
        size_bytes=1,
        hit_count=hits,
    )


class TestEvictionPolicy:
    """Tests for EvictionPolicy."""

    def test_score_weights_hits(self):
        policy = EvictionPolicy(10, 100, hit_weight=10.0)
        assert policy.score(_entry("a", 100.0, hits=3)) == 130.0

    def test_empty_mapping_has_no_victim(self):
        assert EvictionPolicy(10, 100).select_victim({}) is None

    def test_least_recent_unread_entry_goes_first(self):
        policy = EvictionPolicy(10, 100)
        entries = {k: _entry(k, t) for k, t in (("a", 5.0), ("b", 1.0), ("c", 3.0))}
        assert policy.select_victim(entries) == "b"

    def test_hits_outweigh_recency(self):
        policy = EvictionPolicy(10, 100, hit_weight=10.0)
        entries = {
            "popular": _entry("popular", 0.0, hits=2),
            "recent": _entry("recent", 15.0),
        }
        assert policy.select_victim(entries) == "recent"

    def test_zero_weight_is_plain_lru(self):
        policy = EvictionPolicy(10, 100, hit_weight=0.0)
        entries = {
            "popular": _entry("popular", 0.0, hits=50),
            "recent": _entry("recent", 1.0),
        }
        assert policy.select_victim(entries) == "popular"

    def test_equal_score_prefers_fewer_hits(self):
        policy = EvictionPolicy(10, 100, hit_weight=10.0)
        entries = {
            "read_once": _entry("read_once", 10.0, hits=1),
            "unread": _entry("unread", 20.0),
        }
        assert policy.select_victim(entries) == "unread"

    def test_exact_tie_keeps_insertion_order(self):
        policy = EvictionPolicy(10, 100)
        entries = {k: _entry(k, 1.0) for k in ("first", "second", "third")}
        assert policy.select_victim(entries) == "first"

    def test_limits(self):
        policy = EvictionPolicy(max_entries=2, max_total_size_bytes=10)
        assert not policy.over_entry_limit(1)
        assert policy.over_entry_limit(2)
        assert not policy.over_size_limit(6, 4)
        assert policy.over_size_limit(6, 5)
