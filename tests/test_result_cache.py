"""Tests for result_cache.py — FIFO memory tier, TTLs and the persisted mirror."""

from __future__ import annotations

import threading

import pytest

from result_cache import ResultCache


@pytest.fixture
def cache(frozen_clock):
    return ResultCache("details", capacity=3, long_ttl=100, short_ttl=10, clock=frozen_clock)


class TestResultCache:
    def test_put_and_get(self, cache):
        cache.put("cat", {"word": "cat"})
        entry = cache.get("cat")
        assert entry.payload == {"word": "cat"}
        assert entry.is_degraded is False

    def test_missing_key(self, cache):
        assert cache.get("dog") is None

    def test_keys_are_versioned_and_scoped_by_kind(self, frozen_clock):
        details = ResultCache("details", version="v2", clock=frozen_clock)
        summary = ResultCache("summary", version="v2", clock=frozen_clock)
        details.put("cat", "d")
        summary.put("cat", "s")
        assert details.get("cat").key == "v2:details:cat"
        assert summary.get("cat").payload == "s"

    def test_genuine_entry_lives_for_long_ttl(self, cache, frozen_clock):
        cache.put("cat", "fresh")
        frozen_clock.advance(99)
        assert cache.get("cat") is not None
        frozen_clock.advance(1)
        assert cache.get("cat") is None

    def test_degraded_entry_lives_for_short_ttl(self, cache, frozen_clock):
        cache.put("cat", "placeholder", is_degraded=True)
        frozen_clock.advance(9)
        assert cache.get("cat").is_degraded is True
        frozen_clock.advance(1)
        assert cache.get("cat") is None

    def test_expired_entry_is_removed_on_read(self, cache, frozen_clock):
        cache.put("cat", "x", is_degraded=True)
        frozen_clock.advance(11)
        cache.get("cat")
        assert len(cache) == 0

    def test_fifo_evicts_oldest_insertion(self, cache):
        for word in ("a", "b", "c"):
            cache.put(word, word)
        cache.get("a")  # reads do not refresh position
        cache.put("d", "d")
        assert cache.get("a") is None
        assert [cache.get(w).payload for w in ("b", "c", "d")] == ["b", "c", "d"]

    def test_capacity_plus_one_inserts_evict_first(self, frozen_clock):
        cache = ResultCache("details", capacity=100, clock=frozen_clock)
        for i in range(101):
            cache.put(f"w{i}", i)
        assert len(cache) == 100
        assert cache.get("w0") is None
        assert cache.get("w1").payload == 1

    def test_reinsert_moves_key_to_newest(self, cache):
        for word in ("a", "b", "c"):
            cache.put(word, word)
        cache.put("a", "again")
        cache.put("d", "d")
        assert cache.get("b") is None
        assert cache.get("a").payload == "again"

    def test_cleanup_removes_only_expired(self, cache, frozen_clock):
        cache.put("keep", 1)
        cache.put("drop", 2, is_degraded=True)
        frozen_clock.advance(20)
        assert cache.cleanup() == 1
        assert cache.get("keep") is not None

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            ResultCache("details", capacity=0)

    def test_concurrent_inserts_never_exceed_capacity(self, frozen_clock):
        cache = ResultCache("details", capacity=10, clock=frozen_clock)

        def writer(prefix):
            for i in range(200):
                cache.put(f"{prefix}{i}", i)

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 10


class TestResultCacheMirror:
    def test_put_writes_through_with_tier_ttl(self, frozen_clock, fake_redis):
        from cache_backend import RedisCache

        cache = ResultCache("details", long_ttl=100, short_ttl=10,
                            mirror=RedisCache(fake_redis), clock=frozen_clock)
        cache.put("cat", {"word": "cat"}, is_degraded=True)
        assert 0 < fake_redis.ttl("v1:details:cat") <= 10

    def test_memory_miss_falls_back_to_mirror(self, frozen_clock, fake_redis):
        from cache_backend import RedisCache

        mirror = RedisCache(fake_redis)
        writer = ResultCache("details", mirror=mirror, clock=frozen_clock)
        writer.put("cat", {"word": "cat"})

        reader = ResultCache("details", mirror=mirror, clock=frozen_clock)
        entry = reader.get("cat")
        assert entry.payload == {"word": "cat"}
        assert len(reader) == 1  # promoted into memory

    def test_stale_mirror_entry_is_ignored(self, frozen_clock, fake_redis):
        from cache_backend import RedisCache

        mirror = RedisCache(fake_redis)
        ResultCache("details", short_ttl=10, mirror=mirror, clock=frozen_clock).put(
            "cat", "placeholder", is_degraded=True)
        frozen_clock.advance(30)
        reader = ResultCache("details", short_ttl=10, mirror=mirror, clock=frozen_clock)
        assert reader.get("cat") is None
