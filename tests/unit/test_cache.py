"""Tests for BuildCache — lookup, store, clear, concurrent access."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from slimroot.core.cache import BuildCache
from slimroot.models.cache import CacheKey


def _key(subject: str = "sha256:aa", config: str = "cfg", stage: str = "closure") -> CacheKey:
    return CacheKey(stage=stage, subject_hash=subject, config_hash=config)


class TestBuildCache:
    def test_get_missing_returns_none(self, cache: BuildCache):
        assert cache.get(_key()) is None
        assert cache.misses == 1

    def test_put_then_get(self, cache: BuildCache):
        cache.put(_key(), "closure-value")
        assert cache.get(_key()) == "closure-value"
        assert cache.hits == 1

    def test_keys_distinguish_config(self, cache: BuildCache):
        cache.put(_key(config="a"), 1)
        assert cache.get(_key(config="b")) is None

    def test_keys_distinguish_stage(self, cache: BuildCache):
        cache.put(_key(stage="closure"), 1)
        assert _key(stage="layer") not in cache

    def test_equal_keys_share_address(self):
        assert _key().address == _key().address
        assert _key().address.startswith("sha256:")

    def test_last_writer_wins(self, cache: BuildCache):
        cache.put(_key(), 1)
        cache.put(_key(), 2)
        assert cache.get(_key()) == 2
        assert len(cache) == 1

    def test_clear(self, cache: BuildCache):
        cache.put(_key(), 1)
        cache.clear()
        assert len(cache) == 0
        assert _key() not in cache

    def test_concurrent_writers(self, cache: BuildCache):
        def work(i: int) -> None:
            cache.put(_key(subject=f"sha256:{i % 10}"), i % 10)
            cache.get(_key(subject=f"sha256:{i % 10}"))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(work, range(200)))

        assert len(cache) == 10
        assert cache.hits + cache.misses == 200

    def test_separate_caches_share_nothing(self):
        a, b = BuildCache(), BuildCache()
        a.put(_key(), 1)
        assert b.get(_key()) is None
