"""Tests for cache.py -- TTL expiry, LRU eviction and load coalescing."""

import threading
import time

import pytest

from shelfscan.cache import LookupCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestLookupCache:
    def test_get_set(self):
        cache = LookupCache()
        cache.set("k", "v")
        assert cache.get("k") == "v"
        assert "k" in cache
        assert len(cache) == 1

    def test_missing_returns_default(self):
        cache = LookupCache()
        assert cache.get("nope") is None
        assert cache.get("nope", default=False) is False
        assert "nope" not in cache

    def test_none_is_a_cached_value(self):
        cache = LookupCache()
        cache.set("miss", None)
        assert "miss" in cache
        assert cache.get("miss", default=False) is None

    def test_entries_expire(self):
        clock = FakeClock()
        cache = LookupCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_lru_eviction(self):
        cache = LookupCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache

    def test_clear(self):
        cache = LookupCache()
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    def test_instances_are_independent(self):
        one, two = LookupCache(), LookupCache()
        one.set("a", 1)
        assert "a" not in two


def _in_thread(fn, out):
    def target():
        try:
            out.append(fn())
        except Exception as e:
            out.append(e)

    thread = threading.Thread(target=target)
    thread.start()
    return thread


class TestGetOrLoad:
    def test_loads_once(self):
        cache = LookupCache()
        calls = []

        def loader():
            calls.append(1)
            return "v"

        assert cache.get_or_load("k", loader) == "v"
        assert cache.get_or_load("k", loader) == "v"
        assert len(calls) == 1

    def test_none_result_cached(self):
        cache = LookupCache()
        assert cache.get_or_load("miss", lambda: None) is None
        assert "miss" in cache

    def test_loader_error_not_cached(self):
        cache = LookupCache()

        def boom():
            raise ValueError("down")

        with pytest.raises(ValueError):
            cache.get_or_load("k", boom)
        assert "k" not in cache
        assert cache.get_or_load("k", lambda: "v") == "v"

    def test_concurrent_misses_share_one_load(self):
        cache = LookupCache()
        started, release = threading.Event(), threading.Event()
        calls, results = [], []

        def loader():
            calls.append(1)
            started.set()
            release.wait(5)
            return "v"

        first = _in_thread(lambda: cache.get_or_load("k", loader), results)
        assert started.wait(5)
        second = _in_thread(lambda: cache.get_or_load("k", loader), results)
        time.sleep(0.05)
        release.set()
        first.join(5)
        second.join(5)

        assert results == ["v", "v"]
        assert len(calls) == 1

    def test_load_error_reaches_waiters(self):
        cache = LookupCache()
        started, release = threading.Event(), threading.Event()
        results = []

        def loader():
            started.set()
            release.wait(5)
            raise ValueError("down")

        first = _in_thread(lambda: cache.get_or_load("k", loader), results)
        assert started.wait(5)
        second = _in_thread(lambda: cache.get_or_load("k", loader), results)
        time.sleep(0.05)
        release.set()
        first.join(5)
        second.join(5)

        assert len(results) == 2
        assert all(isinstance(r, ValueError) for r in results)
        assert "k" not in cache
