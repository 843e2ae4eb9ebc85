"""
Tests for polynomial_gtm.cache.
"""

import threading
import time

import pytest

from polynomial_gtm import ModelCache


class TestModelCache:
    """Tests for get_or_create semantics."""

    def test_builds_once(self):
        """The factory runs only on the first request for a key."""
        cache = ModelCache()
        calls = []
        first = cache.get_or_create("k", lambda: calls.append(1) or object())
        second = cache.get_or_create("k", lambda: calls.append(1) or object())
        assert first is second
        assert len(calls) == 1
        assert "k" in cache and len(cache) == 1

    def test_failed_factory_not_cached(self):
        """Exceptions propagate and leave no entry behind."""
        cache = ModelCache()

        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            cache.get_or_create("k", boom)
        assert "k" not in cache
        assert cache.get_or_create("k", lambda: 42) == 42

    def test_concurrent_callers_share_one_build(self):
        """Concurrent requests for one key run the factory once."""
        cache = ModelCache()
        calls = []
        results = []

        def factory():
            calls.append(1)
            time.sleep(0.05)
            return object()

        def worker():
            results.append(cache.get_or_create("shared", factory))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    def test_clear(self):
        """clear() empties the cache."""
        cache = ModelCache()
        cache.get_or_create("a", lambda: 1)
        cache.clear()
        assert len(cache) == 0
        assert cache.keys() == []

    def test_verbose_trace(self, capsys):
        """Hits and misses are reported when verbose."""
        cache = ModelCache("models")
        cache.get_or_create("a", lambda: 1, verbose=True)
        cache.get_or_create("a", lambda: 1, verbose=True)
        out = capsys.readouterr().out
        assert "Cache miss in models" in out
        assert "Cache hit in models" in out
