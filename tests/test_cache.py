"""Tests for the query cache."""

from formcraft.cache import QueryCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestQueryCache:
    """Test TTL expiry, loading and tag invalidation."""

    def test_get_or_load_caches(self):
        """The loader runs once while the entry is fresh."""
        calls = []
        cache = QueryCache(ttl_seconds=10, clock=FakeClock())

        def loader():
            calls.append(1)
            return {"id": "f1"}

        assert cache.get_or_load("k", loader) == {"id": "f1"}
        assert cache.get_or_load("k", loader) == {"id": "f1"}
        assert len(calls) == 1

    def test_entries_expire(self):
        """Entries are dropped once their TTL passes."""
        clock = FakeClock()
        cache = QueryCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v")
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_none_not_cached(self):
        """A None load is retried next time."""
        cache = QueryCache(ttl_seconds=10, clock=FakeClock())
        assert cache.get_or_load("k", lambda: None) is None
        assert cache.get_or_load("k", lambda: "found") == "found"

    def test_invalidate_tag(self):
        """Invalidating a tag drops only entries carrying it."""
        cache = QueryCache(ttl_seconds=10, clock=FakeClock())
        cache.set("form", 1, tags=["forms"])
        cache.set("list", 2, tags=["forms", "lists"])
        cache.set("tpl", 3, tags=["templates"])
        assert cache.invalidate_tag("forms") == 2
        assert cache.get("form") is None
        assert cache.get("list") is None
        assert cache.get("tpl") == 3
        assert cache.invalidate_tag("lists") == 0

    def test_invalidate_key_and_clear(self):
        """Single keys and the whole cache can be dropped."""
        cache = QueryCache(ttl_seconds=10, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_zero_ttl_disables(self):
        """A TTL of 0 stores nothing."""
        cache = QueryCache(ttl_seconds=0)
        assert cache.enabled is False
        cache.set("k", "v")
        assert cache.get("k") is None

    def test_per_entry_ttl(self):
        """A per-entry TTL overrides the default."""
        clock = FakeClock()
        cache = QueryCache(ttl_seconds=10, clock=clock)
        cache.set("k", "v", ttl_seconds=1)
        clock.now = 2
        assert cache.get("k") is None

    def test_load_overlapping_invalidation_not_cached(self):
        """A read that started before a write does not cache its stale row."""
        cache = QueryCache(ttl_seconds=60, clock=FakeClock())
        rows = {"f1": {"name": "old"}}

        def loader():
            row = dict(rows["f1"])
            # a write commits while the read is in flight
            rows["f1"] = {"name": "new"}
            cache.invalidate_tag("forms")
            return row

        assert cache.get_or_load(("form", "f1"), loader, tags=["forms"])["name"] == "old"
        assert cache.get(("form", "f1")) is None
        fresh = cache.get_or_load(("form", "f1"), lambda: dict(rows["f1"]), tags=["forms"])
        assert fresh["name"] == "new"
        assert cache.get(("form", "f1"))["name"] == "new"

    def test_clear_during_load_not_cached(self):
        """clear() also voids loads already in flight."""
        cache = QueryCache(ttl_seconds=60, clock=FakeClock())

        def loader():
            cache.clear()
            return "stale"

        cache.get_or_load("k", loader, tags=["templates"])
        assert cache.get("k") is None

    def test_other_tags_do_not_void_a_load(self):
        """Invalidating an unrelated tag leaves the load cacheable."""
        cache = QueryCache(ttl_seconds=60, clock=FakeClock())

        def loader():
            cache.invalidate_tag("submissions")
            return "value"

        cache.get_or_load("k", loader, tags=["forms"])
        assert cache.get("k") == "value"
