"""Tests for the discovery TTL cache."""

from gql_cms.core.discovery_cache import DiscoveryCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_cache():
    clock = FakeClock()
    return DiscoveryCache(clock=clock), clock


class TestDiscoveryCache:
    """Tests for DiscoveryCache."""

    def test_types_round_trip(self):
        """Test a cached type list is returned with its timestamp."""
        cache, _ = make_cache()
        assert cache.get_cached_types() is None
        cache.cache_types(["ArticlePage"])
        hit = cache.get_cached_types()
        assert hit.data == ["ArticlePage"]
        assert hit.from_cache
        assert hit.timestamp

    def test_types_expire_after_five_minutes(self):
        """Test the default type-list TTL."""
        cache, clock = make_cache()
        cache.cache_types(["ArticlePage"])
        clock.advance(299)
        assert cache.get_cached_types() is not None
        clock.advance(1)
        assert cache.get_cached_types() is None

    def test_schema_outlives_types(self):
        """Test schemas use the longer TTL."""
        cache, clock = make_cache()
        cache.cache_types(["ArticlePage"])
        cache.cache_schema("ArticlePage", {"fields": []})
        clock.advance(400)
        assert cache.get_cached_types() is None
        assert cache.get_cached_schema("ArticlePage").data == {"fields": []}
        clock.advance(200)
        assert cache.get_cached_schema("ArticlePage") is None

    def test_introspection_ttl(self):
        """Test introspection lives for an hour."""
        cache, clock = make_cache()
        cache.cache_introspection({"__schema": {}})
        clock.advance(3599)
        assert cache.get_cached_introspection() is not None
        clock.advance(1)
        assert cache.get_cached_introspection() is None

    def test_invalidate_content_type(self):
        """Test one type's schema and fields are dropped, others kept."""
        cache, _ = make_cache()
        cache.cache_schema("ArticlePage", {}, version="v1")
        cache.cache_fields("ArticlePage", ["Title"])
        cache.cache_schema("StandardPage", {})
        cache.invalidate_content_type("ArticlePage")
        assert cache.get_cached_schema("ArticlePage") is None
        assert cache.get_cached_fields("ArticlePage") is None
        assert cache.get_cached_schema("StandardPage") is not None
        assert not cache.has_schema_changed("ArticlePage", "v2")

    def test_schema_change_detection(self):
        """Test a change is reported only against a recorded version."""
        cache, _ = make_cache()
        assert not cache.has_schema_changed("ArticlePage", "v1")
        cache.cache_schema("ArticlePage", {}, version="v1")
        assert not cache.has_schema_changed("ArticlePage", "v1")
        assert cache.has_schema_changed("ArticlePage", "v2")

    def test_invalidate_all(self):
        """Test every entry is cleared."""
        cache, _ = make_cache()
        cache.cache_types([])
        cache.cache_introspection({})
        cache.invalidate_all()
        assert cache.get_stats()["totalSize"] == 0

    def test_stats(self):
        """Test counts, hits and misses, with expired entries evicted."""
        cache, clock = make_cache()
        cache.cache_types(["A"])
        cache.cache_schema("A", {})
        cache.cache_introspection({})
        cache.get_cached_types()
        cache.get_cached_fields("A")

        stats = cache.get_stats()
        assert stats["totalSize"] == 3
        assert stats["typesCached"] == 1
        assert stats["schemasCached"] == 1
        assert stats["introspectionCached"] is True
        assert stats["hits"] == 1
        assert stats["misses"] == 1

        clock.advance(301)
        assert cache.get_stats()["typesCached"] == 0
