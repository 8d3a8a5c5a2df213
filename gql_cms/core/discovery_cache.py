"""In-memory TTL cache for discovery results.

Holds content-type lists, per-type schemas and field lists, and the raw
introspection result, each with its own time-to-live. Expired entries
read as misses.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

from ..logging_config import get_logger

logger = get_logger("discovery_cache")

T = TypeVar("T")

DEFAULT_TYPES_TTL = 300  # 5 minutes
DEFAULT_SCHEMA_TTL = 600  # 10 minutes
DEFAULT_INTROSPECTION_TTL = 3600  # 1 hour

TYPES_KEY = "discovery:types:all"
INTROSPECTION_KEY = "discovery:introspection:schema"


@dataclass
class CachedDiscovery(Generic[T]):
    """A cache hit: the stored data and when it was stored."""
    data: T
    timestamp: str  # ISO-8601, UTC
    from_cache: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp, "fromCache": self.from_cache}


@dataclass
class _Entry:
    value: Any
    stored_at: float
    expires_at: float
    timestamp: str


class DiscoveryCache:
    """Keyed TTL store for discovery data.

    Example:
        cache = DiscoveryCache()
        cache.cache_types(["ArticlePage", "StandardPage"])
        hit = cache.get_cached_types()
        if hit:
            print(hit.data, hit.timestamp)
    """

    def __init__(
        self,
        types_ttl: float = DEFAULT_TYPES_TTL,
        schema_ttl: float = DEFAULT_SCHEMA_TTL,
        introspection_ttl: float = DEFAULT_INTROSPECTION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            types_ttl: Lifetime of the content-type list, in seconds
            schema_ttl: Lifetime of per-type schemas and field lists
            introspection_ttl: Lifetime of the raw introspection result
            clock: Monotonic time source (tests pass a fake)
        """
        self.types_ttl = types_ttl
        self.schema_ttl = schema_ttl
        self.introspection_ttl = introspection_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._schema_versions: dict[str, str] = {}
        self._hits = 0
        self._misses = 0

    # Content types

    def get_cached_types(self) -> CachedDiscovery | None:
        return self._get(TYPES_KEY)

    def cache_types(self, types: list[Any]) -> None:
        self._set(TYPES_KEY, types, self.types_ttl)
        logger.debug(f"Cached {len(types)} content types")

    # Per-type schema and fields

    def get_cached_schema(self, content_type: str) -> CachedDiscovery | None:
        return self._get(self._schema_key(content_type))

    def cache_schema(self, content_type: str, schema: Any, version: str | None = None) -> None:
        self._set(self._schema_key(content_type), schema, self.schema_ttl)
        if version:
            self._schema_versions[content_type] = version
        logger.debug(f"Cached schema for {content_type}")

    def get_cached_fields(self, content_type: str) -> CachedDiscovery | None:
        return self._get(self._fields_key(content_type))

    def cache_fields(self, content_type: str, fields: list[Any]) -> None:
        self._set(self._fields_key(content_type), fields, self.schema_ttl)
        logger.debug(f"Cached {len(fields)} fields for {content_type}")

    # Raw introspection

    def get_cached_introspection(self) -> CachedDiscovery | None:
        return self._get(INTROSPECTION_KEY)

    def cache_introspection(self, introspection: dict[str, Any]) -> None:
        self._set(INTROSPECTION_KEY, introspection, self.introspection_ttl)
        logger.debug("Cached GraphQL introspection")

    def invalidate_introspection(self) -> None:
        self._entries.pop(INTROSPECTION_KEY, None)

    # Invalidation

    def invalidate_types(self) -> None:
        self._entries.pop(TYPES_KEY, None)

    def invalidate_content_type(self, content_type: str) -> None:
        """Drop the schema and field entries of one content type."""
        self._entries.pop(self._schema_key(content_type), None)
        self._entries.pop(self._fields_key(content_type), None)
        self._schema_versions.pop(content_type, None)
        logger.info(f"Invalidated cache for content type: {content_type}")

    def invalidate_all(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self._schema_versions.clear()
        logger.info(f"Cleared all discovery caches ({count} entries)")

    def has_schema_changed(self, content_type: str, new_version: str) -> bool:
        """True only if a version was recorded for the type and it differs."""
        old_version = self._schema_versions.get(content_type)
        return old_version is not None and old_version != new_version

    def get_stats(self) -> dict[str, Any]:
        self._evict_expired()
        return {
            "totalSize": len(self._entries),
            "typesCached": 1 if TYPES_KEY in self._entries else 0,
            "schemasCached": sum(1 for key in self._entries if key.startswith("discovery:schema:")),
            "introspectionCached": INTROSPECTION_KEY in self._entries,
            "hits": self._hits,
            "misses": self._misses,
        }

    def _get(self, key: str) -> CachedDiscovery | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._misses += 1
            logger.debug(f"Discovery cache expired: {key}")
            return None
        self._hits += 1
        return CachedDiscovery(data=entry.value, timestamp=entry.timestamp, from_cache=True)

    def _set(self, key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        self._entries[key] = _Entry(
            value=value,
            stored_at=now,
            expires_at=now + ttl,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def _evict_expired(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if now >= e.expires_at]:
            del self._entries[key]

    @staticmethod
    def _schema_key(content_type: str) -> str:
        return f"discovery:schema:{content_type}"

    @staticmethod
    def _fields_key(content_type: str) -> str:
        return f"discovery:fields:{content_type}"
