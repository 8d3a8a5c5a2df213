"""Tiered fragment cache: memory, then disk, then regeneration by the caller.

Disk state is partitioned per CMS instance:

    <cache_dir>/<instance_id>/<name>.graphql
    <cache_dir>/<instance_id>/components/<Type>.graphql
    <cache_dir>/<instance_id>/metadata.json

where `instance_id = sha256("<endpoint>:<schema_version>")[:16]` and
`schema_version = sha256(",".join(sorted(root query field names)))[:8]`.
The schema version only tracks root query fields; changes nested below
an unchanged root are not detected until the cache is invalidated.
"""

import hashlib
import json
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from ..logging_config import get_logger
from .ir import CacheEntry, CacheMetadata

logger = get_logger("fragment_cache")

METADATA_FILE = "metadata.json"
COMPONENTS_DIR = "components"
COMPONENT_PREFIX = "component:"
ALL_COMPONENTS = "AllComponents"


class SchemaVersionSource(Protocol):
    """Provides the root query field names the schema version hashes."""

    async def get_schema_version_source(self) -> list[str]: ...


def compute_schema_version(root_field_names: list[str]) -> str:
    joined = ",".join(sorted(root_field_names))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:8]


def compute_instance_id(endpoint: str, schema_version: str) -> str:
    combined = f"{endpoint}:{schema_version}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:16]


@dataclass
class CacheWriteResult:
    """Outcome of a disk write. Failures are reported, never raised."""
    ok: bool
    path: Path | None = None
    error: str | None = None


class FragmentCache:
    """Fragment cache keyed by (endpoint, schema version).

    Example:
        cache = FragmentCache(".cache/fragments", endpoint, introspector)
        fragment = await cache.get_cached_fragment("AllComponents")
        if fragment is None:
            fragment = await generator.generate_all_components_fragment()
            await cache.set_cached_fragment("AllComponents", fragment.content)
    """

    def __init__(self, cache_dir: str | Path, endpoint: str, schema_source: SchemaVersionSource):
        """Initialize the cache.

        Args:
            cache_dir: Root directory of the disk tier
            endpoint: Graph endpoint URL (part of the instance id)
            schema_source: Supplies root query field names (the introspector)
        """
        self.cache_dir = Path(cache_dir)
        self.endpoint = endpoint
        self._schema_source = schema_source
        self._memory: dict[str, CacheEntry] = {}
        self._schema_version: str | None = None
        self._instance_id: str | None = None

    async def get_schema_version(self) -> str:
        if self._schema_version is None:
            self._schema_version = compute_schema_version(await self._schema_source.get_schema_version_source())
        return self._schema_version

    async def get_instance_id(self) -> str:
        """Memoized hash of endpoint and schema version."""
        if self._instance_id is None:
            self._instance_id = compute_instance_id(self.endpoint, await self.get_schema_version())
            logger.debug(f"Instance ID: {self._instance_id}")
        return self._instance_id

    async def instance_dir(self) -> Path:
        return self.cache_dir / await self.get_instance_id()

    async def refresh_instance(self) -> bool:
        """Recompute the schema version after the schema was re-fetched.

        Returns:
            True if the version changed; the memory tier is then cleared and
            later reads and writes go to the new instance directory.
        """
        previous = self._schema_version
        self._schema_version = None
        self._instance_id = None
        current = await self.get_schema_version()
        if previous is not None and previous != current:
            logger.info(f"Schema version changed ({previous} -> {current}), repartitioning fragment cache")
            self._memory.clear()
            return True
        return False

    async def get_cached_fragment(self, name: str) -> str | None:
        """Look a fragment up in memory, then on disk. None on a miss."""
        entry = self._memory.get(name)
        if entry is not None:
            entry.hit_count += 1
            logger.debug(f"Fragment cache hit (memory): {name}")
            return entry.content

        path = await self._fragment_path(name)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"Fragment cache miss: {name}")
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Unreadable cached fragment {path}, treating as a miss: {e}")
            return None

        logger.debug(f"Fragment cache hit (disk): {name}")
        self._memory[name] = CacheEntry(content=content, cached_at=datetime.now(timezone.utc), hit_count=1)
        return content

    async def set_cached_fragment(
        self,
        name: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> CacheWriteResult:
        """Store a fragment in memory and on disk.

        Args:
            name: Fragment name (file stem)
            content: GraphQL text
            metadata: Optional updates merged into metadata.json
                (camelCase keys, e.g. {"componentTypes": [...]})
        """
        self._memory[name] = CacheEntry(content=content, cached_at=datetime.now(timezone.utc))

        path = await self._fragment_path(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            if metadata:
                await self._update_metadata(metadata)
        except OSError as e:
            logger.error(f"Failed to cache fragment {name}: {e}")
            return CacheWriteResult(ok=False, path=path, error=str(e))

        logger.info(f"Cached fragment: {name} ({len(content)} chars) at {path}")
        return CacheWriteResult(ok=True, path=path)

    async def cache_component_fragments(self, fragments: dict[str, str]) -> list[CacheWriteResult]:
        """Store per-component fragments under `components/`."""
        components_dir = await self.instance_dir() / COMPONENTS_DIR
        results = []
        for type_name, content in fragments.items():
            self._memory[f"{COMPONENT_PREFIX}{type_name}"] = CacheEntry(
                content=content, cached_at=datetime.now(timezone.utc)
            )
            path = components_dir / f"{type_name}.graphql"
            try:
                components_dir.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
                results.append(CacheWriteResult(ok=True, path=path))
            except OSError as e:
                logger.error(f"Failed to cache component fragment {type_name}: {e}")
                results.append(CacheWriteResult(ok=False, path=path, error=str(e)))
        logger.info(f"Cached {sum(r.ok for r in results)} component fragments")
        return results

    async def get_metadata(self) -> CacheMetadata | None:
        path = await self.instance_dir() / METADATA_FILE
        try:
            return CacheMetadata.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError):
            return None

    async def invalidate_cache(self) -> None:
        """Clear memory and delete this instance's directory (if any)."""
        logger.info("Invalidating fragment cache")
        self._memory.clear()
        instance_dir = await self.instance_dir()
        if not instance_dir.exists():
            return
        try:
            shutil.rmtree(instance_dir)
        except OSError as e:
            logger.error(f"Failed to remove cache directory {instance_dir}: {e}")
            return
        logger.info("Fragment cache invalidated")

    async def prewarm_cache(self, component_types: list[str], content: str) -> CacheWriteResult:
        logger.info("Pre-warming fragment cache")
        return await self.set_cached_fragment(
            ALL_COMPONENTS,
            content,
            {
                "componentTypes": list(component_types),
                "fragmentCount": len(component_types),
                "generated": datetime.now(timezone.utc).isoformat(),
            },
        )

    def get_cache_stats(self) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        entries = [
            {
                "name": name,
                "hitCount": entry.hit_count,
                "age": int((now - entry.cached_at).total_seconds()),
            }
            for name, entry in self._memory.items()
        ]
        entries.sort(key=lambda e: e["hitCount"], reverse=True)
        return {
            "memorySize": len(self._memory),
            "totalHits": sum(e["hitCount"] for e in entries),
            "instanceId": self._instance_id,
            "schemaVersion": self._schema_version,
            "entries": entries,
        }

    async def _fragment_path(self, name: str) -> Path:
        instance_dir = await self.instance_dir()
        if name.startswith(COMPONENT_PREFIX):
            return instance_dir / COMPONENTS_DIR / f"{name[len(COMPONENT_PREFIX):]}.graphql"
        return instance_dir / f"{name}.graphql"

    async def _update_metadata(self, updates: dict[str, Any]) -> None:
        path = await self.instance_dir() / METADATA_FILE
        try:
            current = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            current = CacheMetadata(
                schema_version=await self.get_schema_version(),
                endpoint=self.endpoint,
                generated=datetime.now(timezone.utc).isoformat(),
            ).to_dict()
        current.update(updates)
        path.write_text(json.dumps(CacheMetadata.from_dict(current).to_dict(), indent=2), encoding="utf-8")
