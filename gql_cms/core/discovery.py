"""Discovery of content types, fields and per-type schemas.

Answers `types`, `fields`, `schema` and `all` requests from the discovery
cache when possible and records fresh results in it.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..logging_config import get_logger
from .discovery_cache import DiscoveryCache
from .errors import NotFoundError, ValidationError
from .field_mapper import FieldSchemaSource
from .introspector import SchemaIntrospector
from .ir import ContentTypeSchema, FieldInfo
from .type_matcher import ContentTypeSource, ContentTypeSummary

logger = get_logger("discovery")

TARGETS = ("types", "fields", "schema", "all")

# Field names that reveal what a content type supports
URL_FIELDS = ("url", "Url", "_metadata")
SEO_FIELDS = ("seo", "SeoSettings", "MetaTitle", "MetaDescription", "metaTitle", "metaDescription")
CONTENT_AREA_HINTS = ("ContentArea", "MainContentArea", "mainContentArea", "contentArea")


@dataclass
class DiscoveryResult:
    target: str
    data: dict[str, Any]
    cached: bool
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {"target": self.target, "timestamp": self.timestamp, "cached": self.cached, "data": self.data}


def schema_version(schema: ContentTypeSchema) -> str:
    """Short hash of a schema's field names and types."""
    source = ",".join(sorted(f"{f.name}:{f.type}" for f in schema.fields))
    return hashlib.sha256(source.encode()).hexdigest()[:8]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DiscoveryService:
    """Cached discovery over the introspector and the configured sources.

    Example:
        service = DiscoveryService(introspector, GraphTypeSource(introspector),
                                   GraphFieldSource(introspector), DiscoveryCache())
        result = await service.discover("fields", "ArticlePage")
    """

    def __init__(
        self,
        introspector: SchemaIntrospector,
        type_source: ContentTypeSource,
        field_source: FieldSchemaSource,
        discovery_cache: DiscoveryCache,
    ):
        self.introspector = introspector
        self.type_source = type_source
        self.field_source = field_source
        self.cache = discovery_cache

    async def discover(self, target: str, content_type: str | None = None, *, use_cache: bool = True) -> DiscoveryResult:
        """Run one discovery request.

        Args:
            target: One of `types`, `fields`, `schema`, `all`
            content_type: Required for `fields` and `schema`
            use_cache: When False, the relevant cache entries are dropped first

        Raises:
            ValidationError: Unknown target or missing content type
            NotFoundError: Unknown content type
        """
        if target not in TARGETS:
            raise ValidationError(f"target must be one of {', '.join(TARGETS)}, got {target!r}")
        if target in ("fields", "schema") and not content_type:
            raise ValidationError(f'contentType is required when target is "{target}"')

        if not use_cache:
            if content_type:
                self.cache.invalidate_content_type(content_type)
            else:
                self.cache.invalidate_types()

        if target == "types":
            types, hit = await self._types()
            return DiscoveryResult(target, {"types": [t.to_dict() for t in types]}, hit is not None, _stamp(hit))

        if target == "fields":
            fields, hit = await self._fields(content_type)
            return DiscoveryResult(target, {"fields": fields}, hit is not None, _stamp(hit))

        if target == "schema":
            schema, hit = await self._schema(content_type)
            return DiscoveryResult(target, {"schema": await self._describe_schema(schema)}, hit is not None, _stamp(hit))

        types, types_hit = await self._types()
        all_fields: list[dict[str, Any]] = []
        all_cached = types_hit is not None
        for summary in types:
            try:
                fields, hit = await self._fields(summary.key)
            except NotFoundError:
                logger.warning(f"Content type {summary.key} is not exposed by the Graph schema; skipped")
                continue
            all_cached = all_cached and hit is not None
            all_fields.extend({**f, "contentType": summary.key} for f in fields)
        data = {
            "types": [t.to_dict() for t in types],
            "fields": all_fields,
            "summary": {
                "totalTypes": len(types),
                "totalFields": len(all_fields),
                "searchableFields": sum(1 for f in all_fields if f.get("isSearchable")),
                "filterableFields": sum(1 for f in all_fields if f.get("isFilterable")),
            },
        }
        return DiscoveryResult(target, data, all_cached, _now())

    async def _types(self) -> tuple[list[ContentTypeSummary], Any]:
        hit = self.cache.get_cached_types()
        if hit:
            logger.debug("Using cached content types")
            return hit.data, hit
        types = await self.type_source.list_content_types()
        self.cache.cache_types(types)
        return types, None

    async def _fields(self, content_type: str) -> tuple[list[dict[str, Any]], Any]:
        hit = self.cache.get_cached_fields(content_type)
        if hit:
            logger.debug(f"Using cached fields for {content_type}")
            return hit.data, hit
        if await self.introspector.get_type(content_type) is None:
            raise NotFoundError(f"Content type '{content_type}' not found in GraphQL schema")
        fields = [f.to_dict() for f in await self.introspector.get_fields_for_type(content_type)]
        self.cache.cache_fields(content_type, fields)
        return fields, None

    async def _schema(self, content_type: str) -> tuple[ContentTypeSchema, Any]:
        hit = self.cache.get_cached_schema(content_type)
        if hit:
            logger.debug(f"Using cached schema for {content_type}")
            return hit.data, hit
        schema = await self.field_source.get_content_type_schema(content_type)
        version = schema_version(schema)
        if self.cache.has_schema_changed(content_type, version):
            logger.info(f"Schema of {content_type} changed since it was last discovered")
        self.cache.cache_schema(content_type, schema, version)
        return schema, None

    async def _describe_schema(self, schema: ContentTypeSchema) -> dict[str, Any]:
        graph_fields: list[FieldInfo] = await self.introspector.get_fields_for_type(schema.name)
        names = {f.name for f in graph_fields} | {f.name for f in schema.fields}
        types = {f.type for f in graph_fields} | {f.type for f in schema.fields}
        return {
            "contentType": schema.name,
            "displayName": schema.display_name,
            "description": schema.description,
            "fields": [
                {
                    "name": f.name,
                    "displayName": f.display_name,
                    "type": f.type,
                    "required": f.required,
                    "description": f.description,
                }
                for f in schema.fields
            ],
            "requiredFields": schema.required_fields,
            "metadata": {
                "hasUrl": any(n in names for n in URL_FIELDS),
                "hasSeo": any(n in names for n in SEO_FIELDS),
            },
            "composition": {
                "supportsContentAreas": any(hint in n for n in names | types for hint in CONTENT_AREA_HINTS),
            },
        }


def _stamp(hit) -> str:
    return hit.timestamp if hit else _now()
