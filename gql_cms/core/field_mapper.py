"""Maps informal field names onto the real fields of a content type.

Scoring of a candidate field against a user-supplied name:

    exact (case-insensitive)        -> high, stops the search
    one name contains the other     +0.5
    shared words / max word count   x0.4 (synonyms of one bucket count as shared)
    both in one pattern bucket      +0.3
    display name contains/contained +0.2

capped at 1.0. Scores <= 0.3 are not suggested; > 0.8 is high, > 0.5 medium.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..logging_config import get_logger
from .discovery_cache import DiscoveryCache
from .errors import NotFoundError
from .introspector import SchemaIntrospector
from .ir import ContentTypeSchema, FieldMapping, SchemaField

logger = get_logger("field_mapper")

FIELD_PATTERNS: dict[str, tuple[str, ...]] = {
    "title": ("title", "heading", "name", "headline"),
    "content": ("content", "body", "text", "description", "article"),
    "summary": ("summary", "excerpt", "abstract", "brief", "intro"),
    "author": ("author", "writer", "creator", "by"),
    "date": ("date", "published", "created", "updated", "time"),
    "image": ("image", "photo", "picture", "thumbnail", "banner"),
    "meta": ("meta", "seo", "metadata", "og"),
    "tags": ("tags", "categories", "labels", "topics"),
}

MIN_SCORE = 0.3
HIGH_SCORE = 0.8
MEDIUM_SCORE = 0.5

_WORD_BOUNDARY = re.compile(r"[_\-\s.]+|(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def extract_words(name: str) -> list[str]:
    """Split on camelCase, PascalCase, snake_case and kebab-case boundaries."""
    return [w.lower() for w in _WORD_BOUNDARY.split(name) if w]


def pattern_buckets(words: list[str]) -> set[str]:
    return {bucket for bucket, synonyms in FIELD_PATTERNS.items() if any(w in synonyms for w in words)}


def _words_match(a: str, b: str) -> bool:
    if a == b:
        return True
    return any(a in synonyms and b in synonyms for synonyms in FIELD_PATTERNS.values())


def confidence_for(score: float) -> str:
    if score > HIGH_SCORE:
        return "high"
    if score > MEDIUM_SCORE:
        return "medium"
    return "low"


def score_field(user_field: str, candidate: SchemaField) -> float:
    user_lower = user_field.lower()
    actual_lower = candidate.name.lower()
    user_words = extract_words(user_field)
    actual_words = extract_words(candidate.name)

    score = 0.0
    if user_lower in actual_lower or actual_lower in user_lower:
        score += 0.5

    if user_words and actual_words:
        shared = sum(1 for w in user_words if any(_words_match(w, a) for a in actual_words))
        score += shared / max(len(user_words), len(actual_words)) * 0.4

    if pattern_buckets(user_words + [user_lower]) & pattern_buckets(actual_words + [actual_lower]):
        score += 0.3

    display_lower = candidate.display_name.lower()
    if display_lower and (user_lower in display_lower or display_lower in user_lower):
        score += 0.2

    return min(score, 1.0)


def _match_reason(user_field: str, candidate: SchemaField) -> str:
    user_lower = user_field.lower()
    if user_lower in candidate.name.lower():
        return f'Field name contains "{user_field}"'
    if user_lower in candidate.display_name.lower():
        return f'Display name "{candidate.display_name}" matches'
    shared = pattern_buckets(extract_words(user_field) + [user_lower]) & pattern_buckets(
        extract_words(candidate.name) + [candidate.name.lower()]
    )
    if shared:
        return f"Common {sorted(shared)[0]} field pattern"
    return "Similar field name pattern"


def find_best_field_match(user_field: str, available: dict[str, SchemaField]) -> FieldMapping | None:
    """Best schema field for a user-supplied name, or None below the threshold.

    Args:
        user_field: Name as the caller wrote it
        available: Schema fields keyed by (dot-separated) path
    """
    user_lower = user_field.lower()
    best: FieldMapping | None = None
    best_score = 0.0
    for path, candidate in available.items():
        if user_lower == path.lower():
            return FieldMapping(user_field, path, "high", "Case-insensitive exact match")
        score = score_field(user_field, candidate)
        if score > best_score:
            best_score = score
            best = FieldMapping(user_field, path, confidence_for(score), _match_reason(user_field, candidate))
    return best if best_score > MIN_SCORE else None


def set_nested(target: dict[str, Any], path: str, value: Any) -> None:
    """Assign `value` at a dot-separated path, creating dicts on the way."""
    *parents, last = path.split(".")
    current = target
    for key in parents:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[last] = value


@dataclass
class FieldDiscoveryResult:
    schema: ContentTypeSchema
    available_fields: list[str]
    field_details: dict[str, SchemaField]
    suggestions: list[FieldMapping] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contentType": self.schema.name,
            "availableFields": self.available_fields,
            "requiredFields": self.schema.required_fields,
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


@dataclass
class MappingResult:
    mapped_properties: dict[str, Any]
    unmapped_fields: list[str]
    mapping_suggestions: list[FieldMapping]

    def to_dict(self) -> dict[str, Any]:
        return {
            "mappedProperties": self.mapped_properties,
            "unmappedFields": self.unmapped_fields,
            "mappingSuggestions": [s.to_dict() for s in self.mapping_suggestions],
        }


class FieldSchemaSource(Protocol):
    """Supplies the editable fields of a content type."""

    async def get_content_type_schema(self, content_type: str) -> ContentTypeSchema: ...


class GraphFieldSource:
    """Field schemas read from GraphQL introspection."""

    def __init__(self, introspector: SchemaIntrospector):
        self.introspector = introspector

    async def get_content_type_schema(self, content_type: str) -> ContentTypeSchema:
        info = await self.introspector.get_content_type(content_type)
        if info is None:
            raise NotFoundError(f"Content type '{content_type}' not found in GraphQL schema")
        fields = [
            SchemaField(
                name=f.name,
                type=f.type,
                required=f.is_required,
                description=f.description,
            )
            for f in info.fields.values()
            if not f.name.startswith("_")
        ]
        return ContentTypeSchema(
            name=info.name,
            display_name=info.name,
            fields=fields,
            description=info.description,
        )


class CmaFieldSource:
    """Field schemas read from the content-management API (`/contentTypes/{key}`)."""

    def __init__(self, cma_client, discovery_cache: DiscoveryCache | None = None):
        self.cma_client = cma_client
        self.discovery_cache = discovery_cache

    async def get_content_type_schema(self, content_type: str) -> ContentTypeSchema:
        if self.discovery_cache is not None:
            cached = self.discovery_cache.get_cached_schema(content_type)
            if cached:
                return cached.data

        logger.info(f"Fetching schema for content type: {content_type}")
        data = await self.cma_client.get_content_type(content_type)
        if not data:
            raise NotFoundError(f"Content type '{content_type}' not found")

        fields = []
        for name, definition in (data.get("properties") or {}).items():
            definition = definition or {}
            fields.append(
                SchemaField(
                    name=name,
                    display_name=definition.get("displayName") or name,
                    type=definition.get("dataType") or definition.get("type") or "string",
                    required=bool(definition.get("required")),
                    description=definition.get("description"),
                )
            )
        schema = ContentTypeSchema(
            name=data.get("key") or content_type,
            display_name=data.get("displayName") or content_type,
            fields=fields,
            description=data.get("description"),
        )
        logger.info(f"Schema discovered for {content_type}: {len(fields)} fields, {len(schema.required_fields)} required")
        if self.discovery_cache is not None:
            self.discovery_cache.cache_schema(content_type, schema)
        return schema


class FieldMapper:
    """Suggests and applies field-name mappings for one schema source.

    Example:
        mapper = FieldMapper(GraphFieldSource(introspector))
        result = await mapper.map_fields_dynamically("ArticlePage", {"heading": "Hello"})
        result.mapped_properties  # {"Title": "Hello"}
    """

    def __init__(self, source: FieldSchemaSource):
        self.source = source

    def find_best_field_match(self, user_field: str, available: dict[str, SchemaField]) -> FieldMapping | None:
        return find_best_field_match(user_field, available)

    async def discover_fields(self, content_type: str, user_properties: dict[str, Any]) -> FieldDiscoveryResult:
        """Fetch the type's fields and suggest mappings for unknown properties."""
        schema = await self.source.get_content_type_schema(content_type)
        details = {f.name: f for f in schema.fields}
        suggestions = []
        for user_field in user_properties:
            if user_field in details:
                continue
            suggestion = find_best_field_match(user_field, details)
            if suggestion:
                suggestions.append(suggestion)
        return FieldDiscoveryResult(
            schema=schema,
            available_fields=list(details),
            field_details=details,
            suggestions=suggestions,
        )

    async def map_fields_dynamically(self, content_type: str, user_properties: dict[str, Any]) -> MappingResult:
        """Rename properties onto schema fields.

        Exact field names pass as-is; medium/high suggestions are applied
        (dotted targets become nested dicts); everything else passes through
        unchanged and is listed in `unmapped_fields`.
        """
        discovery = await self.discover_fields(content_type, user_properties)
        by_user_field = {s.user_field: s for s in discovery.suggestions}

        mapped: dict[str, Any] = {}
        unmapped: list[str] = []
        for user_field, value in user_properties.items():
            if user_field in discovery.field_details:
                mapped[user_field] = value
                continue
            suggestion = by_user_field.get(user_field)
            if suggestion and suggestion.confidence != "low":
                set_nested(mapped, suggestion.suggested_field, value)
                logger.info(f'Mapped field "{user_field}" to "{suggestion.suggested_field}" ({suggestion.reason})')
            else:
                unmapped.append(user_field)
                mapped[user_field] = value

        return MappingResult(
            mapped_properties=mapped,
            unmapped_fields=unmapped,
            mapping_suggestions=discovery.suggestions,
        )

    async def get_field_guide(self, content_type: str) -> str:
        """Human-readable list of required and optional fields."""
        schema = await self.source.get_content_type_schema(content_type)
        lines = [f"Available fields for {schema.display_name or content_type}:", ""]

        def describe(f: SchemaField) -> str:
            text = f"  - {f.name} ({f.type})"
            if f.display_name != f.name:
                text += f' - "{f.display_name}"'
            if f.description:
                text += f" - {f.description}"
            return text

        required = [f for f in schema.fields if f.required]
        optional = [f for f in schema.fields if not f.required]
        if required:
            lines.append("Required fields:")
            lines.extend(describe(f) for f in required)
            lines.append("")
        if optional:
            lines.append("Optional fields:")
            lines.extend(describe(f) for f in optional)
        return "\n".join(lines).rstrip() + "\n"
