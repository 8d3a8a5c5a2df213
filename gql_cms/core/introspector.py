"""Schema introspection for the content-delivery Graph API.

Fetches the introspection result once, converts it into a `SchemaSnapshot`
and answers questions about content types, fields and filter inputs from
that snapshot.
"""

import asyncio
from typing import Any, Protocol

from ..logging_config import get_logger
from .discovery_cache import DiscoveryCache
from .errors import ValidationError
from .ir import (
    INPUT_OBJECT,
    INTERFACE,
    OBJECT,
    ArgumentInfo,
    ContentTypeInfo,
    FieldInfo,
    SchemaSnapshot,
    TypeInfo,
    parse_type_ref,
)

logger = get_logger("introspector")

# Interfaces that mark a type as CMS content
CONTENT_INTERFACES = ("_IContent", "IContent", "Content")

# Field names carrying the system metadata object
METADATA_FIELDS = ("_metadata", "metadata")

# Root query fields tried first when looking for the content collection
CONTENT_QUERY_FIELD_NAMES = ("_Content", "Content", "content", "_content", "Contents")

METADATA_TYPE_NAMES = ("ContentMetadata", "_ContentMetadata", "Metadata", "_Metadata", "IContentMetadata")

# Name fragments of text fields worth searching
SEARCHABLE_PATTERNS = ("title", "heading", "name", "description", "text", "content", "summary", "body")

TEXT_SCALARS = ("String",)

DISPLAY_NAME_FIELD = "displayName"

UNINITIALIZED = "uninitialized"
INITIALIZING = "initializing"
READY = "ready"


class IntrospectionSource(Protocol):
    """Anything that can fetch an introspection result (e.g. GraphClient)."""

    async def introspect(self) -> dict[str, Any]: ...


def _parse_field(raw: dict[str, Any]) -> FieldInfo:
    args = [
        ArgumentInfo(
            name=arg["name"],
            type_ref=parse_type_ref(arg["type"]),
            default_value=arg.get("defaultValue"),
            description=arg.get("description"),
        )
        for arg in raw.get("args") or []
    ]
    return FieldInfo(
        name=raw["name"],
        type_ref=parse_type_ref(raw["type"]),
        description=raw.get("description"),
        args=args,
    )


def _parse_type(raw: dict[str, Any]) -> TypeInfo:
    return TypeInfo(
        name=raw["name"],
        kind=raw["kind"],
        fields=[_parse_field(f) for f in raw.get("fields") or []],
        input_fields=[_parse_field(f) for f in raw.get("inputFields") or []],
        interfaces=[i["name"] for i in raw.get("interfaces") or []],
        possible_types=[t["name"] for t in raw.get("possibleTypes") or []],
        enum_values=[v["name"] for v in raw.get("enumValues") or []],
        description=raw.get("description"),
    )


def is_searchable_field(f: FieldInfo) -> bool:
    """String fields whose name looks like prose."""
    if f.type not in TEXT_SCALARS:
        return False
    lowered = f.name.lower()
    return any(pattern in lowered for pattern in SEARCHABLE_PATTERNS)


def _is_content_type(t: TypeInfo, excluded: set[str]) -> bool:
    if t.kind != OBJECT or t.name.startswith("__") or t.name in excluded:
        return False
    if any(i in CONTENT_INTERFACES for i in t.interfaces):
        return True
    return any(t.get_field(name) for name in METADATA_FIELDS)


def _items_type(types: dict[str, TypeInfo], f: FieldInfo) -> TypeInfo | None:
    """The element type of a collection field's `items`, if it has one."""
    result_type = types.get(f.type)
    if result_type is None or result_type.kind != OBJECT:
        return None
    items = result_type.get_field("items")
    if items is None or not items.is_list:
        return None
    return types.get(items.type)


def find_content_query_field(types: dict[str, TypeInfo], query_type: TypeInfo | None) -> str | None:
    """Locate the root field that returns the content collection.

    Conventional names are tried first; otherwise the first root field whose
    `items` hold a content-marker interface wins.
    """
    if query_type is None:
        return None
    for name in CONTENT_QUERY_FIELD_NAMES:
        f = query_type.get_field(name)
        if f is not None and _items_type(types, f) is not None:
            return name
    for f in query_type.fields:
        items = _items_type(types, f)
        if items is not None and items.name in CONTENT_INTERFACES:
            return f.name
    return None


def build_snapshot(introspection: dict[str, Any]) -> SchemaSnapshot:
    """Convert an introspection result into a SchemaSnapshot.

    Args:
        introspection: `{"__schema": ...}` (optionally wrapped in `data`)

    Raises:
        ValidationError: If the payload is not an introspection result
    """
    if "data" in introspection and "__schema" not in introspection:
        introspection = introspection["data"] or {}
    schema = introspection.get("__schema")
    if not schema or not schema.get("queryType"):
        raise ValidationError("Introspection result has no __schema.queryType")

    types = {raw["name"]: _parse_type(raw) for raw in schema.get("types") or []}
    query_type_name = schema["queryType"]["name"]
    root_names = {query_type_name}
    for key in ("mutationType", "subscriptionType"):
        if schema.get(key):
            root_names.add(schema[key]["name"])
    excluded = root_names | set(CONTENT_INTERFACES)

    content_query_field = find_content_query_field(types, types.get(query_type_name))

    filterable: set[str] = set()
    if content_query_field:
        where = types[query_type_name].get_field(content_query_field).get_arg("where")
        where_type = types.get(where.type) if where else None
        if where_type is not None:
            filterable = {f.name for f in where_type.input_fields}

    content_types: dict[str, ContentTypeInfo] = {}
    searchable: set[str] = set()
    metadata_field = None
    for name in sorted(types):
        t = types[name]
        if not _is_content_type(t, excluded):
            continue
        fields: dict[str, FieldInfo] = {}
        for f in t.fields:
            f.is_searchable = is_searchable_field(f)
            f.is_filterable = f.name in filterable
            if f.is_searchable:
                searchable.add(f.name)
            if metadata_field is None and f.name in METADATA_FIELDS:
                metadata_field = f.name
            fields[f.name] = f
        content_types[name] = ContentTypeInfo(
            name=name,
            fields=fields,
            interfaces=list(t.interfaces),
            description=t.description,
        )

    if metadata_field is None:
        for interface in CONTENT_INTERFACES:
            t = types.get(interface)
            found = t and next((n for n in METADATA_FIELDS if t.get_field(n)), None)
            if found:
                metadata_field = found
                break

    searchable.add(f"{metadata_field or METADATA_FIELDS[0]}.{DISPLAY_NAME_FIELD}")

    return SchemaSnapshot(
        types=types,
        query_type_name=query_type_name,
        content_types=content_types,
        searchable_fields=frozenset(searchable),
        filterable_fields=frozenset(filterable),
        content_query_field=content_query_field,
        metadata_field=metadata_field,
    )


class SchemaIntrospector:
    """Owns the current SchemaSnapshot of one Graph endpoint.

    The first `initialize()` call starts a single fetch; concurrent callers
    await the same fetch. Every accessor initializes on demand.

    Example:
        introspector = SchemaIntrospector(graph_client)
        for name in await introspector.get_content_types():
            fields = await introspector.get_fields_for_type(name)
    """

    def __init__(self, client: IntrospectionSource, discovery_cache: DiscoveryCache | None = None):
        """Initialize the introspector.

        Args:
            client: Source of the raw introspection result
            discovery_cache: Optional TTL cache consulted before fetching
        """
        self._client = client
        self._discovery_cache = discovery_cache
        self._snapshot: SchemaSnapshot | None = None
        self._pending: asyncio.Future | None = None

    @property
    def state(self) -> str:
        if self._snapshot is not None:
            return READY
        if self._pending is not None:
            return INITIALIZING
        return UNINITIALIZED

    @property
    def snapshot(self) -> SchemaSnapshot | None:
        """The current snapshot, or None before initialization."""
        return self._snapshot

    async def initialize(self) -> SchemaSnapshot:
        """Fetch and analyze the schema once; later calls return the snapshot.

        Raises:
            CmsError: Whatever the client raised; the introspector stays
                uninitialized so a later call can try again.
        """
        if self._snapshot is not None:
            return self._snapshot
        task = self._pending
        if task is None:
            task = asyncio.ensure_future(self._load())
            task.add_done_callback(self._on_loaded)
            self._pending = task
        return await asyncio.shield(task)

    def invalidate(self) -> None:
        """Forget the snapshot; the next access fetches the schema again."""
        self._snapshot = None
        self._pending = None
        if self._discovery_cache is not None:
            self._discovery_cache.invalidate_introspection()
        logger.info("Schema snapshot invalidated")

    async def _load(self) -> SchemaSnapshot:
        raw = None
        if self._discovery_cache is not None:
            cached = self._discovery_cache.get_cached_introspection()
            if cached:
                logger.debug("Using cached introspection result")
                raw = cached.data
        if raw is None:
            logger.debug("Fetching GraphQL schema for introspection")
            raw = await self._client.introspect()
            if self._discovery_cache is not None:
                self._discovery_cache.cache_introspection(raw)

        snapshot = build_snapshot(raw)
        logger.info(
            f"Schema introspection completed: {len(snapshot.types)} types, "
            f"{len(snapshot.query_fields)} query fields, {len(snapshot.content_types)} content types"
        )
        return snapshot

    def _on_loaded(self, task: asyncio.Future) -> None:
        if self._pending is not task:
            return  # invalidated while in flight
        self._pending = None
        if not task.cancelled() and task.exception() is None:
            self._snapshot = task.result()

    # Accessors

    async def get_type(self, name: str) -> TypeInfo | None:
        snapshot = await self.initialize()
        return snapshot.get_type(name)

    async def get_query_fields(self) -> list[FieldInfo]:
        snapshot = await self.initialize()
        return snapshot.query_fields

    async def find_content_query_field(self) -> str | None:
        snapshot = await self.initialize()
        return snapshot.content_query_field

    async def get_schema_version_source(self) -> list[str]:
        """Sorted root query field names (input of the schema-version hash)."""
        return sorted(f.name for f in await self.get_query_fields())

    async def get_content_types(self) -> list[str]:
        snapshot = await self.initialize()
        return sorted(snapshot.content_types)

    async def get_content_type(self, name: str) -> ContentTypeInfo | None:
        """Content-type view of any object type (components included)."""
        snapshot = await self.initialize()
        if name in snapshot.content_types:
            return snapshot.content_types[name]
        t = snapshot.get_type(name)
        if t is None or t.kind != OBJECT:
            return None
        return ContentTypeInfo(
            name=t.name,
            fields={f.name: f for f in t.fields},
            interfaces=list(t.interfaces),
            description=t.description,
        )

    async def get_fields_for_type(self, name: str) -> list[FieldInfo]:
        snapshot = await self.initialize()
        t = snapshot.get_type(name)
        if t is None or t.kind not in (OBJECT, INTERFACE):
            return []
        if name in snapshot.content_types:
            return list(snapshot.content_types[name].fields.values())
        return list(t.fields)

    async def get_searchable_fields(self) -> list[str]:
        snapshot = await self.initialize()
        return sorted(snapshot.searchable_fields)

    async def get_types_implementing(self, interface: str) -> list[str]:
        snapshot = await self.initialize()
        t = snapshot.get_type(interface)
        if t is None or t.kind != INTERFACE:
            logger.warning(f"Interface not found: {interface}")
            return []
        return sorted(t.possible_types)

    async def get_metadata_type(self) -> TypeInfo | None:
        """The object type behind the metadata field."""
        snapshot = await self.initialize()
        if snapshot.metadata_field:
            for name in list(snapshot.content_types) + list(CONTENT_INTERFACES):
                t = snapshot.get_type(name)
                f = t.get_field(snapshot.metadata_field) if t else None
                if f is not None:
                    return snapshot.get_type(f.type)
        for name in METADATA_TYPE_NAMES:
            t = snapshot.get_type(name)
            if t is not None and t.kind in (OBJECT, INTERFACE):
                return t
        return None

    async def get_where_input_type(self, query_field: str) -> TypeInfo | None:
        """Input type of the `where` argument of a root field, if any."""
        snapshot = await self.initialize()
        query_type = snapshot.query_type
        f = query_type.get_field(query_field) if query_type else None
        arg = f.get_arg("where") if f else None
        if arg is None:
            return None
        where_type = snapshot.get_type(arg.type)
        if where_type is None or where_type.kind != INPUT_OBJECT:
            return None
        return where_type

    async def resolve_input_path(self, input_type: TypeInfo, path: str) -> FieldInfo | None:
        """Follow a dotted path (`_metadata.url.default`) through input objects."""
        snapshot = await self.initialize()
        return resolve_input_path(snapshot, input_type, path)


def resolve_input_path(snapshot: SchemaSnapshot, input_type: TypeInfo, path: str) -> FieldInfo | None:
    current: TypeInfo | None = input_type
    found = None
    for part in path.split("."):
        if current is None or current.kind != INPUT_OBJECT:
            return None
        found = current.get_input_field(part)
        if found is None:
            return None
        current = snapshot.get_type(found.type)
    return found

