"""Intermediate Representation (IR) for a discovered CMS schema.

This module defines dataclasses that represent the shape of a remote
GraphQL schema as seen through introspection, plus the records the
cache and field mapper pass around.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

# Introspection "kind" values
SCALAR = "SCALAR"
OBJECT = "OBJECT"
INTERFACE = "INTERFACE"
UNION = "UNION"
ENUM = "ENUM"
INPUT_OBJECT = "INPUT_OBJECT"


@dataclass(frozen=True)
class NamedTypeRef:
    """A reference to a named type (leaf of a type reference)."""
    name: str
    kind: str = SCALAR


@dataclass(frozen=True)
class ListTypeRef:
    """A `[T]` wrapper."""
    of_type: "TypeRef"


@dataclass(frozen=True)
class NonNullTypeRef:
    """A `T!` wrapper."""
    of_type: "TypeRef"


TypeRef = Union[NamedTypeRef, ListTypeRef, NonNullTypeRef]


def unwrap_type(ref: TypeRef) -> NamedTypeRef:
    """Strip every List/NonNull modifier and return the named type."""
    while not isinstance(ref, NamedTypeRef):
        ref = ref.of_type
    return ref


def is_list_type(ref: TypeRef) -> bool:
    """True if a List wrapper appears anywhere in the reference."""
    while not isinstance(ref, NamedTypeRef):
        if isinstance(ref, ListTypeRef):
            return True
        ref = ref.of_type
    return False


def is_required_type(ref: TypeRef) -> bool:
    """True if the outermost modifier is NonNull."""
    return isinstance(ref, NonNullTypeRef)


def print_type_ref(ref: TypeRef) -> str:
    """Render a reference in SDL notation, e.g. `[String!]!`."""
    if isinstance(ref, NonNullTypeRef):
        return f"{print_type_ref(ref.of_type)}!"
    if isinstance(ref, ListTypeRef):
        return f"[{print_type_ref(ref.of_type)}]"
    return ref.name


def parse_type_ref(raw: dict[str, Any]) -> TypeRef:
    """Convert an introspection `type` object into a TypeRef."""
    kind = raw.get("kind")
    if kind == "NON_NULL":
        return NonNullTypeRef(parse_type_ref(raw["ofType"]))
    if kind == "LIST":
        return ListTypeRef(parse_type_ref(raw["ofType"]))
    if not raw.get("name"):
        raise ValueError(f"Named type reference without a name: {raw!r}")
    return NamedTypeRef(name=raw["name"], kind=kind or SCALAR)


@dataclass
class ArgumentInfo:
    """Represents an argument of a field."""
    name: str
    type_ref: TypeRef
    default_value: Any = None
    description: str | None = None

    @property
    def type(self) -> str:
        return unwrap_type(self.type_ref).name


@dataclass
class FieldInfo:
    """Represents a field (or input field) of a schema type."""
    name: str
    type_ref: TypeRef
    description: str | None = None
    args: list[ArgumentInfo] = field(default_factory=list)
    is_searchable: bool = False
    is_filterable: bool = False

    @property
    def type(self) -> str:
        """Base type name with all modifiers removed."""
        return unwrap_type(self.type_ref).name

    @property
    def kind(self) -> str:
        return unwrap_type(self.type_ref).kind

    @property
    def is_list(self) -> bool:
        return is_list_type(self.type_ref)

    @property
    def is_required(self) -> bool:
        return is_required_type(self.type_ref)

    def get_arg(self, name: str) -> ArgumentInfo | None:
        for arg in self.args:
            if arg.name == name:
                return arg
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "signature": print_type_ref(self.type_ref),
            "description": self.description,
            "isRequired": self.is_required,
            "isList": self.is_list,
            "isSearchable": self.is_searchable,
            "isFilterable": self.is_filterable,
        }


@dataclass
class TypeInfo:
    """Represents any named type of the schema."""
    name: str
    kind: str
    fields: list[FieldInfo] = field(default_factory=list)
    input_fields: list[FieldInfo] = field(default_factory=list)
    interfaces: list[str] = field(default_factory=list)
    possible_types: list[str] = field(default_factory=list)
    enum_values: list[str] = field(default_factory=list)
    description: str | None = None

    def get_field(self, name: str) -> FieldInfo | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_input_field(self, name: str) -> FieldInfo | None:
        for f in self.input_fields:
            if f.name == name:
                return f
        return None

    @property
    def is_composite(self) -> bool:
        """True for types that require a selection set."""
        return self.kind in (OBJECT, INTERFACE, UNION)


@dataclass
class ContentTypeInfo:
    """A schema type that represents an editable content entity."""
    name: str
    fields: dict[str, FieldInfo] = field(default_factory=dict)
    interfaces: list[str] = field(default_factory=list)
    description: str | None = None

    @property
    def searchable_fields(self) -> list[str]:
        return [name for name, f in self.fields.items() if f.is_searchable]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "interfaces": list(self.interfaces),
            "fields": [f.to_dict() for f in self.fields.values()],
        }


@dataclass(frozen=True)
class SchemaSnapshot:
    """Everything learned from one introspection fetch.

    A snapshot is never edited in place; a refresh builds a new one.
    """
    types: dict[str, TypeInfo]
    query_type_name: str
    content_types: dict[str, ContentTypeInfo]
    searchable_fields: frozenset[str]
    filterable_fields: frozenset[str]
    content_query_field: str | None = None
    metadata_field: str | None = None

    def get_type(self, name: str) -> TypeInfo | None:
        return self.types.get(name)

    @property
    def query_type(self) -> TypeInfo | None:
        return self.types.get(self.query_type_name)

    @property
    def query_fields(self) -> list[FieldInfo]:
        query_type = self.query_type
        return list(query_type.fields) if query_type else []


@dataclass
class CacheEntry:
    """A fragment held in the memory tier."""
    content: str
    cached_at: datetime
    hit_count: int = 0


@dataclass
class CacheMetadata:
    """The `metadata.json` sidecar of a cache instance directory."""
    schema_version: str
    endpoint: str
    generated: str
    component_types: list[str] = field(default_factory=list)
    fragment_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "endpoint": self.endpoint,
            "generated": self.generated,
            "componentTypes": list(self.component_types),
            "fragmentCount": self.fragment_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheMetadata":
        return cls(
            schema_version=data.get("schemaVersion", ""),
            endpoint=data.get("endpoint", ""),
            generated=data.get("generated", ""),
            component_types=list(data.get("componentTypes", [])),
            fragment_count=int(data.get("fragmentCount", 0)),
        )


@dataclass
class SchemaField:
    """A content-type property as the field mapper sees it."""
    name: str
    display_name: str = ""
    type: str = "String"
    required: bool = False
    description: str | None = None

    def __post_init__(self):
        if not self.display_name:
            self.display_name = self.name


@dataclass
class ContentTypeSchema:
    """The editable fields of one content type."""
    name: str
    display_name: str
    fields: list[SchemaField] = field(default_factory=list)
    description: str | None = None

    @property
    def required_fields(self) -> list[str]:
        return [f.name for f in self.fields if f.required]


@dataclass
class FieldMapping:
    """A suggested mapping from a caller-supplied name to a schema field."""
    user_field: str
    suggested_field: str
    confidence: str  # 'high' | 'medium' | 'low'
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {
            "userField": self.user_field,
            "suggestedField": self.suggested_field,
            "confidence": self.confidence,
            "reason": self.reason,
        }
