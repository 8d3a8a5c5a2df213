"""Core modules for schema discovery and query synthesis."""

from .auth import (
    Auth,
    BasicAuth,
    BearerAuth,
    HmacAuth,
    NoAuth,
    SingleKeyAuth,
)
from .cache import CacheWriteResult, FragmentCache
from .cma import ContentManagementClient
from .content import ContentService
from .discovery import DiscoveryResult, DiscoveryService
from .discovery_cache import CachedDiscovery, DiscoveryCache
from .errors import (
    APIError,
    AuthenticationError,
    CmsError,
    GraphQLError,
    NotFoundError,
    QueryCapabilityError,
    RateLimitError,
    RequestTimeoutError,
    ValidationError,
)
from .executor import GraphClient
from .field_mapper import CmaFieldSource, FieldMapper, GraphFieldSource, MappingResult
from .fragments import FragmentGenerator, GeneratedFragment
from .introspector import SchemaIntrospector, build_snapshot
from .ir import (
    ArgumentInfo,
    CacheEntry,
    CacheMetadata,
    ContentTypeInfo,
    ContentTypeSchema,
    FieldInfo,
    FieldMapping,
    ListTypeRef,
    NamedTypeRef,
    NonNullTypeRef,
    SchemaField,
    SchemaSnapshot,
    TypeInfo,
    TypeRef,
    unwrap_type,
)
from .query_builder import BuiltQuery, DynamicQueryBuilder, QueryBuilderOptions
from .type_matcher import CmaTypeSource, ContentTypeMatcher, ContentTypeSummary, GraphTypeSource, TypeMatchResult

__all__ = [
    # Auth
    "Auth",
    "SingleKeyAuth",
    "HmacAuth",
    "BearerAuth",
    "BasicAuth",
    "NoAuth",
    # Errors
    "CmsError",
    "AuthenticationError",
    "APIError",
    "NotFoundError",
    "RateLimitError",
    "RequestTimeoutError",
    "GraphQLError",
    "ValidationError",
    "QueryCapabilityError",
    # IR types
    "TypeRef",
    "NamedTypeRef",
    "ListTypeRef",
    "NonNullTypeRef",
    "unwrap_type",
    "ArgumentInfo",
    "FieldInfo",
    "TypeInfo",
    "ContentTypeInfo",
    "SchemaSnapshot",
    "CacheEntry",
    "CacheMetadata",
    "SchemaField",
    "ContentTypeSchema",
    "FieldMapping",
    # Clients
    "GraphClient",
    "ContentManagementClient",
    # Introspection
    "SchemaIntrospector",
    "build_snapshot",
    # Caches
    "FragmentCache",
    "CacheWriteResult",
    "DiscoveryCache",
    "CachedDiscovery",
    # Fragments
    "FragmentGenerator",
    "GeneratedFragment",
    # Field Mapper
    "FieldMapper",
    "GraphFieldSource",
    "CmaFieldSource",
    "MappingResult",
    # Query Builder
    "DynamicQueryBuilder",
    "QueryBuilderOptions",
    "BuiltQuery",
    # Type Matcher
    "ContentTypeMatcher",
    "ContentTypeSummary",
    "GraphTypeSource",
    "CmaTypeSource",
    "TypeMatchResult",
    # Services
    "DiscoveryService",
    "DiscoveryResult",
    "ContentService",
]
