"""MCP server exposing the discovery and query tools.

`AppContext` wires one instance of every component from `Settings`;
`create_mcp_server` registers the tools on a FastMCP server. Tools return
JSON text, or the formatted error when a call fails.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable

import httpx
from mcp.server.fastmcp import FastMCP

from .config import Settings, build_graph_auth
from .core.cache import FragmentCache
from .core.cma import ContentManagementClient
from .core.content import ContentService
from .core.discovery import DiscoveryService
from .core.discovery_cache import DiscoveryCache
from .core.errors import CmsError, ValidationError
from .core.executor import GraphClient
from .core.field_mapper import CmaFieldSource, FieldMapper, GraphFieldSource
from .core.fragments import FragmentGenerator
from .core.introspector import SchemaIntrospector
from .core.query_builder import DynamicQueryBuilder, QueryBuilderOptions
from .core.type_matcher import CmaTypeSource, ContentTypeMatcher, GraphTypeSource
from .logging_config import get_logger

logger = get_logger("server")

SERVER_NAME = "gql-cms"

BUILD_OPERATIONS = ("search", "list", "get", "path", "facets", "related")

CACHE_SCOPES = ("all", "schema", "discovery", "fragments")


@dataclass
class AppContext:
    """Owns every component of one running server."""
    settings: Settings
    graph_client: GraphClient
    cma_client: ContentManagementClient | None
    discovery_cache: DiscoveryCache
    introspector: SchemaIntrospector
    fragment_cache: FragmentCache
    fragment_generator: FragmentGenerator
    query_builder: DynamicQueryBuilder
    type_matcher: ContentTypeMatcher
    field_mapper: FieldMapper
    discovery: DiscoveryService
    content: ContentService

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        graph_transport: httpx.AsyncBaseTransport | None = None,
        cma_transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AppContext":
        options = settings.options
        graph_client = GraphClient(
            settings.graph.endpoint,
            build_graph_auth(settings.graph),
            timeout=options.timeout,
            max_retries=options.max_retries,
            transport=graph_transport,
        )
        cma_client = None
        if settings.cma is not None:
            cma_client = ContentManagementClient(
                settings.cma.base_url,
                settings.cma.client_id,
                settings.cma.client_secret,
                grant_type=settings.cma.grant_type,
                scope=settings.cma.scope,
                token_endpoint=settings.cma.token_endpoint,
                timeout=options.timeout,
                max_retries=options.max_retries,
                transport=cma_transport,
            )

        discovery_cache = DiscoveryCache()
        introspector = SchemaIntrospector(graph_client, discovery_cache)
        if cma_client is not None:
            type_source = CmaTypeSource(cma_client, discovery_cache)
            field_source = CmaFieldSource(cma_client, discovery_cache)
        else:
            type_source = GraphTypeSource(introspector)
            field_source = GraphFieldSource(introspector)

        fragment_cache = FragmentCache(options.cache_dir, settings.graph.endpoint, introspector)
        fragment_generator = FragmentGenerator(introspector)
        query_builder = DynamicQueryBuilder(introspector)
        return cls(
            settings=settings,
            graph_client=graph_client,
            cma_client=cma_client,
            discovery_cache=discovery_cache,
            introspector=introspector,
            fragment_cache=fragment_cache,
            fragment_generator=fragment_generator,
            query_builder=query_builder,
            type_matcher=ContentTypeMatcher(type_source),
            field_mapper=FieldMapper(field_source),
            discovery=DiscoveryService(introspector, type_source, field_source, discovery_cache),
            content=ContentService(graph_client, query_builder, fragment_cache, fragment_generator),
        )

    async def invalidate(self, scope: str = "all", content_type: str | None = None) -> list[str]:
        """Drop cached state; returns the names of the cleared tiers."""
        if scope not in CACHE_SCOPES:
            raise ValidationError(f"scope must be one of {', '.join(CACHE_SCOPES)}, got {scope!r}")
        cleared = []
        if scope in ("all", "fragments"):
            await self.fragment_cache.invalidate_cache()
            cleared.append("fragments")
        if scope in ("all", "discovery"):
            if content_type:
                self.discovery_cache.invalidate_content_type(content_type)
            else:
                self.discovery_cache.invalidate_all()
            cleared.append("discovery")
        if scope in ("all", "schema"):
            self.introspector.invalidate()
            cleared.append("schema")
        return cleared

    async def close(self):
        await self.graph_client.close()
        if self.cma_client is not None:
            await self.cma_client.close()


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


async def run_tool(call: Awaitable[Any]) -> str:
    """Await a tool body and render its result or its error as text."""
    try:
        return _to_json(await call)
    except CmsError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return e.format()
    except httpx.HTTPError as e:
        logger.error(f"HTTP error: {e}")
        return f"Error: {e}\nCode: HTTP_ERROR"


def _options(
    content_types: list[str] | None = None,
    include_metadata: bool = True,
    max_depth: int = 1,
    fields: list[str] | None = None,
) -> QueryBuilderOptions:
    return QueryBuilderOptions(
        include_metadata=include_metadata,
        max_depth=max_depth,
        include_fields=fields,
        content_types=content_types,
    )


def create_mcp_server(context: AppContext) -> FastMCP:
    """Create a FastMCP server wired to the given context."""

    mcp = FastMCP(
        SERVER_NAME,
        instructions=(
            "Query a headless CMS through its GraphQL delivery API. "
            "Start with graph_discover to learn the content types and fields."
        ),
    )

    @mcp.tool()
    async def graph_discover(target: str = "types", content_type: str | None = None, use_cache: bool = True) -> str:
        """Discover content types, fields or a content type's schema.

        target is one of types, fields, schema, all; fields and schema need content_type.
        """
        async def body():
            result = await context.discovery.discover(target, content_type, use_cache=use_cache)
            return result.to_dict()
        return await run_tool(body())

    @mcp.tool()
    async def graph_search(
        query: str,
        content_types: list[str] | None = None,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int = 10,
        skip: int = 0,
        include_facets: bool = False,
    ) -> str:
        """Full-text search over content, ranked by relevance."""
        return await run_tool(
            context.content.search(
                query,
                limit=limit,
                skip=skip,
                locale=locale,
                filters=filters,
                include_facets=include_facets,
                options=_options(content_types),
            )
        )

    @mcp.tool()
    async def graph_list(
        content_types: list[str] | None = None,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        order_by: dict[str, str] | None = None,
        limit: int = 20,
        skip: int = 0,
    ) -> str:
        """List content with optional filters and ordering ({"field": "ASC"|"DESC"})."""
        return await run_tool(
            context.content.list_content(
                limit=limit, skip=skip, locale=locale, filters=filters, order_by=order_by,
                options=_options(content_types),
            )
        )

    @mcp.tool()
    async def graph_get(
        content_id: str,
        locale: str | None = None,
        content_types: list[str] | None = None,
        max_depth: int = 1,
        fields: list[str] | None = None,
    ) -> str:
        """Get one content item by key, GUID or id."""
        return await run_tool(
            context.content.get(content_id, locale=locale, options=_options(content_types, True, max_depth, fields))
        )

    @mcp.tool()
    async def graph_get_by_path(path: str, locale: str | None = None, max_depth: int = 1) -> str:
        """Get one content item by its URL path."""
        return await run_tool(
            context.content.get_by_path(path, locale=locale, options=_options(max_depth=max_depth))
        )

    @mcp.tool()
    async def graph_faceted_search(
        facets: dict[str, Any],
        query: str | None = None,
        content_types: list[str] | None = None,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int = 10,
        skip: int = 0,
    ) -> str:
        """Search with facet counts.

        facets maps a name to {"field": "dotted.path", "limit": N}.
        """
        return await run_tool(
            context.content.faceted_search(
                facets, query=query, limit=limit, skip=skip, locale=locale, filters=filters,
                options=_options(content_types),
            )
        )

    @mcp.tool()
    async def graph_related(content_id: str, direction: str = "outgoing", limit: int = 20) -> str:
        """Content referenced by (outgoing) or referencing (incoming) an item."""
        return await run_tool(context.content.related(content_id, direction=direction, limit=limit))

    @mcp.tool()
    async def graph_build_query(
        operation: str,
        query: str | None = None,
        content_id: str | None = None,
        path: str | None = None,
        facets: dict[str, Any] | None = None,
        content_types: list[str] | None = None,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int = 10,
        max_depth: int = 1,
    ) -> str:
        """Return a generated GraphQL document and its variables without running it.

        operation is one of search, list, get, path, facets, related.
        """
        async def body():
            built = await build_query(
                context.query_builder,
                operation,
                query=query,
                content_id=content_id,
                path=path,
                facets=facets,
                locale=locale,
                filters=filters,
                limit=limit,
                options=_options(content_types, True, max_depth),
            )
            return built.to_dict()
        return await run_tool(body())

    @mcp.tool()
    async def graph_fragment(refresh: bool = False) -> str:
        """The generated AllComponents fragment for the current schema."""
        async def body():
            return {"name": "AllComponents", "content": await context.content.get_components_fragment(refresh=refresh)}
        return await run_tool(body())

    @mcp.tool()
    async def type_match(requested_type: str, context_hint: str | None = None) -> str:
        """Find the content type that best matches a free-text name."""
        async def body():
            return (await context.type_matcher.match(requested_type, context_hint)).to_dict()
        return await run_tool(body())

    @mcp.tool()
    async def type_discover(suggested_type: str | None = None, include_descriptions: bool = False) -> str:
        """List content types grouped into pages, blocks and other, or rank them against a suggestion."""
        return await run_tool(context.type_matcher.discover_types(suggested_type, include_descriptions))

    @mcp.tool()
    async def field_map(content_type: str, properties: dict[str, Any]) -> str:
        """Map informal property names onto the fields of a content type."""
        async def body():
            return (await context.field_mapper.map_fields_dynamically(content_type, properties)).to_dict()
        return await run_tool(body())

    @mcp.tool()
    async def cache_invalidate(scope: str = "all", content_type: str | None = None) -> str:
        """Clear cached schema, discovery results or fragments.

        scope is one of all, schema, discovery, fragments.
        """
        async def body():
            return {"cleared": await context.invalidate(scope, content_type)}
        return await run_tool(body())

    @mcp.tool()
    async def cache_stats() -> str:
        """Statistics of the fragment and discovery caches."""
        async def body():
            return {
                "schemaState": context.introspector.state,
                "fragments": context.fragment_cache.get_cache_stats(),
                "discovery": context.discovery_cache.get_stats(),
            }
        return await run_tool(body())

    return mcp


async def build_query(
    builder: DynamicQueryBuilder,
    operation: str,
    *,
    query: str | None = None,
    content_id: str | None = None,
    path: str | None = None,
    facets: dict[str, Any] | None = None,
    locale: str | None = None,
    filters: dict[str, Any] | None = None,
    limit: int = 10,
    options: QueryBuilderOptions | None = None,
):
    """Dispatch to the builder method of one operation name."""
    if operation not in BUILD_OPERATIONS:
        raise ValidationError(f"operation must be one of {', '.join(BUILD_OPERATIONS)}, got {operation!r}")
    if operation == "search":
        if not query:
            raise ValidationError("query is required for search")
        return await builder.build_search_query(query, limit=limit, locale=locale, filters=filters, options=options)
    if operation == "list":
        return await builder.build_list_query(limit=limit, locale=locale, filters=filters, options=options)
    if operation == "facets":
        return await builder.build_faceted_search_query(
            facets or {}, search_term=query, limit=limit, locale=locale, filters=filters, options=options
        )
    if operation == "path":
        if not path:
            raise ValidationError("path is required for path")
        return await builder.build_get_by_path_query(path, locale=locale, options=options)
    if not content_id:
        raise ValidationError(f"content_id is required for {operation}")
    if operation == "get":
        return await builder.build_get_by_id_query(content_id, locale=locale, options=options)
    return await builder.build_related_content_query(content_id, limit=limit, options=options)
