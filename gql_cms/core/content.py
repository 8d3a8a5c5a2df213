"""Content operations: build a document with the query builder and run it."""

from typing import Any

from ..logging_config import get_logger
from .cache import ALL_COMPONENTS, FragmentCache
from .errors import NotFoundError
from .executor import GraphClient
from .fragments import FragmentGenerator
from .query_builder import BuiltQuery, DynamicQueryBuilder, QueryBuilderOptions

logger = get_logger("content")


class ContentService:
    """Runs the query builder's documents against the Graph API.

    Every operation returns `{"items", "total"}` (plus `"facets"` where
    requested) taken from the content collection field of the response.

    Example:
        service = ContentService(graph_client, builder, fragment_cache, generator)
        page = await service.get_by_path("/en/about/")
    """

    def __init__(
        self,
        graph_client: GraphClient,
        builder: DynamicQueryBuilder,
        fragment_cache: FragmentCache,
        fragment_generator: FragmentGenerator,
    ):
        self.graph_client = graph_client
        self.builder = builder
        self.fragment_cache = fragment_cache
        self.fragment_generator = fragment_generator

    async def execute(self, built: BuiltQuery) -> dict[str, Any]:
        logger.debug(f"Executing {built.operation_name} with variables {built.variables}")
        data = await self.graph_client.query(built.query, built.variables, built.operation_name)
        collection = (data or {}).get(self.builder.content_query_field) or {}
        result: dict[str, Any] = {
            "items": collection.get("items") or [],
            "total": collection.get("total"),
        }
        if "facets" in collection:
            result["facets"] = collection["facets"]
        return result

    async def search(
        self,
        query: str,
        *,
        limit: int = 10,
        skip: int = 0,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        include_facets: bool = False,
        options: QueryBuilderOptions | None = None,
    ) -> dict[str, Any]:
        built = await self.builder.build_search_query(
            query,
            limit=limit,
            skip=skip,
            locale=locale,
            filters=filters,
            include_score=True,
            include_facets=include_facets,
            options=options,
        )
        return await self.execute(built)

    async def list_content(
        self,
        *,
        limit: int = 20,
        skip: int = 0,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        order_by: dict[str, str] | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> dict[str, Any]:
        built = await self.builder.build_list_query(
            limit=limit, skip=skip, locale=locale, filters=filters, order_by=order_by, options=options
        )
        return await self.execute(built)

    async def get(
        self,
        content_id: str,
        *,
        locale: str | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> dict[str, Any]:
        """One item by key, GUID or id.

        Raises:
            NotFoundError: If no item matches
        """
        built = await self.builder.build_get_by_id_query(content_id, locale=locale, options=options)
        items = (await self.execute(built))["items"]
        if not items:
            raise NotFoundError(f"Content not found: {content_id}")
        return items[0]

    async def get_by_path(
        self,
        path: str,
        *,
        locale: str | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> dict[str, Any]:
        built = await self.builder.build_get_by_path_query(path, locale=locale, options=options)
        items = (await self.execute(built))["items"]
        if not items:
            raise NotFoundError(f"No content found at path: {path}")
        return items[0]

    async def faceted_search(
        self,
        facets: dict[str, Any],
        *,
        query: str | None = None,
        limit: int = 10,
        skip: int = 0,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> dict[str, Any]:
        built = await self.builder.build_faceted_search_query(
            facets, search_term=query, limit=limit, skip=skip, locale=locale, filters=filters, options=options
        )
        result = await self.execute(built)
        result.setdefault("facets", {})
        return result

    async def related(
        self,
        content_id: str,
        *,
        direction: str = "outgoing",
        limit: int = 20,
        options: QueryBuilderOptions | None = None,
    ) -> dict[str, Any]:
        """Referenced (outgoing) or referencing (incoming) items."""
        built = await self.builder.build_related_content_query(
            content_id, direction=direction, limit=limit, options=options
        )
        result = await self.execute(built)
        if direction == "incoming":
            return {"direction": direction, **result}

        # Outgoing references hang below the single source item
        if not result["items"]:
            raise NotFoundError(f"Content not found: {content_id}")
        references = result["items"][0].get("_references") or []
        return {"direction": direction, "items": references, "total": len(references)}

    async def get_components_fragment(self, *, refresh: bool = False) -> str:
        """The AllComponents fragment: memory, then disk, then regenerated.

        Regeneration also stores the per-component fragments and records
        the component types in the instance metadata.
        """
        await self.fragment_cache.refresh_instance()
        if not refresh:
            cached = await self.fragment_cache.get_cached_fragment(ALL_COMPONENTS)
            if cached is not None:
                return cached

        logger.info("Generating AllComponents fragment")
        fragment = await self.fragment_generator.generate_all_components_fragment()
        if not fragment.content:
            return ""
        result =await self.fragment_cache.prewarm_cache(fragment.component_types, fragment.content)
        if not result.ok:
            logger.warning(f"AllComponents fragment kept in memory only: {result.error}")
        components = await self.fragment_generator.generate_component_fragments()
        await self.fragment_cache.cache_component_fragments(components)
        return fragment.content
