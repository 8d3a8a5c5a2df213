"""Dynamic query builder for the content collection of the Graph API.

Builds search, get-by-id, get-by-path, list, faceted-search and
related-content documents from the discovered schema. No content type or
field name is assumed: the root collection field, filter shapes and
selections are all resolved against the current SchemaSnapshot.

Caller-supplied search terms, ids, paths, locales, limits and offsets
travel as variables. Filter values and type names are rendered through
`to_graphql_literal`, which escapes strings.
"""

import copy
import json
import re
from dataclasses import dataclass, field
from typing import Any

from ..logging_config import get_logger
from .errors import QueryCapabilityError, ValidationError
from .introspector import CONTENT_QUERY_FIELD_NAMES, SchemaIntrospector, resolve_input_path
from .ir import (
    ENUM,
    INPUT_OBJECT,
    INTERFACE,
    OBJECT,
    SCALAR,
    FieldInfo,
    SchemaSnapshot,
    TypeInfo,
    is_required_type,
    print_type_ref,
)

logger = get_logger("query_builder")

NAME_RE = re.compile(r"^[_A-Za-z][_0-9A-Za-z]*$")

LEAF_KINDS = (SCALAR, ENUM)

FULLTEXT_FIELD = "_fulltext"
SCORE_FIELD = "_score"
REFERENCES_FIELD = "_references"

# Filter shapes, tried in order against the where-input
TYPE_FILTER_PATHS = ("_metadata.types", "_metadata.contentType", "contentType", "_type", "__typename")
LOCALE_FILTER_PATHS = ("_metadata.locale", "locale", "language")
ID_FILTER_PATHS = ("_metadata.key", "_metadata.guid", "id", "contentLink.id", "contentLink.guidValue")
PATH_FILTER_PATHS = ("_metadata.url.hierarchical", "_metadata.url.default", "url", "path")
SEARCH_OPERATORS = ("contains", "match")
ID_SCALARS = ("String", "ID")

DEFAULT_FACETS = {
    "types": {"field": "_metadata.types", "limit": 10},
    "locale": {"field": "_metadata.locale", "limit": 10},
}

STATE_UNINITIALIZED = "uninitialized"
STATE_INITIALIZING = "initializing"
STATE_READY = "ready"


@dataclass(frozen=True)
class Variable:
    """Reference to an operation variable inside a literal (`$name`)."""
    name: str


@dataclass(frozen=True)
class EnumValue:
    """Bare enum literal (`DESC`)."""
    name: str


def check_name(name: str, what: str = "name") -> str:
    """Raise ValidationError unless `name` is a valid GraphQL name."""
    if not isinstance(name, str) or not NAME_RE.match(name):
        raise ValidationError(f"Invalid GraphQL {what}: {name!r}")
    return name


def check_path(path: str, what: str = "field path") -> list[str]:
    return [check_name(part, what) for part in str(path).split(".")]


def to_graphql_literal(value: Any) -> str:
    """Render a Python value as a GraphQL input literal.

    Strings are escaped, dict keys must be valid names, `Variable` renders
    as `$name` and `EnumValue` as a bare name.
    """
    if isinstance(value, Variable):
        return f"${value.name}"
    if isinstance(value, EnumValue):
        return check_name(value.name, "enum value")
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return json.dumps(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(to_graphql_literal(v) for v in value) + "]"
    if isinstance(value, dict):
        items = [f"{check_name(k, 'input field')}: {to_graphql_literal(v)}" for k, v in value.items()]
        return "{" + ", ".join(items) + "}"
    raise ValidationError(f"Cannot render {type(value).__name__} as a GraphQL literal")


def nest(path: str, value: Any) -> dict[str, Any]:
    """`nest("a.b", v)` -> `{"a": {"b": v}}`."""
    result: Any = value
    for part in reversed(check_path(path)):
        result = {part: result}
    return result


def _mergeable(target: dict, update: dict) -> bool:
    for key, value in update.items():
        if key not in target:
            continue
        if not (isinstance(target[key], dict) and isinstance(value, dict) and _mergeable(target[key], value)):
            return False
    return True


def _deep_merge(target: dict, update: dict) -> None:
    for key, value in update.items():
        if key in target:
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def merge_conditions(conditions: list[dict[str, Any]]) -> dict[str, Any]:
    """AND independent conditions into one input object.

    Conditions are deep-merged; any that would overwrite a leaf go into
    `_and` instead, so no key ever appears twice.
    """
    merged: dict[str, Any] = {}
    conflicting: list[dict[str, Any]] = []
    for condition in conditions:
        if _mergeable(merged, condition):
            _deep_merge(merged, condition)
        else:
            conflicting.append(condition)
    if not conflicting:
        return merged
    if "_and" in merged:
        return {"_and": [merged, *conflicting]}
    merged["_and"] = conflicting
    return merged


def filter_conditions(filters: dict[str, Any]) -> list[dict[str, Any]]:
    """Caller filters: scalar -> eq, list -> in, dict -> operator object."""
    conditions = []
    for key, value in filters.items():
        if isinstance(value, (list, tuple)):
            operator = {"in": list(value)}
        elif isinstance(value, dict):
            operator = {check_name(op, "filter operator"): v for op, v in value.items()}
        else:
            operator = {"eq": value}
        conditions.append(nest(key, operator))
    return conditions


def clean_query(query: str) -> str:
    """Drop blank lines and trailing whitespace."""
    lines = [line.rstrip() for line in query.split("\n")]
    return "\n".join(line for line in lines if line.strip()).strip()


@dataclass
class QueryBuilderOptions:
    """Selection options shared by every build method."""
    include_metadata: bool = True
    max_depth: int = 1  # object nesting below each content type; 0 = scalars only
    include_fields: list[str] | None = None
    exclude_fields: list[str] | None = None
    content_types: list[str] | None = None


@dataclass
class BuiltQuery:
    """A generated document and the variables it declares."""
    query: str
    variables: dict[str, Any] = field(default_factory=dict)
    operation_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "variables": self.variables, "operationName": self.operation_name}


class _Variables:
    def __init__(self):
        self.declarations: dict[str, str] = {}
        self.values: dict[str, Any] = {}

    def use(self, name: str, type_str: str, value: Any) -> Variable:
        self.declarations[name] = type_str
        self.values[name] = value
        return Variable(name)

    def signature(self) -> str:
        if not self.declarations:
            return ""
        return "(" + ", ".join(f"${n}: {t}" for n, t in self.declarations.items()) + ")"


@dataclass
class _Context:
    """Schema facts resolved once per build."""
    snapshot: SchemaSnapshot
    root: FieldInfo
    output_type: TypeInfo
    items_type: TypeInfo
    where_type: TypeInfo | None
    has_where: bool
    variables: _Variables = field(default_factory=_Variables)


class DynamicQueryBuilder:
    """Synthesizes content queries from the discovered schema.

    Build methods initialize the builder on first use; `initialize()` may
    also be awaited up front to fail fast on an unsupported schema.

    Example:
        builder = DynamicQueryBuilder(introspector)
        built = await builder.build_search_query(
            "climate", limit=5, options=QueryBuilderOptions(content_types=["ArticlePage"])
        )
        data = await graph_client.query(built.query, built.variables, built.operation_name)
    """

    def __init__(self, introspector: SchemaIntrospector):
        self.introspector = introspector
        self._snapshot: SchemaSnapshot | None = None
        self._content_field: str | None = None

    @property
    def state(self) -> str:
        if self._snapshot is not None and self.introspector.snapshot is self._snapshot:
            return STATE_READY
        if self.introspector.state == STATE_INITIALIZING:
            return STATE_INITIALIZING
        return STATE_UNINITIALIZED

    async def initialize(self) -> None:
        """Load the schema and locate the content collection field.

        Raises:
            QueryCapabilityError: If the schema has no content query field
        """
        snapshot = await self.introspector.initialize()
        if snapshot is self._snapshot:
            return
        if not snapshot.content_query_field:
            raise QueryCapabilityError(
                "content query field",
                "No content query field found in GraphQL schema "
                f"(looked for {', '.join(CONTENT_QUERY_FIELD_NAMES)} or a collection of content items)",
            )
        self._snapshot = snapshot
        self._content_field = snapshot.content_query_field
        logger.info(f"Dynamic query builder initialized (content field: {self._content_field})")

    @property
    def content_query_field(self) -> str | None:
        return self._content_field

    # Build operations

    async def build_search_query(
        self,
        search_term: str,
        *,
        limit: int = 10,
        skip: int = 0,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        include_score: bool = False,
        include_facets: bool = False,
        options: QueryBuilderOptions | None = None,
    ) -> BuiltQuery:
        """Full-text search across the searchable fields."""
        options = options or QueryBuilderOptions()
        ctx = await self._context()
        conditions = []
        if search_term:
            conditions.append(self._search_condition(ctx, search_term))
        conditions += self._common_conditions(ctx, options.content_types, locale, filters)

        args = self._collection_args(ctx, conditions, limit=limit, skip=skip)
        if include_score:
            args += self._score_order(ctx)
        extra = self._facet_lines(ctx, DEFAULT_FACETS, "    ", verify=True) if include_facets else []
        return self._render(ctx, "DynamicSearch", args, options, include_score=include_score, extra=extra)

    async def build_list_query(
        self,
        *,
        limit: int = 20,
        skip: int = 0,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        order_by: dict[str, str] | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> BuiltQuery:
        """List content with optional filters and ordering."""
        options = options or QueryBuilderOptions()
        ctx = await self._context()
        conditions = self._common_conditions(ctx, options.content_types, locale, filters)
        args = self._collection_args(ctx, conditions, limit=limit, skip=skip)
        if order_by:
            args += self._order_by(ctx, order_by)
        return self._render(ctx, "ListContent", args, options)

    async def build_get_by_id_query(
        self,
        content_id: str,
        *,
        locale: str | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> BuiltQuery:
        """Fetch one item by key/GUID/id, OR'd over the identifier fields the schema has."""
        options = options or QueryBuilderOptions()
        ctx = await self._context()
        conditions = [self._identifier_condition(ctx, ctx.where_type, content_id)]
        conditions += self._common_conditions(ctx, None, locale, None)
        args = self._collection_args(ctx, conditions, single=True)
        return self._render(ctx, "GetContentById", args, options)

    async def build_get_by_path_query(
        self,
        path: str,
        *,
        locale: str | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> BuiltQuery:
        """Fetch one item by URL path."""
        options = options or QueryBuilderOptions()
        ctx = await self._context()
        self._require_where(ctx, "path filter")
        branches, scalar = self._operator_candidates(ctx, ctx.where_type, PATH_FILTER_PATHS, "eq", ID_SCALARS)
        if not branches:
            raise QueryCapabilityError(
                "path filter",
                f"No path/url filter field found in where-input of {ctx.root.name} "
                f"(tried {', '.join(PATH_FILTER_PATHS)})",
            )
        var = ctx.variables.use("path", f"{scalar}!", path)
        conditions = [_or_condition([nest(p, {"eq": var}) for p in branches])]
        conditions += self._common_conditions(ctx, None, locale, None)
        args = self._collection_args(ctx, conditions, single=True)
        return self._render(ctx, "GetContentByPath", args, options)

    async def build_faceted_search_query(
        self,
        facets: dict[str, Any],
        *,
        search_term: str | None = None,
        limit: int = 10,
        skip: int = 0,
        locale: str | None = None,
        filters: dict[str, Any] | None = None,
        options: QueryBuilderOptions | None = None,
    ) -> BuiltQuery:
        """Search plus one facet selection per entry of `facets`.

        Args:
            facets: `{name: {"field": "dotted.path", "limit": N}}`; names and
                paths are checked for GraphQL syntax only, not existence
        """
        options = options or QueryBuilderOptions()
        if not facets:
            raise ValidationError("At least one facet is required")
        ctx = await self._context()
        if ctx.output_type.get_field("facets") is None:
            raise QueryCapabilityError("facets", f"{ctx.output_type.name} has no facets field")

        conditions = []
        if search_term:
            conditions.append(self._search_condition(ctx, search_term))
        conditions += self._common_conditions(ctx, options.content_types, locale, filters)
        args = self._collection_args(ctx, conditions, limit=limit, skip=skip)
        extra = self._facet_lines(ctx, facets, "    ", verify=False)
        return self._render(ctx, "FacetedSearch", args, options, extra=extra)

    async def build_related_content_query(
        self,
        content_id: str,
        *,
        direction: str = "outgoing",
        limit: int = 20,
        options: QueryBuilderOptions | None = None,
    ) -> BuiltQuery:
        """Items referenced by (outgoing) or referencing (incoming) an item."""
        options = options or QueryBuilderOptions()
        if direction not in ("outgoing", "incoming"):
            raise ValidationError(f"direction must be 'outgoing' or 'incoming', got {direction!r}")
        ctx = await self._context()

        if direction == "incoming":
            self._require_where(ctx, "references filter")
            refs_input = None
            if ctx.where_type is not None:
                refs = ctx.where_type.get_input_field(REFERENCES_FIELD)
                if refs is None:
                    raise QueryCapabilityError(
                        "references filter", f"Where-input of {ctx.root.name} has no {REFERENCES_FIELD} field"
                    )
                refs_input = ctx.snapshot.get_type(refs.type)
            condition = {REFERENCES_FIELD: self._identifier_condition(ctx, refs_input, content_id)}
            args = self._collection_args(ctx, [condition], limit=limit)
            return self._render(ctx, "GetRelatedContent", args, options)

        refs_field = ctx.items_type.get_field(REFERENCES_FIELD)
        refs_type = ctx.snapshot.get_type(refs_field.type) if refs_field else None
        if refs_type is None or refs_type.kind not in (OBJECT, INTERFACE):
            raise QueryCapabilityError("references", f"{ctx.items_type.name} has no {REFERENCES_FIELD} field")

        condition = self._identifier_condition(ctx, ctx.where_type, content_id)
        args = self._collection_args(ctx, [condition], single=True)
        ref_args = ""
        limit_arg = refs_field.get_arg("limit")
        if limit_arg is not None:
            ref_args = f"(limit: {to_graphql_literal(ctx.variables.use('limit', print_type_ref(limit_arg.type_ref), limit))})"
        ref_lines = self._items_body(ctx, refs_type, options, "        ")
        nested = [f"      {REFERENCES_FIELD}{ref_args} {{", *ref_lines, "      }"]
        return self._render(ctx, "GetRelatedContent", args, options, items_extra=nested)

    # Schema resolution

    async def _context(self) -> _Context:
        await self.initialize()
        snapshot = self._snapshot
        query_type = snapshot.query_type
        root = query_type.get_field(self._content_field)
        output_type = snapshot.get_type(root.type)
        items_type = snapshot.get_type(output_type.get_field("items").type)
        where_arg = root.get_arg("where")
        where_type = snapshot.get_type(where_arg.type) if where_arg else None
        if where_type is not None and where_type.kind != INPUT_OBJECT:
            where_type = None
        return _Context(
            snapshot=snapshot,
            root=root,
            output_type=output_type,
            items_type=items_type,
            where_type=where_type,
            has_where=where_arg is not None,
        )

    def _require_where(self, ctx: _Context, capability: str) -> None:
        if not ctx.has_where:
            raise QueryCapabilityError(capability, f"Field {ctx.root.name} has no where argument")

    def _leaf_filter(self, ctx: _Context, input_type: TypeInfo, path: str) -> TypeInfo | None:
        found = resolve_input_path(ctx.snapshot, input_type, path)
        if found is None:
            return None
        leaf = ctx.snapshot.get_type(found.type)
        return leaf if leaf is not None and leaf.kind == INPUT_OBJECT else None

    def _operator_candidates(
        self,
        ctx: _Context,
        input_type: TypeInfo | None,
        paths: tuple[str, ...],
        operator: str,
        scalars: tuple[str, ...],
    ) -> tuple[list[str], str]:
        """Paths whose filter accepts `operator` with one common scalar type.

        With an unknown input type the first three conventional paths are
        assumed to take String.
        """
        if input_type is None:
            return list(paths[:3]), "String"
        chosen: list[str] = []
        scalar = ""
        for path in paths:
            leaf = self._leaf_filter(ctx, input_type, path)
            op = leaf.get_input_field(operator) if leaf else None
            if op is None or op.type not in scalars:
                continue
            if not scalar:
                scalar = op.type
            if op.type == scalar:
                chosen.append(path)
        return chosen, scalar

    # Conditions

    def _search_condition(self, ctx: _Context, search_term: str) -> dict[str, Any]:
        self._require_where(ctx, "search")
        var = ctx.variables.use("searchTerm", "String", search_term)
        candidates = [FULLTEXT_FIELD] + sorted(ctx.snapshot.searchable_fields - {FULLTEXT_FIELD})
        branches = []
        for path in candidates:
            if ctx.where_type is None:
                if path != FULLTEXT_FIELD:
                    branches.append(nest(path, {"contains": var}))
                continue
            leaf = self._leaf_filter(ctx, ctx.where_type, path)
            if leaf is None:
                continue
            for op in SEARCH_OPERATORS:
                op_field = leaf.get_input_field(op)
                if op_field is not None and op_field.type == "String" and not op_field.is_list:
                    branches.append(nest(path, {op: var}))
                    break
        if not branches:
            raise QueryCapabilityError("search", f"No searchable field found in where-input of {ctx.root.name}")
        return _or_condition(branches)

    def _type_condition(self, ctx: _Context, content_types: list[str]) -> dict[str, Any] | None:
        names = sorted(set(content_types))
        if not ctx.has_where:
            logger.warning(f"{ctx.root.name} has no where argument; type filter dropped")
            return None
        if ctx.where_type is None:
            return nest(TYPE_FILTER_PATHS[0], {"in": names})
        for path in TYPE_FILTER_PATHS:
            leaf = self._leaf_filter(ctx, ctx.where_type, path)
            if leaf is None:
                continue
            if leaf.get_input_field("in"):
                return nest(path, {"in": names})
            if leaf.get_input_field("eq"):
                if len(names) == 1:
                    return nest(path, {"eq": names[0]})
                if ctx.where_type.get_input_field("_or"):
                    return _or_condition([nest(path, {"eq": n}) for n in names])
        logger.warning(
            f"No type filter field in {ctx.where_type.name} (tried {', '.join(TYPE_FILTER_PATHS)}); type filter dropped"
        )
        return None

    def _locale_condition(self, ctx: _Context, locale: str) -> dict[str, Any] | None:
        self._require_where(ctx, "locale filter")
        if ctx.where_type is None:
            path, scalar = LOCALE_FILTER_PATHS[0], "String"
        else:
            path, scalar = None, ""
            for candidate in LOCALE_FILTER_PATHS:
                leaf = self._leaf_filter(ctx, ctx.where_type, candidate)
                eq = leaf.get_input_field("eq") if leaf else None
                if eq is not None and eq.kind in LEAF_KINDS and not eq.is_list:
                    path, scalar = candidate, eq.type
                    break
            if path is None:
                logger.warning(f"No locale filter field in {ctx.where_type.name}; locale filter dropped")
                return None
        return nest(path, {"eq": ctx.variables.use("locale", scalar, locale)})

    def _identifier_condition(self, ctx: _Context, input_type: TypeInfo | None, content_id: str) -> dict[str, Any]:
        self._require_where(ctx, "id filter")
        branches, scalar = self._operator_candidates(ctx, input_type, ID_FILTER_PATHS, "eq", ID_SCALARS)
        if not branches:
            raise QueryCapabilityError(
                "id filter",
                f"No identifier filter field found in {input_type.name if input_type else 'where-input'} "
                f"(tried {', '.join(ID_FILTER_PATHS)})",
            )
        var = ctx.variables.use("id", f"{scalar}!", content_id)
        return _or_condition([nest(p, {"eq": var}) for p in branches])

    def _common_conditions(
        self,
        ctx: _Context,
        content_types: list[str] | None,
        locale: str | None,
        filters: dict[str, Any] | None,
    ) -> list[dict[str, Any]]:
        conditions = []
        if content_types:
            type_condition = self._type_condition(ctx, content_types)
            if type_condition:
                conditions.append(type_condition)
        if locale:
            locale_condition = self._locale_condition(ctx, locale)
            if locale_condition:
                conditions.append(locale_condition)
        if filters:
            self._require_where(ctx, "filters")
            conditions.extend(filter_conditions(filters))
        return conditions

    # Arguments

    def _collection_args(
        self,
        ctx: _Context,
        conditions: list[dict[str, Any]],
        *,
        limit: int | None = None,
        skip: int | None = None,
        single: bool = False,
    ) -> list[str]:
        """`where`, `limit` and `skip` arguments the root field supports.

        `single` renders a literal `limit: 1` instead of a variable.
        """
        args = []
        if conditions:
            args.append(f"where: {to_graphql_literal(merge_conditions(conditions))}")
        if single:
            if ctx.root.get_arg("limit") is not None:
                args.append("limit: 1")
        elif limit is not None:
            limit_arg = ctx.root.get_arg("limit")
            if limit_arg is not None:
                var = ctx.variables.use("limit", print_type_ref(limit_arg.type_ref), int(limit))
                args.append(f"limit: {to_graphql_literal(var)}")
        if skip is not None:
            skip_arg = ctx.root.get_arg("skip")
            if skip_arg is not None:
                var = ctx.variables.use("skip", print_type_ref(skip_arg.type_ref), int(skip))
                args.append(f"skip: {to_graphql_literal(var)}")
        return args

    def _order_input(self, ctx: _Context) -> TypeInfo | None:
        arg = ctx.root.get_arg("orderBy")
        order_type = ctx.snapshot.get_type(arg.type) if arg else None
        return order_type if order_type is not None and order_type.kind == INPUT_OBJECT else None

    def _score_order(self, ctx: _Context) -> list[str]:
        order_type = self._order_input(ctx)
        if order_type is None or order_type.get_input_field(SCORE_FIELD) is None:
            return []
        return [f"orderBy: {to_graphql_literal({SCORE_FIELD: EnumValue('DESC')})}"]

    def _order_by(self, ctx: _Context, order_by: dict[str, str]) -> list[str]:
        if self._order_input(ctx) is None:
            logger.warning(f"{ctx.root.name} has no orderBy argument; ordering dropped")
            return []
        order: dict[str, Any] = {}
        for path, direction in order_by.items():
            direction = str(direction).upper()
            if direction not in ("ASC", "DESC"):
                raise ValidationError(f"Order direction must be ASC or DESC, got {direction!r}")
            _deep_merge(order, nest(path, EnumValue(direction)))
        return [f"orderBy: {to_graphql_literal(order)}"]

    # Selections

    def _target_types(self, ctx: _Context, element_type: TypeInfo, requested: list[str] | None) -> list[str]:
        names = sorted(ctx.snapshot.content_types)
        if requested:
            unknown = sorted(set(requested) - set(names))
            if unknown:
                logger.warning(f"Unknown content types ignored in selection: {', '.join(unknown)}")
            names = sorted(set(requested) & set(names))
        allowed = {element_type.name} if element_type.kind == OBJECT else set(element_type.possible_types)
        return [n for n in names if n in allowed]

    def _select_fields(
        self,
        ctx: _Context,
        t: TypeInfo,
        depth_left: int,
        indent: str,
        visited: frozenset[str],
        options: QueryBuilderOptions | None = None,
        aliased: frozenset[str] = frozenset(),
    ) -> list[str]:
        lines = []
        for f in self._selectable(t, options):
            # Aliased fields are answered under `<Type>_<field>`
            key = f"{t.name}_{f.name}: {f.name}" if f.name in aliased else f.name
            if f.kind in LEAF_KINDS:
                lines.append(f"{indent}{key}")
                continue
            if depth_left <= 0 or f.type in visited:
                continue
            nested_type = ctx.snapshot.get_type(f.type)
            if nested_type is None or nested_type.kind not in (OBJECT, INTERFACE):
                continue
            sub = self._select_fields(ctx, nested_type, depth_left - 1, indent + "  ", visited | {f.type})
            if sub:
                lines += [f"{indent}{key} {{", *sub, f"{indent}}}"]
        return lines

    @staticmethod
    def _selectable(t: TypeInfo, options: QueryBuilderOptions | None) -> list[FieldInfo]:
        fields = []
        for f in t.fields:
            if f.name.startswith("_"):
                continue
            if options is not None:
                if options.include_fields and f.name not in options.include_fields:
                    continue
                if options.exclude_fields and f.name in options.exclude_fields:
                    continue
            if any(is_required_type(a.type_ref) and a.default_value is None for a in f.args):
                continue  # cannot be selected without arguments
            fields.append(f)
        return fields

    def _conflicting_fields(self, types: list[TypeInfo], options: QueryBuilderOptions) -> frozenset[str]:
        """Field names selected with different types in different inline fragments.

        Sibling fragments are merged into one response object, so such
        fields must be aliased apart or the document fails validation.
        """
        shapes: dict[str, set[str]] = {}
        for t in types:
            for f in self._selectable(t, options):
                shapes.setdefault(f.name, set()).add(print_type_ref(f.type_ref))
        return frozenset(name for name, seen in shapes.items() if len(seen) > 1)

    def _metadata_lines(self, ctx: _Context, owner: TypeInfo, indent: str) -> list[str]:
        name = ctx.snapshot.metadata_field
        meta = owner.get_field(name) if name else None
        meta_type = ctx.snapshot.get_type(meta.type) if meta else None
        if meta_type is None or meta_type.kind not in (OBJECT, INTERFACE):
            return []
        sub = self._select_fields(ctx, meta_type, 1, indent + "  ", frozenset({meta_type.name}))
        return [f"{indent}{name} {{", *sub, f"{indent}}}"] if sub else []

    def _items_body(self, ctx: _Context, element_type: TypeInfo, options: QueryBuilderOptions, indent: str,
                    include_score: bool = False) -> list[str]:
        lines = [f"{indent}__typename"]
        if include_score and element_type.get_field(SCORE_FIELD):
            lines.append(f"{indent}{SCORE_FIELD}")
        shared = self._metadata_lines(ctx, element_type, indent) if options.include_metadata else []
        shared_metadata = bool(shared)
        lines += shared

        targets = [ctx.snapshot.get_type(name) for name in self._target_types(ctx, element_type, options.content_types)]
        conflicts = self._conflicting_fields(targets, options)
        if conflicts:
            logger.debug(f"Aliasing fields selected with conflicting types: {', '.join(sorted(conflicts))}")
        for t in targets:
            name = t.name
            body = []
            if options.include_metadata and not shared_metadata:
                body += self._metadata_lines(ctx, t, indent + "  ")
            body += self._select_fields(
                ctx, t, max(options.max_depth, 0), indent + "  ", frozenset({name}), options, conflicts
            )
            if body:
                lines += [f"{indent}... on {name} {{", *body, f"{indent}}}"]
        return lines

    def _facet_lines(self, ctx: _Context, facets: dict[str, Any], indent: str, verify: bool) -> list[str]:
        """`facets { ... }` with one `alias: field(limit: N) { name count }` per entry.

        With `verify`, entries whose path the facets type lacks are skipped.
        """
        facets_field = ctx.output_type.get_field("facets")
        if facets_field is None:
            return []
        facets_type = ctx.snapshot.get_type(facets_field.type)

        tree: dict[str, Any] = {"children": {}, "leaves": []}
        for alias, facet in facets.items():
            check_name(alias, "facet name")
            if isinstance(facet, str):
                facet = {"field": facet}
            path = facet.get("field") or alias
            limit = facet.get("limit", 10)
            if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
                raise ValidationError(f"Facet limit must be a positive integer, got {limit!r}")
            *parents, leaf = check_path(path, "facet field")
            if verify and not _has_output_path(ctx.snapshot, facets_type, parents + [leaf]):
                continue
            node = tree
            for part in parents:
                node = node["children"].setdefault(part, {"children": {}, "leaves": []})
            node["leaves"].append((alias, leaf, limit))

        body = _render_facet_tree(tree, indent + "  ")
        return [f"{indent}facets {{", *body, f"{indent}}}"] if body else []

    # Rendering

    def _render(
        self,
        ctx: _Context,
        operation_name: str,
        args: list[str],
        options: QueryBuilderOptions,
        *,
        include_score: bool = False,
        extra: list[str] | None = None,
        items_extra: list[str] | None = None,
    ) -> BuiltQuery:
        items = self._items_body(ctx, ctx.items_type, options, "      ", include_score=include_score)
        lines = [f"query {operation_name}{ctx.variables.signature()} {{"]
        lines.append(f"  {ctx.root.name}({', '.join(args)}) {{" if args else f"  {ctx.root.name} {{")
        lines += ["    items {", *items, *(items_extra or []), "    }"]
        if ctx.output_type.get_field("total") is not None:
            lines.append("    total")
        lines += extra or []
        lines += ["  }", "}"]
        return BuiltQuery(
            query=clean_query("\n".join(lines)),
            variables=dict(ctx.variables.values),
            operation_name=operation_name,
        )


def _or_condition(branches: list[dict[str, Any]]) -> dict[str, Any]:
    return branches[0] if len(branches) == 1 else {"_or": branches}


def _has_output_path(snapshot: SchemaSnapshot, t: TypeInfo | None, parts: list[str]) -> bool:
    for part in parts:
        f = t.get_field(part) if t else None
        if f is None:
            return False
        t = snapshot.get_type(f.type)
    return True


def _render_facet_tree(node: dict[str, Any], indent: str) -> list[str]:
    lines = []
    for alias, leaf, limit in node["leaves"]:
        prefix = f"{alias}: " if alias != leaf else ""
        lines.append(f"{indent}{prefix}{leaf}(limit: {limit}) {{ name count }}")
    for name, child in node["children"].items():
        lines += [f"{indent}{name} {{", *_render_facet_tree(child, indent + "  "), f"{indent}}}"]
    return lines
