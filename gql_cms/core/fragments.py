"""Generates the AllComponents fragment from the discovered schema.

Component types are the implementations of the component interface; each
contributes an inline fragment selecting its scalar fields and one level
of object fields.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..logging_config import get_logger
from .introspector import SchemaIntrospector
from .ir import ENUM, INTERFACE, OBJECT, SCALAR, FieldInfo, TypeInfo

logger = get_logger("fragments")

COMPONENT_INTERFACES = ("_IComponent", "IComponent")

# Tried when no component interface exists
COMMON_COMPONENT_TYPES = (
    "Hero", "Paragraph", "Text", "Divider", "Card", "Image", "Video", "Button", "Link",
    "List", "Accordion", "Carousel", "Gallery", "Form", "Quote", "Callout", "Banner", "Spacer",
)

LEAF_KINDS = (SCALAR, ENUM)


@dataclass
class GeneratedFragment:
    """A named fragment and the component types it covers."""
    name: str
    content: str
    component_types: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class FragmentGenerator:
    """Builds component fragments from introspection data."""

    def __init__(self, introspector: SchemaIntrospector):
        self.introspector = introspector

    async def discover_component_types(self) -> tuple[str, list[str]]:
        """Find component types.

        Returns:
            (interface name, sorted type names). The interface is empty when
            the schema has none and common type names were looked up instead.
        """
        for interface in COMPONENT_INTERFACES:
            t = await self.introspector.get_type(interface)
            if t is None or t.kind != INTERFACE:
                continue
            names = [n for n in await self.introspector.get_types_implementing(interface) if not n.startswith("_")]
            if names:
                logger.info(f"Found {len(names)} component types via {interface}")
                return interface, names

        logger.warning("No component interface found, looking up common component type names")
        found = []
        for name in COMMON_COMPONENT_TYPES:
            fields = await self.introspector.get_fields_for_type(name)
            if fields:
                found.append(name)
        return "", sorted(found)

    async def generate_component_fragment(self, type_name: str) -> str | None:
        """Inline fragment `... on <Type> { ... }` or None if nothing is selectable."""
        t = await self.introspector.get_type(type_name)
        if t is None or t.kind != OBJECT:
            logger.warning(f"No object type found for component: {type_name}")
            return None

        projections = []
        for f in t.fields:
            if f.name.startswith("_"):
                continue
            projection = await self._projection(f)
            if projection:
                projections.append(projection)

        if not projections:
            logger.warning(f"No queryable fields found for component: {type_name}")
            return None
        return "\n".join([f"... on {type_name} {{", *(f"  {p}" for p in projections), "}"])

    async def generate_component_fragments(self) -> dict[str, str]:
        """Per-type fragments, for caching separately."""
        _, types = await self.discover_component_types()
        fragments = {}
        for name in types:
            fragment = await self.generate_component_fragment(name)
            if fragment:
                fragments[name] = fragment
        logger.info(f"Generated {len(fragments)} individual component fragments")
        return fragments

    async def generate_all_components_fragment(self) -> GeneratedFragment:
        """The AllComponents fragment; empty content when no type can host it."""
        interface, types = await self.discover_component_types()
        target = interface
        if not target:
            # Types found by name can only be spread inside the content interface they implement
            target = await self._fallback_target()
            if target is None:
                logger.warning("No component or content interface in schema; AllComponents fragment not generated")
                return GeneratedFragment(name="AllComponents", content="")
            implementing = set(await self.introspector.get_types_implementing(target))
            skipped = [name for name in types if name not in implementing]
            if skipped:
                logger.warning(f"Component types not implementing {target} left out: {', '.join(skipped)}")
            types = [name for name in types if name in implementing]

        parts = []
        for name in types:
            fragment = await self.generate_component_fragment(name)
            if fragment:
                parts.append(fragment)
        if not parts:
            logger.warning("No component fragments generated")

        header = [f"fragment AllComponents on {target} {{"]
        metadata = await self._metadata_selection(target)
        body = metadata + ["  _type: __typename"]
        for part in parts:
            body.extend("  " + line for line in part.split("\n"))
        content = "\n".join(header + body + ["}"])
        return GeneratedFragment(name="AllComponents", content=content, component_types=types)

    async def _fallback_target(self) -> str | None:
        snapshot = await self.introspector.initialize()
        for name in ("_IContent", "IContent", "Content"):
            t = snapshot.get_type(name)
            if t is not None and t.kind == INTERFACE:
                return name
        return None

    async def _metadata_selection(self, target: str) -> list[str]:
        t = await self.introspector.get_type(target)
        if t is None or t.kind not in (OBJECT, INTERFACE):
            return []
        meta = t.get_field("_metadata")
        if meta is None:
            return []
        meta_type = await self.introspector.get_type(meta.type)
        wanted = [n for n in ("key", "displayName", "types") if meta_type and meta_type.get_field(n)]
        if not wanted:
            return []
        return ["  _metadata {", *(f"    {n}" for n in wanted), "  }"]

    async def _projection(self, f: FieldInfo) -> str | None:
        if f.kind in LEAF_KINDS:
            return f.name
        if f.kind not in (OBJECT, INTERFACE):
            return None
        t = await self.introspector.get_type(f.type)
        leaves = _leaf_fields(t)
        if leaves:
            return f"{f.name} {{ {' '.join(leaves)} }}"
        # Reference-like objects expose their address through `url { default }`
        url = t.get_field("url") if t else None
        if url is not None:
            url_type = await self.introspector.get_type(url.type)
            if url_type and url_type.get_field("default"):
                return f"{f.name} {{ url {{ default }} }}"
        logger.debug(f"Skipping complex field: {f.name} ({f.type})")
        return None


def _leaf_fields(t: TypeInfo | None) -> list[str]:
    if t is None:
        return []
    return [f.name for f in t.fields if f.kind in LEAF_KINDS and not f.name.startswith("_")]
