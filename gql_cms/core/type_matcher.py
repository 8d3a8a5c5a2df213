"""Ranks content types against a free-text type hint.

Scores are additive and only compared with each other:

    exact key                +100
    exact display name        +90
    key contains hint         +50
    display contains hint     +40
    hint contains key         +30
    pattern keyword in key    +20 each
    context word matched      +10 each
"""

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..logging_config import get_logger
from .discovery_cache import DiscoveryCache
from .introspector import CONTENT_INTERFACES, SchemaIntrospector

logger = get_logger("type_matcher")

TYPE_PATTERNS: dict[str, tuple[str, ...]] = {
    "article": ("article", "post", "news"),
    "page": ("page", "content"),
    "product": ("product", "item", "catalog"),
    "blog": ("blog", "post", "article"),
    "news": ("news", "press", "announcement"),
    "landing": ("landing", "campaign", "marketing"),
    "home": ("home", "start", "front", "index"),
}

MAX_ALTERNATIVES = 4
HIGH_CONFIDENCE_SCORE = 90


@dataclass
class ContentTypeSummary:
    """Key, display name and base type of one content type."""
    key: str
    display_name: str = ""
    description: str | None = None
    base_type: str | None = None

    def __post_init__(self):
        if not self.display_name:
            self.display_name = self.key

    def to_dict(self, include_description: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.key, "displayName": self.display_name}
        if self.base_type:
            data["baseType"] = self.base_type
        if include_description and self.description:
            data["description"] = self.description
        return data


@dataclass
class TypeMatch:
    content_type: ContentTypeSummary
    score: int

    @property
    def confidence(self) -> str:
        return f"{min(self.score, 100)}%"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.content_type.key,
            "displayName": self.content_type.display_name,
            "confidence": self.confidence,
        }


@dataclass
class TypeMatchResult:
    requested_type: str
    best_match: TypeMatch | None
    alternatives: list[TypeMatch] = field(default_factory=list)
    available_types: list[ContentTypeSummary] = field(default_factory=list)
    total_available: int = 0
    message: str = ""

    @property
    def success(self) -> bool:
        return self.best_match is not None

    def to_dict(self) -> dict[str, Any]:
        if self.best_match is None:
            return {
                "success": False,
                "requestedType": self.requested_type,
                "message": self.message,
                "availableTypes": [t.to_dict(include_description=False) for t in self.available_types],
                "totalAvailable": self.total_available,
            }
        return {
            "success": True,
            "requestedType": self.requested_type,
            "bestMatch": self.best_match.to_dict(),
            "alternatives": [m.to_dict() for m in self.alternatives],
            "recommendation": self.best_match.content_type.key,
            "message": self.message,
        }


def normalize_hint(hint: str) -> str:
    """Lowercase and keep letters only ("Blog Post!" -> "blogpost")."""
    return re.sub(r"[^a-z]", "", hint.lower())


def score_type(hint: str, candidate: ContentTypeSummary, context: str | None = None) -> int:
    key = candidate.key.lower()
    display = candidate.display_name.lower()
    score = 0
    if key == hint:
        score += 100
    if display == hint:
        score += 90
    if hint and hint in key:
        score += 50
    if hint and hint in display:
        score += 40
    if key and key in hint:
        score += 30
    for pattern, keywords in TYPE_PATTERNS.items():
        if pattern in hint:
            score += 20 * sum(1 for keyword in keywords if keyword in key)
    if context:
        for word in context.lower().split():
            if word in key or word in display:
                score += 10
    return score


class ContentTypeSource(Protocol):
    async def list_content_types(self) -> list[ContentTypeSummary]: ...


class GraphTypeSource:
    """Content types as discovered through GraphQL introspection."""

    def __init__(self, introspector: SchemaIntrospector):
        self.introspector = introspector

    async def list_content_types(self) -> list[ContentTypeSummary]:
        snapshot = await self.introspector.initialize()
        summaries = []
        for name in sorted(snapshot.content_types):
            info = snapshot.content_types[name]
            base = next((i for i in info.interfaces if i not in CONTENT_INTERFACES), None)
            summaries.append(ContentTypeSummary(key=name, description=info.description, base_type=base))
        return summaries


class CmaTypeSource:
    """Content types from the content-management API, cached per TTL."""

    def __init__(self, cma_client, discovery_cache: DiscoveryCache | None = None):
        self.cma_client = cma_client
        self.discovery_cache = discovery_cache

    async def list_content_types(self) -> list[ContentTypeSummary]:
        if self.discovery_cache is not None:
            cached = self.discovery_cache.get_cached_types()
            if cached:
                return cached.data
        items = await self.cma_client.list_content_types()
        summaries = [
            ContentTypeSummary(
                key=item.get("key", ""),
                display_name=item.get("displayName") or "",
                description=item.get("description"),
                base_type=item.get("baseType"),
            )
            for item in items
            if item.get("key")
        ]
        if self.discovery_cache is not None:
            self.discovery_cache.cache_types(summaries)
        return summaries


class ContentTypeMatcher:
    """Fuzzy lookup of content types by hint."""

    def __init__(self, source: ContentTypeSource):
        self.source = source

    def rank(
        self,
        requested_type: str,
        candidates: list[ContentTypeSummary],
        context: str | None = None,
    ) -> list[TypeMatch]:
        """All candidates with a positive score, best first (ties by key)."""
        hint = normalize_hint(requested_type)
        matches = [TypeMatch(c, score_type(hint, c, context)) for c in candidates]
        matches = [m for m in matches if m.score > 0]
        matches.sort(key=lambda m: (-m.score, m.content_type.key))
        return matches

    async def match(self, requested_type: str, context: str | None = None) -> TypeMatchResult:
        """Best match plus up to four alternatives; all types when nothing scores."""
        candidates = await self.source.list_content_types()
        logger.info(f"Matching content type for '{requested_type}' among {len(candidates)} types")
        matches = self.rank(requested_type, candidates, context)

        if not matches:
            return TypeMatchResult(
                requested_type=requested_type,
                best_match=None,
                available_types=list(candidates),
                total_available=len(candidates),
                message=f'No content types found matching "{requested_type}"',
            )

        best = matches[0]
        if best.score >= HIGH_CONFIDENCE_SCORE:
            message = f"High confidence match: {best.content_type.key}"
        else:
            message = f"Best match found: {best.content_type.key}. Consider confirming with the user."
        return TypeMatchResult(
            requested_type=requested_type,
            best_match=best,
            alternatives=matches[1:1 + MAX_ALTERNATIVES],
            total_available=len(candidates),
            message=message,
        )

    async def discover_types(
        self,
        suggested_type: str | None = None,
        include_descriptions: bool = False,
    ) -> dict[str, Any]:
        """Matches for a suggestion, or every type grouped into pages, blocks and other."""
        candidates = await self.source.list_content_types()
        if suggested_type:
            matches = self.rank(suggested_type, candidates)
            if matches:
                top = matches[:1 + MAX_ALTERNATIVES]
                return {
                    "success": True,
                    "suggestedType": suggested_type,
                    "matches": [
                        {**m.content_type.to_dict(include_descriptions), "confidence": m.confidence} for m in top
                    ],
                    "recommendation": top[0].content_type.key,
                    "message": (
                        f'Found {len(matches)} content type(s) matching "{suggested_type}". '
                        f"Recommended: {top[0].content_type.key}"
                    ),
                }

        pages, blocks, other = [], [], []
        for ct in candidates:
            key = ct.key.lower()
            display = ct.display_name.lower()
            base = (ct.base_type or "").lower()
            if "page" in base or "page" in key or "page" in display:
                pages.append(ct)
            elif "component" in base or any(w in key for w in ("block", "component")) or "block" in display:
                blocks.append(ct)
            else:
                other.append(ct)

        if suggested_type:
            message = f'No exact match found for "{suggested_type}". Showing all available types.'
        else:
            message = "Discovered content types in your CMS, categorized by type."
        return {
            "success": True,
            "summary": {"total": len(candidates), "pages": len(pages), "blocks": len(blocks), "other": len(other)},
            "pageTypes": [ct.to_dict(include_descriptions) for ct in pages],
            "blockTypes": [ct.to_dict(include_descriptions) for ct in blocks],
            "otherTypes": [ct.to_dict(include_descriptions) for ct in other],
            "message": message,
        }
