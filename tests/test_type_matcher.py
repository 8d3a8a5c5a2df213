"""Tests for content-type matching."""

import pytest

from gql_cms.core.discovery_cache import DiscoveryCache
from gql_cms.core.type_matcher import (
    CmaTypeSource,
    ContentTypeMatcher,
    ContentTypeSummary,
    GraphTypeSource,
    normalize_hint,
    score_type,
)


class StaticTypeSource:
    def __init__(self, types):
        self.types = types

    async def list_content_types(self):
        return list(self.types)


class FakeCmaClient:
    def __init__(self, items):
        self.items = items
        self.calls = 0

    async def list_content_types(self):
        self.calls += 1
        return self.items


MIXED = [
    ContentTypeSummary("ArticlePage", "Article"),
    ContentTypeSummary("HeroBlock", base_type="_component"),
    ContentTypeSummary("SiteSettings", "Settings"),
]


class TestScoring:
    """Tests for hint normalization and scores."""

    def test_normalize_hint(self):
        """Test non-letters are dropped."""
        assert normalize_hint("Blog Post!") == "blogpost"

    def test_exact_key_and_display(self):
        """Test exact key and display name add up."""
        candidate = ContentTypeSummary("article", "Article")
        # exact key, exact display, both contain, key in hint, article pattern
        assert score_type("article", candidate) == 100 + 90 + 50 + 40 + 30 + 20

    def test_pattern_keywords(self):
        """Test keyword patterns score without any substring match."""
        assert score_type("blogpost", ContentTypeSummary("ArticlePage")) == 20

    def test_context_words(self):
        """Test each matched context word adds ten."""
        candidate = ContentTypeSummary("StandardPage")
        assert score_type("x", candidate, "standard layout") == 10


@pytest.mark.asyncio
class TestContentTypeMatcher:
    """Tests for ContentTypeMatcher."""

    async def test_high_confidence(self, introspector):
        """Test a direct hint against introspected types."""
        result = await ContentTypeMatcher(GraphTypeSource(introspector)).match("article")
        assert result.success
        assert result.best_match.content_type.key == "ArticlePage"
        assert result.best_match.confidence == "100%"
        assert result.alternatives == []
        assert result.message == "High confidence match: ArticlePage"

    async def test_low_confidence_message(self, introspector):
        """Test weak matches ask for confirmation."""
        result = await ContentTypeMatcher(GraphTypeSource(introspector)).match("blog post")
        data = result.to_dict()
        assert data["recommendation"] == "ArticlePage"
        assert data["bestMatch"]["confidence"] == "20%"
        assert "Consider confirming with the user" in data["message"]

    async def test_context_breaks_tie(self, introspector):
        """Test context words decide between equal candidates."""
        matcher = ContentTypeMatcher(GraphTypeSource(introspector))
        plain = await matcher.match("page")
        assert plain.best_match.content_type.key == "ArticlePage"
        assert [m.content_type.key for m in plain.alternatives] == ["StandardPage"]
        hinted = await matcher.match("page", context="standard")
        assert hinted.best_match.content_type.key == "StandardPage"

    async def test_blog_hint(self):
        """Test a partial hint picks the type containing it."""
        source = StaticTypeSource([ContentTypeSummary("BlogPost"), ContentTypeSummary("StandardPage")])
        result = await ContentTypeMatcher(source).match("blog")
        assert result.success
        assert result.best_match.content_type.key == "BlogPost"
        assert result.best_match.score > 0
        assert result.alternatives == []

    async def test_alternatives_capped(self):
        """Test at most four alternatives follow the best match."""
        keys = ["APage", "BPage", "CPage", "DPage", "EPage", "FPage", "GPage"]
        matcher = ContentTypeMatcher(StaticTypeSource([ContentTypeSummary(k) for k in keys]))
        result = await matcher.match("page")
        assert result.best_match.content_type.key == "APage"
        assert [m.content_type.key for m in result.alternatives] == ["BPage", "CPage", "DPage", "EPage"]
        assert result.total_available == 7
        assert len((await matcher.discover_types("page"))["matches"]) == 5

    async def test_no_match_lists_everything(self, introspector):
        """Test a miss returns every available type."""
        result = (await ContentTypeMatcher(GraphTypeSource(introspector)).match("recipe")).to_dict()
        assert result["success"] is False
        assert result["totalAvailable"] == 2
        assert [t["name"] for t in result["availableTypes"]] == ["ArticlePage", "StandardPage"]

    async def test_discover_types_categorized(self):
        """Test types group into pages, blocks and other."""
        result = await ContentTypeMatcher(StaticTypeSource(MIXED)).discover_types()
        assert result["summary"] == {"total": 3, "pages": 1, "blocks": 1, "other": 1}
        assert result["blockTypes"][0]["name"] == "HeroBlock"
        assert result["otherTypes"][0]["displayName"] == "Settings"

    async def test_discover_types_with_suggestion(self):
        """Test a matching suggestion returns ranked matches."""
        result = await ContentTypeMatcher(StaticTypeSource(MIXED)).discover_types("hero")
        assert result["recommendation"] == "HeroBlock"
        assert result["matches"][0]["confidence"].endswith("%")

    async def test_discover_types_unmatched_suggestion(self):
        """Test an unmatched suggestion falls back to the full listing."""
        result = await ContentTypeMatcher(StaticTypeSource(MIXED)).discover_types("recipe")
        assert result["summary"]["total"] == 3
        assert result["message"].startswith('No exact match found for "recipe"')

    async def test_cma_source_cached(self):
        """Test management API types are cached for the TTL."""
        client = FakeCmaClient([
            {"key": "ArticlePage", "displayName": "Article", "baseType": "_page"},
            {"displayName": "no key"},
        ])
        source = CmaTypeSource(client, DiscoveryCache())
        types = await source.list_content_types()
        assert [t.key for t in types] == ["ArticlePage"]
        assert types[0].base_type == "_page"
        await source.list_content_types()
        assert client.calls == 1
