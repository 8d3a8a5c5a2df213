"""Tests for field-name mapping."""

import pytest

from gql_cms.core.errors import NotFoundError
from gql_cms.core.field_mapper import (
    CmaFieldSource,
    FieldMapper,
    GraphFieldSource,
    confidence_for,
    extract_words,
    find_best_field_match,
    score_field,
    set_nested,
)
from gql_cms.core.discovery_cache import DiscoveryCache
from gql_cms.core.ir import ContentTypeSchema, SchemaField

ARTICLE = ContentTypeSchema(
    name="ArticlePage",
    display_name="Article Page",
    fields=[
        SchemaField("Title", required=True),
        SchemaField("MainBody", display_name="Main body", type="XhtmlString"),
        SchemaField("Author"),
        SchemaField("PublishDate", type="DateTime", description="When it went live"),
    ],
)


class StaticFieldSource:
    def __init__(self, schema):
        self.schema = schema

    async def get_content_type_schema(self, content_type):
        if content_type != self.schema.name:
            raise NotFoundError(f"Content type '{content_type}' not found")
        return self.schema


class FakeCmaClient:
    def __init__(self, content_types):
        self.content_types = content_types
        self.calls = 0

    async def get_content_type(self, key):
        self.calls += 1
        return self.content_types.get(key, {})


def fields_by_name(schema):
    return {f.name: f for f in schema.fields}


class TestScoring:
    """Tests for the scoring helpers."""

    def test_extract_words(self):
        """Test case-convention boundaries."""
        assert extract_words("publishDate") == ["publish", "date"]
        assert extract_words("HTMLTitle") == ["html", "title"]
        assert extract_words("main_body-text") == ["main", "body", "text"]

    def test_synonym_scores_medium(self):
        """Test heading -> Title through the title synonyms."""
        score = score_field("heading", SchemaField("Title"))
        assert score == pytest.approx(0.7)
        assert confidence_for(score) == "medium"

    def test_confidence_bands(self):
        """Test the band boundaries are exclusive."""
        assert confidence_for(0.81) == "high"
        assert confidence_for(0.8) == "medium"
        assert confidence_for(0.5) == "low"

    def test_exact_match_short_circuits(self):
        """Test a case-insensitive exact name wins outright."""
        mapping = find_best_field_match("title", fields_by_name(ARTICLE))
        assert mapping.suggested_field == "Title"
        assert mapping.confidence == "high"
        assert mapping.reason == "Case-insensitive exact match"

    def test_containment_is_high(self):
        """Test a contained name plus shared bucket is a high match."""
        mapping = find_best_field_match("body", fields_by_name(ARTICLE))
        assert mapping.suggested_field == "MainBody"
        assert mapping.confidence == "high"
        assert mapping.reason == 'Field name contains "body"'

    def test_pattern_reason(self):
        """Test the reason names the shared pattern bucket."""
        mapping = find_best_field_match("heading", fields_by_name(ARTICLE))
        assert mapping.suggested_field == "Title"
        assert mapping.reason == "Common title field pattern"

    def test_below_threshold(self):
        """Test unrelated names get no suggestion."""
        assert find_best_field_match("zzz", fields_by_name(ARTICLE)) is None

    def test_set_nested(self):
        """Test dotted targets create nested dicts."""
        target = {"Seo": "flat"}
        set_nested(target, "Seo.MetaTitle", "x")
        set_nested(target, "Seo.MetaDescription", "y")
        assert target == {"Seo": {"MetaTitle": "x", "MetaDescription": "y"}}


@pytest.mark.asyncio
class TestFieldMapper:
    """Tests for FieldMapper."""

    async def test_map_fields(self):
        """Test exact names pass, suggestions apply, unknowns pass through."""
        mapper = FieldMapper(StaticFieldSource(ARTICLE))
        result = await mapper.map_fields_dynamically("ArticlePage", {"heading": "Hello", "Author": "Jane", "zzz": 1})
        assert result.mapped_properties == {"Title": "Hello", "Author": "Jane", "zzz": 1}
        assert result.unmapped_fields == ["zzz"]
        assert [s.suggested_field for s in result.mapping_suggestions] == ["Title"]
        assert result.to_dict()["mappingSuggestions"][0]["confidence"] == "medium"

    async def test_discover_fields(self):
        """Test available and required fields are reported."""
        mapper = FieldMapper(StaticFieldSource(ARTICLE))
        result = (await mapper.discover_fields("ArticlePage", {"Title": "x"})).to_dict()
        assert result["availableFields"] == ["Title", "MainBody", "Author", "PublishDate"]
        assert result["requiredFields"] == ["Title"]
        assert result["suggestions"] == []

    async def test_unknown_type(self):
        """Test the source's NotFoundError propagates."""
        mapper = FieldMapper(StaticFieldSource(ARTICLE))
        with pytest.raises(NotFoundError):
            await mapper.map_fields_dynamically("Missing", {})

    async def test_field_guide(self):
        """Test the guide splits required and optional fields."""
        guide = await FieldMapper(StaticFieldSource(ARTICLE)).get_field_guide("ArticlePage")
        assert guide.startswith("Available fields for Article Page:")
        assert "Required fields:\n  - Title (String)" in guide
        assert '  - MainBody (XhtmlString) - "Main body"' in guide
        assert "  - PublishDate (DateTime) - When it went live" in guide

    async def test_graph_source(self, introspector):
        """Test introspected fields skip system fields."""
        mapper = FieldMapper(GraphFieldSource(introspector))
        result = await mapper.map_fields_dynamically("ArticlePage", {"body": "text"})
        assert result.mapped_properties == {"MainBody": "text"}
        discovered = await mapper.discover_fields("ArticlePage", {})
        assert not any(name.startswith("_") for name in discovered.available_fields)

    async def test_graph_source_unknown_type(self, introspector):
        """Test a type missing from the schema."""
        with pytest.raises(NotFoundError):
            await GraphFieldSource(introspector).get_content_type_schema("Nope")

    async def test_cma_source_caches(self):
        """Test management API properties become fields and are cached."""
        client = FakeCmaClient({
            "ArticlePage": {
                "key": "ArticlePage",
                "displayName": "Article",
                "properties": {
                    "Title": {"dataType": "String", "required": True},
                    "Body": {"displayName": "Main body", "dataType": "XhtmlString"},
                },
            }
        })
        source = CmaFieldSource(client, DiscoveryCache())
        schema = await source.get_content_type_schema("ArticlePage")
        assert schema.display_name == "Article"
        assert schema.required_fields == ["Title"]
        assert [f.display_name for f in schema.fields] == ["Title", "Main body"]
        await source.get_content_type_schema("ArticlePage")
        assert client.calls == 1

    async def test_cma_source_missing(self):
        """Test an empty management API answer is NotFoundError."""
        with pytest.raises(NotFoundError):
            await CmaFieldSource(FakeCmaClient({})).get_content_type_schema("Nope")
