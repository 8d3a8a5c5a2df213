"""Shared fixtures: introspection results built from SDL and a fake Graph client."""

import asyncio

import pytest
from graphql import build_schema, get_introspection_query, graphql_sync

from gql_cms.core.errors import APIError
from gql_cms.core.introspector import SchemaIntrospector
from gql_cms.core.query_builder import DynamicQueryBuilder

CMS_SDL = """
type Query {
  _Content(where: _ContentWhereInput, limit: Int = 20, skip: Int = 0, orderBy: _ContentOrderByInput): _ContentOutput
  ArticlePage(where: ArticlePageWhereInput, limit: Int, skip: Int): ArticlePageOutput
}

enum OrderBy { ASC DESC }

type ContentUrl {
  default: String
  hierarchical: String
}

type IContentMetadata {
  key: String
  guid: String
  locale: String
  displayName: String
  types: [String]
  url: ContentUrl
}

interface _IContent {
  _metadata: IContentMetadata
  _fulltext: [String]
  _score: Float
  _references(limit: Int): [_IContent]
}

interface _IComponent {
  _componentKey: String
}

type ContentReference {
  url: ContentUrl
}

type ButtonBlock {
  text: String
  link: String
}

"A news or blog article"
type ArticlePage implements _IContent {
  _metadata: IContentMetadata
  _fulltext: [String]
  _score: Float
  _references(limit: Int): [_IContent]
  Title: String
  Heading: String
  MainBody: String
  Summary: String
  Author: String
  PublishDate: String
  Image: ContentReference
  Tags: [String]
  Related(first: Int!): [String]
}

type StandardPage implements _IContent {
  _metadata: IContentMetadata
  _fulltext: [String]
  _score: Float
  _references(limit: Int): [_IContent]
  Title: String
  MainBody: String
  Teaser: String
}

type HeroBlock implements _IComponent {
  _componentKey: String
  Heading: String
  SubHeading: String
  Image: ContentReference
  Button: ButtonBlock
}

type ParagraphBlock implements _IComponent {
  _componentKey: String
  Text: String
}

type StringFacet {
  name: String
  count: Int
}

type IContentMetadataFacet {
  types(limit: Int): [StringFacet]
  locale(limit: Int): [StringFacet]
}

type _ContentFacet {
  _metadata: IContentMetadataFacet
}

type _ContentOutput {
  items: [_IContent]
  total: Int
  facets: _ContentFacet
}

type ArticlePageOutput {
  items: [ArticlePage]
  total: Int
}

input StringFilterInput {
  eq: String
  contains: String
  in: [String]
}

input SearchableStringFilterInput {
  eq: String
  match: String
  contains: String
  in: [String]
}

input ContentUrlWhereInput {
  default: StringFilterInput
  hierarchical: StringFilterInput
}

input IContentMetadataWhereInput {
  key: StringFilterInput
  guid: StringFilterInput
  locale: StringFilterInput
  displayName: SearchableStringFilterInput
  types: StringFilterInput
  url: ContentUrlWhereInput
}

input ReferenceMetadataWhereInput {
  key: StringFilterInput
}

input _ReferencesWhereInput {
  _metadata: ReferenceMetadataWhereInput
}

input _ContentWhereInput {
  _metadata: IContentMetadataWhereInput
  _fulltext: SearchableStringFilterInput
  _references: _ReferencesWhereInput
  Title: SearchableStringFilterInput
  Author: StringFilterInput
  _and: [_ContentWhereInput]
  _or: [_ContentWhereInput]
}

input ArticlePageWhereInput {
  Title: StringFilterInput
}

input IContentMetadataOrderByInput {
  displayName: OrderBy
}

input _ContentOrderByInput {
  _score: OrderBy
  _metadata: IContentMetadataOrderByInput
}
"""

# A schema none of the conventional filter shapes apply to
MINIMAL_SDL = """
type Query {
  Content(where: ContentWhere, limit: Int): ContentOutput
}

interface IContent {
  name: String
}

type Article implements IContent {
  name: String
  body: String
}

type ContentOutput {
  items: [IContent]
  total: Int
}

input StringFilter {
  eq: String
  contains: String
}

input ContentWhere {
  name: StringFilter
}
"""

NO_CONTENT_SDL = """
type Query {
  hello: String
}
"""


def introspect_sdl(sdl: str) -> dict:
    """Introspection result (`{"__schema": ...}`) of an SDL document."""
    result = graphql_sync(build_schema(sdl), get_introspection_query(descriptions=True))
    assert result.errors is None
    return result.data


class FakeGraphClient:
    """Stands in for GraphClient: serves introspection and canned query data."""

    def __init__(self, introspection: dict, *, fail_times: int = 0, delay: float = 0.0):
        self.introspection = introspection
        self.fail_times = fail_times
        self.delay = delay
        self.introspect_calls = 0
        self.queries: list[tuple[str, dict, str]] = []
        self.responses: dict[str, dict] = {}

    async def introspect(self) -> dict:
        self.introspect_calls += 1
        await asyncio.sleep(self.delay)
        if self.introspect_calls <= self.fail_times:
            raise APIError("API error (503): Service Unavailable", 503)
        return self.introspection

    async def query(self, query: str, variables: dict | None = None, operation_name: str | None = None) -> dict:
        self.queries.append((query, variables or {}, operation_name))
        return self.responses.get(operation_name, {})


@pytest.fixture
def cms_schema():
    return build_schema(CMS_SDL)


@pytest.fixture
def cms_introspection():
    return introspect_sdl(CMS_SDL)


@pytest.fixture
def fake_client(cms_introspection):
    return FakeGraphClient(cms_introspection)


@pytest.fixture
def introspector(fake_client):
    return SchemaIntrospector(fake_client)


@pytest.fixture
def builder(introspector):
    return DynamicQueryBuilder(introspector)


@pytest.fixture
def minimal_builder():
    return DynamicQueryBuilder(SchemaIntrospector(FakeGraphClient(introspect_sdl(MINIMAL_SDL))))
