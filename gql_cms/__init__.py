"""MCP server for headless CMS content over a dynamically discovered GraphQL schema."""

__version__ = "0.1.0"
