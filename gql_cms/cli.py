"""Command-line interface for gql-cms."""

import asyncio
import json
import sys

import click
from dotenv import load_dotenv
from pydantic import ValidationError as SettingsError

from .config import Settings
from .core.errors import CmsError
from .core.query_builder import QueryBuilderOptions
from .logging_config import configure_logging
from .server import BUILD_OPERATIONS, CACHE_SCOPES, AppContext, build_query, create_mcp_server


def load_settings(ctx: click.Context) -> Settings:
    try:
        settings = Settings.from_env()
    except SettingsError as e:
        raise click.ClickException(f"Invalid configuration:\n{e}")
    level = "DEBUG" if ctx.obj.get("verbose") else settings.options.log_level
    configure_logging(level, settings.options.log_file)
    return settings


def run_with_context(settings: Settings, func):
    """Run `func(app_context)` on a fresh event loop and close the clients."""

    async def runner():
        app = AppContext.from_settings(settings)
        try:
            return await func(app)
        finally:
            await app.close()

    try:
        return asyncio.run(runner())
    except CmsError as e:
        raise click.ClickException(e.format().removeprefix("Error: "))


def echo_json(value) -> None:
    click.echo(json.dumps(value, indent=2, default=str))


@click.group()
@click.version_option(package_name="gql-cms")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a .env file (default: ./.env if present).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, env_file: str | None, verbose: bool):
    """MCP server for headless CMS content over a discovered GraphQL schema."""
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.option(
    "--transport",
    "-t",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    show_default=True,
    help="MCP transport.",
)
@click.pass_context
def serve(ctx: click.Context, transport: str):
    """Run the MCP server.

    Examples:

        gql-cms serve

        gql-cms --env-file ./prod.env serve --transport sse
    """
    settings = load_settings(ctx)
    app = AppContext.from_settings(settings)
    server = create_mcp_server(app)
    click.echo(f"Starting gql-cms MCP server ({transport}) for {settings.graph.endpoint}", err=True)
    server.run(transport=transport)


@main.command()
@click.argument("target", type=click.Choice(["types", "fields", "schema", "all"]), default="types")
@click.option("--content-type", "-c", help="Content type (required for fields and schema).")
@click.pass_context
def discover(ctx: click.Context, target: str, content_type: str | None):
    """Print discovered content types, fields or schema as JSON.

    Examples:

        gql-cms discover types

        gql-cms discover fields -c ArticlePage
    """
    settings = load_settings(ctx)

    async def run(app: AppContext):
        return (await app.discovery.discover(target, content_type)).to_dict()

    echo_json(run_with_context(settings, run))


@main.command("build-query")
@click.argument("operation", type=click.Choice(BUILD_OPERATIONS))
@click.option("--query", "-q", help="Search term (search, facets).")
@click.option("--id", "content_id", help="Content key, GUID or id (get, related).")
@click.option("--path", help="URL path (path).")
@click.option("--type", "content_types", multiple=True, help="Restrict to a content type (repeatable).")
@click.option("--facet", "facet_fields", multiple=True, help="Facet field path (facets, repeatable).")
@click.option("--locale", help="Locale filter.")
@click.option("--limit", default=10, show_default=True, help="Maximum number of items.")
@click.option("--max-depth", default=1, show_default=True, help="Object nesting below each content type.")
@click.pass_context
def build_query_command(
    ctx: click.Context,
    operation: str,
    query: str | None,
    content_id: str | None,
    path: str | None,
    content_types: tuple[str, ...],
    facet_fields: tuple[str, ...],
    locale: str | None,
    limit: int,
    max_depth: int,
):
    """Print a generated GraphQL document without running it.

    Examples:

        gql-cms build-query search -q climate --type ArticlePage

        gql-cms build-query facets --facet _metadata.types --facet _metadata.locale
    """
    settings = load_settings(ctx)
    facets = {field.replace(".", "_"): {"field": field} for field in facet_fields}
    options = QueryBuilderOptions(max_depth=max_depth, content_types=list(content_types) or None)

    async def run(app: AppContext):
        return await build_query(
            app.query_builder,
            operation,
            query=query,
            content_id=content_id,
            path=path,
            facets=facets,
            locale=locale,
            limit=limit,
            options=options,
        )

    built = run_with_context(settings, run)
    click.echo(built.query)
    if built.variables:
        click.echo("\n# variables", err=True)
        click.echo(json.dumps(built.variables, indent=2), err=True)


@main.command("match-type")
@click.argument("requested_type")
@click.option("--context", "context_hint", help="Free text that describes the content.")
@click.pass_context
def match_type(ctx: click.Context, requested_type: str, context_hint: str | None):
    """Rank content types against a free-text name.

    Examples:

        gql-cms match-type "blog post"
    """
    settings = load_settings(ctx)

    async def run(app: AppContext):
        return (await app.type_matcher.match(requested_type, context_hint)).to_dict()

    result = run_with_context(settings, run)
    echo_json(result)
    if not result["success"]:
        sys.exit(1)


@main.group()
def cache():
    """Manage cached schema data and fragments."""


@cache.command("clear")
@click.option(
    "--scope",
    type=click.Choice(CACHE_SCOPES),
    default="fragments",
    show_default=True,
    help="What to clear.",
)
@click.pass_context
def cache_clear(ctx: click.Context, scope: str):
    """Delete the cache directory of the current CMS instance."""
    settings = load_settings(ctx)

    async def run(app: AppContext):
        return await app.invalidate(scope)

    cleared = run_with_context(settings, run)
    click.echo(f"Cleared: {', '.join(cleared)}")


if __name__ == "__main__":
    main()
