"""CLI entry point for api-catalog."""

import asyncio
import functools
import logging
import sys
from pathlib import Path

import click

from api_catalog.catalog.errors import CatalogError
from api_catalog.catalog.service import SpecService
from api_catalog.config import (
    DEFAULT_CACHE_MAX_SIZE,
    DEFAULT_CACHE_TTL_MS,
    DEFAULT_CATALOG_DIR,
    DEFAULT_DEREFERENCED_DIR,
    CatalogConfig,
)
from api_catalog.server import create_server, to_yaml

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level: str) -> None:
    # stdout belongs to the MCP transport
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr, force=True)


def catalog_options(fn):
    """Options shared by every command that builds a SpecService."""

    @click.option(
        "-d", "--dir", "base_path",
        default=lambda: str(Path.cwd()),
        envvar="API_CATALOG_DIR",
        type=click.Path(file_okay=False, path_type=Path),
        help="Directory containing OpenAPI specifications.",
    )
    @click.option("--catalog-dir", default=DEFAULT_CATALOG_DIR, envvar="API_CATALOG_CATALOG_DIR", help="Catalog directory name.")
    @click.option("--dereferenced-dir", default=DEFAULT_DEREFERENCED_DIR, envvar="API_CATALOG_DEREFERENCED_DIR", help="Dereferenced specs directory name.")
    @click.option("--cache-size", default=DEFAULT_CACHE_MAX_SIZE, type=click.IntRange(min=1), help="Maximum number of cached specs.")
    @click.option("--cache-ttl", default=DEFAULT_CACHE_TTL_MS, type=click.IntRange(min=0), help="Cache time-to-live in milliseconds.")
    @functools.wraps(fn)
    def wrapper(base_path, catalog_dir, dereferenced_dir, cache_size, cache_ttl, **kwargs):
        config = CatalogConfig(
            base_path=base_path,
            catalog_dir=catalog_dir,
            dereferenced_dir=dereferenced_dir,
            cache_max_size=cache_size,
            cache_ttl_ms=cache_ttl,
        )
        return fn(SpecService(config), **kwargs)

    return wrapper


def _initialize(service: SpecService) -> None:
    try:
        asyncio.run(service.initialize())
    except CatalogError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("--log-level", default="warning", type=click.Choice(["debug", "info", "warning", "error"]), help="Log level (logs go to stderr).")
def main(log_level: str):
    """API Catalog — index OpenAPI specs and serve them to MCP clients."""
    _configure_logging(log_level)


@main.command()
@catalog_options
def serve(service: SpecService):
    """Run the MCP server over stdio."""
    create_server(service).run()


@main.command()
@catalog_options
def build(service: SpecService):
    """Scan the spec directory and persist the catalog."""
    _initialize(service)
    catalog = service.get_api_catalog()
    for entry in catalog:
        click.echo(f"{entry.spec_id}: {len(entry.operations)} operations, {len(entry.schemas)} schemas")
    click.echo(f"Catalog saved to {service.storage.catalog_file} ({len(catalog)} specifications)")


@main.command()
@catalog_options
def catalog(service: SpecService):
    """Print the catalog as YAML."""
    _initialize(service)
    click.echo(to_yaml({"catalog": [entry.to_dict() for entry in service.get_api_catalog()]}), nl=False)


@main.command()
@click.argument("query")
@click.option("--spec-id", default=None, help="Restrict the search to one specification.")
@click.option("--schemas", "search_schemas", is_flag=True, help="Search schemas instead of operations.")
@catalog_options
def search(service: SpecService, query: str, spec_id: str | None, search_schemas: bool):
    """Search operations (or schemas) and print matches as YAML."""
    _initialize(service)
    if search_schemas:
        data = {"schemas": [s.to_dict() for s in service.search_schemas(query, spec_id)]}
    else:
        data = {"operations": [op.to_dict() for op in service.search_operations(query, spec_id)]}
    click.echo(to_yaml(data), nl=False)
