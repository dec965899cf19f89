"""MCP server exposing the spec service as tools.

Every tool answers with YAML text. Lookups that miss answer ``null``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import yaml
from mcp.server.fastmcp import FastMCP

from api_catalog.catalog.errors import CatalogError
from api_catalog.catalog.service import SpecService

logger = logging.getLogger(__name__)

SERVER_NAME = "api-catalog"


def to_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)


class CatalogTools:
    """Tool handlers. Argument names are the wire names, hence camelCase."""

    def __init__(self, service: SpecService):
        self.service = service

    async def refresh_api_catalog(self) -> str:
        logger.info("Refreshing API catalog")
        try:
            await self.service.refresh()
        except CatalogError as e:
            logger.error("Failed to refresh API catalog: %s", e)
            raise
        return "API catalog refreshed"

    async def get_api_catalog(self) -> str:
        catalog = self.service.get_api_catalog()
        return to_yaml({"catalog": [entry.to_dict() for entry in catalog]})

    async def search_api_operations(self, query: str, specId: str | None = None) -> str:
        logger.debug("Searching API operations: query=%r specId=%r", query, specId)
        operations = self.service.search_operations(query, specId)
        return to_yaml({"operations": [op.to_dict() for op in operations]})

    async def search_api_schemas(self, query: str, specId: str | None = None) -> str:
        logger.debug("Searching API schemas: query=%r specId=%r", query, specId)
        schemas = self.service.search_schemas(query, specId)
        return to_yaml({"schemas": [schema.to_dict() for schema in schemas]})

    async def load_operation_by_id(self, specId: str, operationId: str) -> str:
        result = self.service.find_operation_by_id(specId, operationId)
        if result is None:
            logger.warning("Operation not found: specId=%s operationId=%s", specId, operationId)
            return to_yaml(None)
        return to_yaml(result.to_dict())

    async def load_operation_by_path_and_method(self, specId: str, path: str, method: str) -> str:
        result = self.service.find_operation_by_path_and_method(specId, path, method)
        if result is None:
            logger.warning("Operation not found: specId=%s %s %s", specId, method, path)
            return to_yaml(None)
        return to_yaml(result.to_dict())

    async def load_schema_by_name(self, specId: str, schemaName: str) -> str:
        result = self.service.find_schema_by_name(specId, schemaName)
        if result is None:
            logger.warning("Schema not found: specId=%s schemaName=%s", specId, schemaName)
            return to_yaml(None)
        return to_yaml(result.to_dict())


def create_server(service: SpecService) -> FastMCP:
    """Build a FastMCP server; the service is initialized when the server starts."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        try:
            await service.initialize()
        except CatalogError as e:
            # Serve an empty catalog; the client can retry with refresh-api-catalog.
            logger.error("Failed to initialize spec service: %s", e)
        yield

    server = FastMCP(SERVER_NAME, lifespan=lifespan)
    tools = CatalogTools(service)
    server.add_tool(tools.refresh_api_catalog, name="refresh-api-catalog", description="Refresh the API catalog")
    server.add_tool(
        tools.get_api_catalog,
        name="get-api-catalog",
        description=(
            "Get the API catalog, the catalog contains metadata about all openapi "
            "specifications, their operations and schemas"
        ),
    )
    server.add_tool(
        tools.search_api_operations,
        name="search-api-operations",
        description="Search for operations across specifications",
    )
    server.add_tool(
        tools.search_api_schemas,
        name="search-api-schemas",
        description="Search for schemas across specifications",
    )
    server.add_tool(
        tools.load_operation_by_id,
        name="load-api-operation-by-operationId",
        description="Load an operation by operationId",
    )
    server.add_tool(
        tools.load_operation_by_path_and_method,
        name="load-api-operation-by-path-and-method",
        description="Load an operation by path and method",
    )
    server.add_tool(
        tools.load_schema_by_name,
        name="load-api-schema-by-schemaName",
        description="Load a schema by schemaName",
    )
    return server
