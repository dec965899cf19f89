"""Spec service: catalog lifecycle plus lookup and search.

One SpecService owns one catalog. Its (catalog, specs) state is a
CatalogSnapshot that is replaced by reference, never mutated, so a reader
that grabbed the old snapshot during a refresh keeps a consistent view.
"""

import asyncio
import logging
from enum import Enum

from api_catalog.catalog.builder import (
    HTTP_METHODS,
    CatalogBuilder,
    CatalogSnapshot,
    Scanner,
    iter_operations,
)
from api_catalog.catalog.cache import TTLCache
from api_catalog.catalog.errors import CatalogError, ErrorCode
from api_catalog.catalog.search import operation_uri, search_operations, search_schemas
from api_catalog.catalog.storage import FileSystemStorage
from api_catalog.config import CatalogConfig
from api_catalog.parser.base import (
    CatalogEntry,
    OperationResult,
    SchemaMatch,
    SchemaResult,
    SpecDocument,
    SpecUri,
    UriType,
)
from api_catalog.parser.scanner import SpecScanner

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class SpecService:
    """Scans, persists and serves the OpenAPI documents under ``config.base_path``."""

    def __init__(
        self,
        config: CatalogConfig,
        scanner: Scanner | None = None,
        storage: FileSystemStorage | None = None,
        cache: TTLCache[str, SpecDocument] | None = None,
    ):
        self.config = config
        if scanner is None:
            scanner = SpecScanner(exclude_dirs=(config.catalog_dir, config.dereferenced_dir))
        if cache is None:
            cache = TTLCache(config.cache_max_size, config.cache_ttl_seconds)
        self.scanner = scanner
        self.storage = storage or FileSystemStorage(config)
        self.cache = cache
        self.builder = CatalogBuilder(self.scanner, self.storage)
        self.state = ServiceState.UNINITIALIZED
        self._snapshot = CatalogSnapshot()
        self._lock = asyncio.Lock()
        self._initialize_called = False

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def _reset_state(self) -> None:
        logger.debug("Resetting service state")
        self._snapshot = CatalogSnapshot()
        self.cache.clear()

    def _swap(self, snapshot: CatalogSnapshot) -> None:
        self._snapshot = snapshot
        self.cache.clear()
        for spec_id, document in snapshot.specs.items():
            self.cache.set(spec_id, document)

    async def _load_existing_catalog(self) -> bool:
        try:
            logger.debug("Loading existing catalog")
            catalog = await self.storage.load_catalog()
            specs = await asyncio.gather(*(self.load_spec(entry.spec_id) for entry in catalog))
            self._swap(CatalogSnapshot.of(catalog, {e.spec_id: s for e, s in zip(catalog, specs)}))
            logger.info("Loaded existing catalog with %d specifications", len(catalog))
            return True
        except Exception as e:
            logger.warning("Failed to load existing catalog: %s", e)
            self._reset_state()
            return False

    async def initialize(self) -> None:
        """Load what is on disk, then rescan the source folder.

        On failure the service is left empty (but queryable) and
        CatalogError(INIT_ERROR) is raised.
        """
        async with self._lock:
            self._initialize_called = True
            self.state = ServiceState.INITIALIZING
            logger.debug("Initializing spec service for %s", self.config.base_path)
            try:
                await self.storage.ensure_directories()
                await self._load_existing_catalog()
                await self.scan_and_save()
            except Exception as e:
                logger.error("Failed to initialize spec service: %s", e)
                self._reset_state()
                self.state = ServiceState.UNINITIALIZED
                raise CatalogError("Failed to initialize spec service", ErrorCode.INIT_ERROR, e) from e
            self.state = ServiceState.READY
            logger.info("Spec service ready with %d specifications", len(self._snapshot.catalog))

    async def refresh(self) -> None:
        if not self._initialize_called:
            raise CatalogError("Spec service not initialized", ErrorCode.INIT_ERROR)
        await self.initialize()

    async def scan_and_save(self) -> None:
        """Rebuild the catalog from the source folder and swap it in.

        Raises CatalogError(SCAN_ERROR); the current snapshot is kept on failure.
        """
        snapshot = await self.builder.build(self.config.base_path)
        self._swap(snapshot)

    def get_api_catalog(self) -> tuple[CatalogEntry, ...]:
        return self._snapshot.catalog

    async def load_spec(self, spec_id: str) -> SpecDocument:
        """Return a document, from the cache when possible, else from storage."""
        cached = self.cache.get(spec_id)
        if cached is not None:
            logger.debug("Returning cached specification %s", spec_id)
            return cached
        document = await self.storage.load_spec(spec_id)
        self.cache.set(spec_id, document)
        logger.debug("Loaded specification %s from storage", spec_id)
        return document

    def find_operation_by_id(self, spec_id: str, operation_id: str) -> OperationResult | None:
        # With duplicate operationIds in one document, the first in document order wins.
        document = self._snapshot.specs.get(spec_id)
        if document is None:
            return None
        for path, method, operation in iter_operations(document):
            if operation.get("operationId") == operation_id:
                return OperationResult(
                    path=path,
                    method=method,
                    operation=operation,
                    spec_id=spec_id,
                    uri=operation_uri(spec_id, operation),
                )
        return None

    def find_operation_by_path_and_method(self, spec_id: str, path: str, method: str) -> OperationResult | None:
        document = self._snapshot.specs.get(spec_id)
        if document is None:
            return None
        path_item = (document.get("paths") or {}).get(path)
        if not isinstance(path_item, dict) or method.lower() not in HTTP_METHODS:
            return None
        operation = path_item.get(method)
        if not isinstance(operation, dict):
            return None
        return OperationResult(
            path=path,
            method=method,
            operation=operation,
            spec_id=spec_id,
            uri=operation_uri(spec_id, operation),
        )

    def find_schema_by_name(self, spec_id: str, schema_name: str) -> SchemaResult | None:
        """Look up a named component schema.

        Schemas are returned as stored; they are expected to be dereferenced
        already and no ``$ref`` is resolved here.
        """
        document = self._snapshot.specs.get(spec_id)
        if document is None:
            return None
        schema = ((document.get("components") or {}).get("schemas") or {}).get(schema_name)
        if not isinstance(schema, dict):
            return None
        return SchemaResult(
            name=schema_name,
            description=schema.get("description"),
            schema_=schema,
            uri=str(SpecUri(spec_id=spec_id, type=UriType.SCHEMA, identifier=schema_name)),
        )

    def search_operations(self, query: str, spec_id: str | None = None) -> list[OperationResult]:
        return search_operations(self._snapshot, query, spec_id)

    def search_schemas(self, query: str, spec_id: str | None = None) -> list[SchemaMatch]:
        return search_schemas(self._snapshot, query, spec_id)
