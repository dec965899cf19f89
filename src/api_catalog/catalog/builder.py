"""Catalog builder: scanner output -> persisted (catalog, spec store) snapshot.

Documents are pulled from the scanner one at a time and their metadata
extracted into pending entries. Nothing is written until the stream is
exhausted; the commit then writes every document, then the catalog record.
The catalog write is the barrier: a reader never sees a catalog whose
documents are not on disk.

Document writes and the catalog write are not one transaction. A failure
between them can leave orphan files in the dereferenced directory; the
catalog is the source of truth, so those are ignored and overwritten by a
later build.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import AsyncIterator, Iterator, Mapping, Protocol, Sequence

from api_catalog.catalog.errors import CatalogError, ErrorCode
from api_catalog.catalog.storage import FileSystemStorage
from api_catalog.parser.base import (
    CatalogEntry,
    OperationEntry,
    ScanResult,
    SchemaEntry,
    SpecDocument,
    SpecUri,
)

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


class Scanner(Protocol):
    def scan(self, root: Path) -> AsyncIterator[ScanResult]: ...


@dataclass(frozen=True)
class CatalogSnapshot:
    """An immutable (catalog, spec store) pair, replaced as a whole."""

    catalog: tuple[CatalogEntry, ...] = ()
    specs: Mapping[str, SpecDocument] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def of(cls, catalog: Sequence[CatalogEntry], specs: Mapping[str, SpecDocument]) -> "CatalogSnapshot":
        return cls(catalog=tuple(catalog), specs=MappingProxyType(dict(specs)))

    def entry(self, spec_id: str) -> CatalogEntry | None:
        for entry in self.catalog:
            if entry.spec_id == spec_id:
                return entry
        return None


def iter_operations(document: SpecDocument) -> Iterator[tuple[str, str, dict]]:
    """Yield (path, method, operation) in document order.

    Only HTTP method keys count; ``parameters``, ``$ref`` and the other
    path-item fields are structural.
    """
    paths = document.get("paths") or {}
    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                continue
            yield path, method, operation


def extract_operations(document: SpecDocument) -> list[OperationEntry]:
    operations = []
    for path, method, operation in iter_operations(document):
        tags = operation.get("tags") or []
        operations.append(
            OperationEntry(
                path=path,
                method=method,
                title=operation.get("summary"),
                description=operation.get("description"),
                group=tags[0] if tags else None,
                operation_id=operation.get("operationId"),
            )
        )
    return operations


def extract_schemas(document: SpecDocument) -> list[SchemaEntry]:
    schemas = (document.get("components") or {}).get("schemas") or {}
    return [
        SchemaEntry(
            name=name,
            description=schema.get("description") if isinstance(schema, dict) else None,
        )
        for name, schema in schemas.items()
    ]


def build_catalog_entry(document: SpecDocument, spec_id: str) -> CatalogEntry:
    info = document.get("info") or {}
    return CatalogEntry(
        uri=SpecUri.for_spec(spec_id),
        description=info.get("description"),
        operations=extract_operations(document),
        schemas=extract_schemas(document),
    )


class CatalogBuilder:
    """Runs one scan and commits the result to storage."""

    def __init__(self, scanner: Scanner, storage: FileSystemStorage):
        self.scanner = scanner
        self.storage = storage

    async def collect(self, root: Path) -> list[tuple[SpecDocument, CatalogEntry]]:
        """Extract catalog entries from the scan stream without touching storage."""
        pending: list[tuple[SpecDocument, CatalogEntry]] = []
        seen: set[str] = set()
        async for result in self.scanner.scan(root):
            document, spec_id = result.document, result.spec_id
            if result.error is not None or document is None or spec_id is None:
                logger.warning("Error scanning file %s: %s", result.filename, result.error or "no document")
                continue
            if spec_id in seen:
                logger.warning("Skipping %s: duplicate spec id %s", result.filename, spec_id)
                continue
            try:
                entry = build_catalog_entry(document, spec_id)
            except (ValueError, TypeError, AttributeError, KeyError, IndexError) as e:
                logger.warning("Error processing specification %s: %s", result.filename, e)
                continue
            seen.add(spec_id)
            pending.append((document, entry))
        return pending

    async def commit(self, pending: Sequence[tuple[SpecDocument, CatalogEntry]]) -> CatalogSnapshot:
        await self.storage.ensure_directories()
        outcomes = await asyncio.gather(
            *(self.storage.save_spec(document, entry.spec_id) for document, entry in pending),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        catalog = [entry for _, entry in pending]
        await self.storage.save_catalog(catalog)
        return CatalogSnapshot.of(catalog, {entry.spec_id: document for document, entry in pending})

    async def build(self, root: Path) -> CatalogSnapshot:
        """Scan ``root`` and persist the result.

        Raises CatalogError(SCAN_ERROR) if the scan stream or the commit fails.
        """
        logger.debug("Starting scan and persist of %s", root)
        try:
            pending = await self.collect(root)
            snapshot = await self.commit(pending)
        except Exception as e:
            logger.error("Failed to scan and persist specifications: %s", e)
            raise CatalogError(
                "Failed to scan and persist specifications", ErrorCode.SCAN_ERROR, e
            ) from e
        logger.info("Built catalog with %d specifications", len(snapshot.catalog))
        return snapshot
