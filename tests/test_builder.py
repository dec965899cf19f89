from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from api_catalog.catalog.builder import CatalogBuilder, build_catalog_entry, extract_operations, extract_schemas
from api_catalog.catalog.errors import CatalogError, ErrorCode
from api_catalog.catalog.storage import FileSystemStorage
from api_catalog.config import CatalogConfig
from api_catalog.parser.base import ScanResult


def _doc(title: str, operation_id: str) -> dict:
    return {
        "openapi": "3.0.0",
        "info": {"title": title, "version": "1", "description": f"{title} API"},
        "paths": {
            "/items": {
                "parameters": [{"name": "q", "in": "query"}],
                "summary": "path item summary",
                "get": {"operationId": operation_id, "summary": "List items", "tags": ["items", "extra"]},
                "post": {"operationId": f"create{title}", "description": "Create one"},
            }
        },
        "components": {"schemas": {"Item": {"type": "object", "description": "An item"}, "Bare": {"type": "string"}}},
    }


class FakeScanner:
    def __init__(self, results: list[ScanResult]):
        self.results = results
        self.pulled = 0

    async def scan(self, root: Path):
        for result in self.results:
            self.pulled += 1
            yield result


class TestExtraction:
    def test_operations_skip_structural_keys(self):
        operations = extract_operations(_doc("A", "listA"))
        assert [(op.path, op.method) for op in operations] == [("/items", "get"), ("/items", "post")]

    def test_operation_fields(self):
        get_op = extract_operations(_doc("A", "listA"))[0]
        assert get_op.operation_id == "listA"
        assert get_op.title == "List items"
        assert get_op.group == "items"
        assert get_op.description is None

    def test_schemas(self):
        schemas = extract_schemas(_doc("A", "listA"))
        assert [(s.name, s.description) for s in schemas] == [("Item", "An item"), ("Bare", None)]

    def test_document_without_components_or_paths(self):
        entry = build_catalog_entry({"openapi": "3.0.0", "info": {"title": "x"}}, "x")
        assert entry.operations == []
        assert entry.schemas == []
        assert entry.description is None

    def test_entry_uri(self):
        entry = build_catalog_entry(_doc("A", "listA"), "a")
        assert str(entry.uri) == "apis://a"
        assert entry.description == "A API"


@pytest.mark.asyncio
class TestCatalogBuilder:
    def _storage(self, tmp_path) -> FileSystemStorage:
        return FileSystemStorage(CatalogConfig(base_path=tmp_path, retry_delay_ms=0))

    async def test_build_skips_error_entries(self, tmp_path):
        scanner = FakeScanner([
            ScanResult(filename="a.yaml", spec_id="a", document=_doc("A", "listA")),
            ScanResult(filename="b.yaml", error="parse error"),
            ScanResult(filename="c.yaml", spec_id="c", document=_doc("C", "listC")),
        ])
        storage = self._storage(tmp_path)
        snapshot = await CatalogBuilder(scanner, storage).build(tmp_path)

        assert [e.spec_id for e in snapshot.catalog] == ["a", "c"]
        assert set(snapshot.specs) == {"a", "c"}
        assert len(snapshot.catalog) == len(snapshot.specs)
        assert [e.spec_id for e in await storage.load_catalog()] == ["a", "c"]
        assert not (tmp_path / "_dereferenced" / "b.json").exists()

    async def test_build_skips_result_without_document(self, tmp_path):
        scanner = FakeScanner([
            ScanResult(filename="empty.yaml", spec_id="empty"),
            ScanResult(filename="a.yaml", spec_id="a", document=_doc("A", "listA")),
        ])
        snapshot = await CatalogBuilder(scanner, self._storage(tmp_path)).build(tmp_path)
        assert [e.spec_id for e in snapshot.catalog] == ["a"]

    async def test_build_skips_document_whose_extraction_fails(self, tmp_path):
        broken = _doc("B", "listB")
        broken["paths"]["/items"]["get"]["summary"] = {"not": "a string"}
        scanner = FakeScanner([
            ScanResult(filename="a.yaml", spec_id="a", document=_doc("A", "listA")),
            ScanResult(filename="b.yaml", spec_id="b", document=broken),
        ])
        snapshot = await CatalogBuilder(scanner, self._storage(tmp_path)).build(tmp_path)
        assert [e.spec_id for e in snapshot.catalog] == ["a"]

    async def test_duplicate_spec_id_keeps_first(self, tmp_path):
        scanner = FakeScanner([
            ScanResult(filename="a.yaml", spec_id="a", document=_doc("First", "listA")),
            ScanResult(filename="other/a.yaml", spec_id="a", document=_doc("Second", "listA")),
        ])
        snapshot = await CatalogBuilder(scanner, self._storage(tmp_path)).build(tmp_path)
        assert len(snapshot.catalog) == 1
        assert snapshot.specs["a"]["info"]["title"] == "First"

    async def test_catalog_written_after_all_documents(self, tmp_path):
        scanner = FakeScanner([
            ScanResult(filename="a.yaml", spec_id="a", document=_doc("A", "listA")),
            ScanResult(filename="c.yaml", spec_id="c", document=_doc("C", "listC")),
        ])
        storage = self._storage(tmp_path)
        events = []
        real_save_spec, real_save_catalog = storage.save_spec, storage.save_catalog

        async def save_spec(document, spec_id):
            await real_save_spec(document, spec_id)
            events.append(spec_id)

        async def save_catalog(catalog):
            events.append("catalog")
            await real_save_catalog(catalog)

        storage.save_spec = save_spec
        storage.save_catalog = save_catalog
        await CatalogBuilder(scanner, storage).build(tmp_path)
        assert events[-1] == "catalog"
        assert sorted(events[:-1]) == ["a", "c"]

    async def test_commit_failure_raises_scan_error_and_skips_catalog_write(self, tmp_path):
        scanner = FakeScanner([
            ScanResult(filename="a.yaml", spec_id="a", document=_doc("A", "listA")),
            ScanResult(filename="c.yaml", spec_id="c", document=_doc("C", "listC")),
        ])
        storage = self._storage(tmp_path)
        real_save_spec = storage.save_spec

        async def save_spec(document, spec_id):
            if spec_id == "c":
                raise CatalogError("disk full", ErrorCode.PERSIST_ERROR)
            await real_save_spec(document, spec_id)

        storage.save_spec = save_spec
        storage.save_catalog = AsyncMock()
        with pytest.raises(CatalogError) as exc_info:
            await CatalogBuilder(scanner, storage).build(tmp_path)
        assert exc_info.value.code == ErrorCode.SCAN_ERROR
        assert exc_info.value.cause.code == ErrorCode.PERSIST_ERROR
        storage.save_catalog.assert_not_called()
        # the orphan document is tolerated
        assert (tmp_path / "_dereferenced" / "a.json").exists()

    async def test_consumes_stream_one_item_at_a_time(self, tmp_path):
        scanner = FakeScanner([ScanResult(filename=f"{i}.yaml", error="bad") for i in range(3)])
        snapshot = await CatalogBuilder(scanner, self._storage(tmp_path)).build(tmp_path)
        assert scanner.pulled == 3
        assert snapshot.catalog == ()
