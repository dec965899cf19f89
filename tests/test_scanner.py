import shutil
from pathlib import Path

import pytest

from api_catalog.parser.dereference import Dereferencer, RefResolutionError
from api_catalog.parser.detect import is_openapi_document, load_document, spec_id_for, spec_id_from_filename
from api_catalog.parser.scanner import SpecScanner

FIXTURES = Path(__file__).parent / "fixtures" / "specs"


async def _scan(root: Path, **kwargs) -> list:
    return [result async for result in SpecScanner(**kwargs).scan(root)]


class TestDetect:
    def test_detect_openapi_yaml(self):
        assert is_openapi_document(load_document(FIXTURES / "petstore.yaml"))

    def test_detect_swagger(self):
        assert is_openapi_document({"swagger": "2.0"})

    def test_detect_non_openapi(self):
        assert not is_openapi_document(load_document(FIXTURES / "common.yaml"))
        assert not is_openapi_document(["a", "list"])

    def test_spec_id_from_filename(self):
        assert spec_id_from_filename(Path("petstore.yaml")) == "petstore"
        assert spec_id_from_filename(Path("My API v2.json")) == "My-API-v2"

    def test_custom_spec_id_wins(self):
        assert spec_id_for({"x-spec-id": "store-api"}, Path("store.json")) == "store-api"
        assert spec_id_for({}, Path("store.json")) == "store"


class TestDereferencer:
    def test_resolves_local_and_file_refs(self):
        doc = load_document(FIXTURES / "petstore.yaml")
        resolved = Dereferencer().dereference(doc, FIXTURES / "petstore.yaml")
        pets = resolved["components"]["schemas"]["Pets"]
        assert pets["items"]["properties"]["name"] == {"type": "string"}
        error = resolved["paths"]["/pets/{petId}"]["get"]["responses"]["default"]["content"]["application/json"]["schema"]
        assert error["required"] == ["code", "message"]

    def test_leaves_circular_ref_in_place(self):
        doc = {
            "openapi": "3.0.0",
            "components": {
                "schemas": {
                    "Node": {"type": "object", "properties": {"next": {"$ref": "#/components/schemas/Node"}}}
                }
            },
        }
        resolved = Dereferencer().dereference(doc, FIXTURES / "inline.yaml")
        next_node = resolved["components"]["schemas"]["Node"]["properties"]["next"]
        assert next_node["type"] == "object"
        assert next_node["properties"]["next"] == {"$ref": "#/components/schemas/Node"}

    def test_sibling_description_overrides_target(self):
        doc = {
            "openapi": "3.1.0",
            "components": {"schemas": {"A": {"type": "string", "description": "plain"}}},
            "x-use": {"$ref": "#/components/schemas/A", "description": "override"},
        }
        resolved = Dereferencer().dereference(doc, FIXTURES / "inline.yaml")
        assert resolved["x-use"] == {"type": "string", "description": "override"}

    def test_unresolvable_ref_raises(self):
        doc = {"openapi": "3.0.0", "x": {"$ref": "#/components/schemas/Missing"}}
        with pytest.raises(RefResolutionError):
            Dereferencer().dereference(doc, FIXTURES / "inline.yaml")

    def test_remote_ref_raises(self):
        doc = {"openapi": "3.0.0", "x": {"$ref": "https://example.com/spec.yaml#/a"}}
        with pytest.raises(RefResolutionError):
            Dereferencer().dereference(doc, FIXTURES / "inline.yaml")


@pytest.mark.asyncio
class TestSpecScanner:
    async def test_scans_fixture_folder(self):
        results = await _scan(FIXTURES)
        assert [r.filename for r in results] == ["petstore.yaml", "store.json"]
        assert all(r.ok for r in results)
        assert [r.spec_id for r in results] == ["petstore", "store-api"]

    async def test_documents_are_json_normalized(self):
        results = await _scan(FIXTURES)
        petstore = results[0].document
        assert "200" in petstore["paths"]["/pets"]["get"]["responses"]

    async def test_parse_error_yields_error_result(self, tmp_path):
        (tmp_path / "bad.yaml").write_text("openapi: [unclosed")
        results = await _scan(tmp_path)
        assert len(results) == 1
        assert results[0].filename == "bad.yaml"
        assert results[0].ok is False
        assert "parse error" in results[0].error

    async def test_unresolvable_ref_yields_error_result(self, tmp_path):
        (tmp_path / "api.yaml").write_text(
            "openapi: 3.0.0\ninfo: {title: t, version: '1'}\npaths:\n  /a:\n    get:\n"
            "      responses:\n        '200': {$ref: '#/components/responses/Nope'}\n"
        )
        results = await _scan(tmp_path)
        assert results[0].ok is False
        assert "dereference error" in results[0].error

    async def test_invalid_custom_spec_id_yields_error_result(self, tmp_path):
        (tmp_path / "api.yaml").write_text("openapi: 3.0.0\nx-spec-id: ../escape\npaths: {}\n")
        results = await _scan(tmp_path)
        assert results[0].ok is False
        assert "invalid spec id" in results[0].error

    async def test_invalid_shape_yields_error_result(self, tmp_path):
        (tmp_path / "api.yaml").write_text("openapi: 3.0.0\npaths: [1, 2]\n")
        results = await _scan(tmp_path)
        assert results[0].ok is False
        assert "invalid document" in results[0].error

    async def test_null_paths_and_components_are_accepted(self, tmp_path):
        (tmp_path / "api.yaml").write_text(
            "openapi: 3.0.0\npaths:\ncomponents:\n  schemas:\n    Thing: {type: object}\n"
        )
        (tmp_path / "bare.yaml").write_text("openapi: 3.0.0\npaths: {}\ncomponents:\n")
        results = await _scan(tmp_path)
        assert [(r.filename, r.ok) for r in results] == [("api.yaml", True), ("bare.yaml", True)]
        assert results[0].document["components"]["schemas"]["Thing"] == {"type": "object"}

    async def test_skips_excluded_and_hidden_directories(self, tmp_path):
        shutil.copy(FIXTURES / "petstore.yaml", tmp_path / "petstore.yaml")
        for name in ("_catalog", "_dereferenced", ".git"):
            (tmp_path / name).mkdir()
            shutil.copy(FIXTURES / "petstore.yaml", tmp_path / name / "copy.yaml")
        results = await _scan(tmp_path, exclude_dirs=("_catalog", "_dereferenced"))
        assert [r.filename for r in results] == ["petstore.yaml"]

    async def test_nested_files_use_relative_filename(self, tmp_path):
        (tmp_path / "team").mkdir()
        shutil.copy(FIXTURES / "petstore.yaml", tmp_path / "team" / "pets.yaml")
        shutil.copy(FIXTURES / "common.yaml", tmp_path / "team" / "common.yaml")
        results = await _scan(tmp_path)
        assert [(r.filename, r.spec_id) for r in results] == [("team/pets.yaml", "pets")]
