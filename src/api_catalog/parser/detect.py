"""Load candidate files and tell OpenAPI documents apart from other YAML/JSON."""

import re
from pathlib import Path
from typing import Any

import yaml

SPEC_SUFFIXES = (".json", ".yaml", ".yml")
SPEC_ID_EXTENSION = "x-spec-id"


def load_document(file_path: Path) -> Any:
    """Parse a JSON or YAML file (JSON is valid YAML)."""
    text = file_path.read_text(encoding="utf-8")
    return yaml.safe_load(text)


def is_openapi_document(data: Any) -> bool:
    return isinstance(data, dict) and ("openapi" in data or "swagger" in data)


def spec_id_from_filename(file_path: Path) -> str:
    spec_id = re.sub(r"[^A-Za-z0-9._-]", "-", file_path.stem).lstrip("-._")
    return spec_id or "spec"


def spec_id_for(document: dict, file_path: Path) -> str:
    """Use the document's ``x-spec-id`` when present, else the filename."""
    custom = document.get(SPEC_ID_EXTENSION)
    if custom is not None:
        return str(custom)
    return spec_id_from_filename(file_path)
