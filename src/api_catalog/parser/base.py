"""Unified data models for the API catalog.

The scanner produces ScanResult records, the builder turns each document
into a CatalogEntry, and the lookup endpoints return OperationResult /
SchemaResult records. Field names serialize as camelCase so the persisted
catalog stays readable by other tools.
"""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

SpecDocument = dict[str, Any]

SPEC_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
URI_SCHEME = "apis://"


def is_valid_spec_id(spec_id: str) -> bool:
    return bool(SPEC_ID_PATTERN.match(spec_id))


class CatalogModel(BaseModel):
    """Base for every catalog record: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UriType(str, Enum):
    SPECIFICATION = "specification"
    OPERATION = "operation"
    SCHEMA = "schema"


class SpecUri(CatalogModel):
    """Addressable handle for a specification, operation or schema."""

    spec_id: str
    type: UriType
    identifier: str

    def __str__(self) -> str:
        if self.type == UriType.OPERATION:
            return f"{URI_SCHEME}{self.spec_id}/operations/{self.identifier}"
        if self.type == UriType.SCHEMA:
            return f"{URI_SCHEME}{self.spec_id}/schemas/{self.identifier}"
        return f"{URI_SCHEME}{self.spec_id}"

    @classmethod
    def for_spec(cls, spec_id: str) -> "SpecUri":
        return cls(spec_id=spec_id, type=UriType.SPECIFICATION, identifier=spec_id)


class OperationEntry(CatalogModel):
    """One (path, method) pair of a document."""

    path: str
    method: str  # as written in the document, usually lowercase
    title: str | None = None  # operation summary
    description: str | None = None
    group: str | None = None  # first tag
    operation_id: str | None = None


class SchemaEntry(CatalogModel):
    """One named schema from components/schemas."""

    name: str
    description: str | None = None


class SchemaMatch(SchemaEntry):
    """A schema search hit, annotated with the spec it came from."""

    spec_id: str


class CatalogEntry(CatalogModel):
    """The catalog's record for one specification document."""

    uri: SpecUri
    description: str | None = None
    operations: list[OperationEntry] = []
    schemas: list[SchemaEntry] = []

    @property
    def spec_id(self) -> str:
        return self.uri.spec_id


class ScanResult(CatalogModel):
    """One item of the scanner's output stream.

    Either ``document`` and ``spec_id`` are set, or ``error`` is.
    """

    filename: str
    spec_id: str | None = None
    document: SpecDocument | None = None
    error: str | None = None

    @field_validator("document")
    @classmethod
    def _check_document_shape(cls, value: SpecDocument | None) -> SpecDocument | None:
        if value is None:
            return value
        if "openapi" not in value and "swagger" not in value:
            raise ValueError("document is not an OpenAPI/Swagger document")
        # A key present with no value (YAML ``paths:``) counts as empty.
        if not isinstance(value.get("paths") or {}, dict):
            raise ValueError("'paths' must be a mapping")
        components = value.get("components") or {}
        if not isinstance(components, dict) or not isinstance(components.get("schemas") or {}, dict):
            raise ValueError("'components.schemas' must be a mapping")
        return value

    @property
    def ok(self) -> bool:
        return self.error is None and self.document is not None and self.spec_id is not None


class OperationResult(CatalogModel):
    """A single operation loaded from a specification."""

    path: str
    method: str
    operation: dict
    spec_id: str
    uri: str


class SchemaResult(CatalogModel):
    """A single named schema loaded from a specification."""

    name: str
    description: str | None = None
    schema_: dict
    uri: str

    model_config = ConfigDict(
        alias_generator=lambda name: "schema" if name == "schema_" else to_camel(name),
        populate_by_name=True,
    )
