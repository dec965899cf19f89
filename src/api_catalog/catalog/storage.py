"""Filesystem storage for dereferenced specs and the catalog record.

Layout under the configured base path::

    {catalog_dir}/catalog.json          one JSON array of catalog entries
    {dereferenced_dir}/{spec_id}.json   one dereferenced document per spec

Blocking file operations run in a worker thread. Transient OS errors are
retried with tenacity using the configured attempt count and delay.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Sequence

from pydantic import ValidationError
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_fixed

from api_catalog.catalog.errors import CatalogError, ErrorCode, SpecNotFoundError
from api_catalog.config import CatalogConfig
from api_catalog.parser.base import CatalogEntry, SpecDocument, is_valid_spec_id

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "catalog.json"

# Errors that will not go away by trying again.
_PERMANENT_OS_ERRORS = (
    FileNotFoundError,
    FileExistsError,
    IsADirectoryError,
    NotADirectoryError,
    PermissionError,
)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and not isinstance(exc, _PERMANENT_OS_ERRORS)


def _write_json_atomic(path: Path, data: Any) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path) -> Any:
    with path.open(encoding="utf-8") as f:
        return json.load(f)


class FileSystemStorage:
    """Reads and writes specs and the catalog under ``config.base_path``."""

    def __init__(self, config: CatalogConfig):
        self.config = config
        self.base_path = config.base_path
        self.catalog_path = config.catalog_path
        self.dereferenced_path = config.dereferenced_path
        self.catalog_file = self.catalog_path / CATALOG_FILENAME

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_fixed(self.config.retry_delay_seconds),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await self._retrying()(asyncio.to_thread, fn, *args)

    def spec_file(self, spec_id: str) -> Path:
        return self.dereferenced_path / f"{spec_id}.json"

    async def ensure_directories(self) -> None:
        """Create the base, catalog and dereferenced directories if missing."""
        logger.debug("Ensuring directories under %s", self.base_path)
        for directory in (self.base_path, self.catalog_path, self.dereferenced_path):
            try:
                await self._run(lambda d: d.mkdir(parents=True, exist_ok=True), directory)
            except OSError as e:
                raise CatalogError(
                    f"Failed to create directory {directory}", ErrorCode.INIT_ERROR, e
                ) from e

    async def save_spec(self, document: SpecDocument, spec_id: str) -> None:
        """Write one dereferenced document, replacing any previous version."""
        if not is_valid_spec_id(spec_id):
            raise CatalogError(f"Invalid spec id {spec_id!r}", ErrorCode.PERSIST_ERROR)
        logger.debug("Persisting specification %s", spec_id)
        try:
            await self._run(_write_json_atomic, self.spec_file(spec_id), document)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist specification %s: %s", spec_id, e)
            raise CatalogError(
                f"Failed to persist specification {spec_id}", ErrorCode.PERSIST_ERROR, e
            ) from e

    async def load_spec(self, spec_id: str) -> SpecDocument:
        """Read one dereferenced document.

        Raises SpecNotFoundError when the document was never persisted and a
        plain LOAD_ERROR CatalogError when it exists but cannot be read.
        """
        if not is_valid_spec_id(spec_id):
            raise SpecNotFoundError(spec_id)
        path = self.spec_file(spec_id)
        try:
            document = await self._run(_read_json, path)
        except FileNotFoundError as e:
            raise SpecNotFoundError(spec_id) from e
        except (OSError, ValueError) as e:
            logger.error("Failed to load specification %s: %s", spec_id, e)
            raise CatalogError(
                f"Failed to load specification {spec_id}", ErrorCode.LOAD_ERROR, e
            ) from e
        if not isinstance(document, dict):
            raise CatalogError(
                f"Specification {spec_id} is not a JSON object", ErrorCode.LOAD_ERROR
            )
        return document

    async def save_catalog(self, catalog: Sequence[CatalogEntry]) -> None:
        """Write the whole catalog as a single record."""
        data = [entry.to_dict() for entry in catalog]
        try:
            await self._run(_write_json_atomic, self.catalog_file, data)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist catalog: %s", e)
            raise CatalogError("Failed to persist catalog", ErrorCode.PERSIST_ERROR, e) from e
        logger.info("Persisted catalog with %d entries", len(data))

    async def load_catalog(self) -> tuple[CatalogEntry, ...]:
        """Read the catalog record; an empty tuple if none was ever written."""
        try:
            data = await self._run(_read_json, self.catalog_file)
        except FileNotFoundError:
            return ()
        except (OSError, ValueError) as e:
            raise CatalogError("Failed to load catalog", ErrorCode.LOAD_ERROR, e) from e
        if not isinstance(data, list):
            raise CatalogError("Catalog record is not a JSON array", ErrorCode.LOAD_ERROR)
        try:
            return tuple(CatalogEntry.model_validate(item) for item in data)
        except ValidationError as e:
            raise CatalogError("Catalog record is malformed", ErrorCode.LOAD_ERROR, e) from e
