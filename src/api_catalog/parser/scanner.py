"""Folder scanner producing dereferenced OpenAPI documents.

``SpecScanner.scan`` is an async generator: files are discovered up front,
but each one is read, parsed and dereferenced only when the consumer pulls
the next item. Files that fail to load come out as ScanResults with
``error`` set; files that are not OpenAPI documents are skipped.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Iterable

import yaml
from pydantic import ValidationError

from .base import ScanResult, is_valid_spec_id
from .dereference import Dereferencer, RefResolutionError
from .detect import SPEC_SUFFIXES, is_openapi_document, load_document, spec_id_for

logger = logging.getLogger(__name__)


class SpecScanner:
    """Finds OpenAPI files under a root folder."""

    def __init__(self, exclude_dirs: Iterable[str] = ()):
        self.exclude_dirs = set(exclude_dirs)

    async def scan(self, root: Path) -> AsyncIterator[ScanResult]:
        files = await asyncio.to_thread(self.discover, root)
        logger.debug("Found %d candidate files under %s", len(files), root)
        for file_path in files:
            result = await asyncio.to_thread(self.process_file, root, file_path)
            if result is not None:
                yield result

    def discover(self, root: Path) -> list[Path]:
        """List candidate spec files under ``root`` in a stable order."""
        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                d for d in dirnames if not d.startswith(".") and d not in self.exclude_dirs
            )
            for name in sorted(filenames):
                if name.lower().endswith(SPEC_SUFFIXES) and not name.startswith("."):
                    found.append(Path(dirpath) / name)
        return found

    def process_file(self, root: Path, file_path: Path) -> ScanResult | None:
        filename = file_path.relative_to(root).as_posix()
        try:
            data = load_document(file_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.debug("Failed to parse %s: %s", filename, e)
            return ScanResult(filename=filename, error=f"parse error: {e}")

        if not is_openapi_document(data):
            logger.debug("Skipping %s: not an OpenAPI document", filename)
            return None

        spec_id = spec_id_for(data, file_path)
        if not is_valid_spec_id(spec_id):
            return ScanResult(filename=filename, error=f"invalid spec id {spec_id!r}")

        try:
            document = Dereferencer().dereference(data, file_path)
            # Normalize to plain JSON types (YAML dates, integer status codes).
            document = json.loads(json.dumps(document, default=str))
            return ScanResult(filename=filename, spec_id=spec_id, document=document)
        except RefResolutionError as e:
            return ScanResult(filename=filename, spec_id=spec_id, error=f"dereference error: {e}")
        except RecursionError:
            return ScanResult(filename=filename, spec_id=spec_id, error="document is too deeply nested")
        except (TypeError, ValueError) as e:
            # ValidationError is a ValueError
            message = e.errors()[0]["msg"] if isinstance(e, ValidationError) else str(e)
            return ScanResult(filename=filename, spec_id=spec_id, error=f"invalid document: {message}")
