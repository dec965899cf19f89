"""Inline ``$ref`` resolution for OpenAPI documents.

Handles local references (``#/components/schemas/Pet``) and references into
sibling files (``common.yaml#/components/schemas/Error``). A reference that
points back into one of its own ancestors is left as the ``$ref`` node.
"""

from pathlib import Path
from typing import Any, Callable
from urllib.parse import unquote

import yaml

from .detect import load_document


class RefResolutionError(Exception):
    """A ``$ref`` could not be resolved."""


def _decode_pointer(pointer: str) -> list[str]:
    if not pointer:
        return []
    if not pointer.startswith("/"):
        raise RefResolutionError(f"Invalid JSON pointer: {pointer!r}")
    return [unquote(p).replace("~1", "/").replace("~0", "~") for p in pointer[1:].split("/")]


class Dereferencer:
    """Resolves references for one document and the files it points to."""

    def __init__(self, load_file: Callable[[Path], Any] = load_document):
        self._load_file = load_file
        self._files: dict[Path, Any] = {}

    def dereference(self, document: dict, source: Path) -> dict:
        source = source.resolve()
        self._files[source] = document
        return self._resolve(document, source, ())

    def _file(self, path: Path) -> Any:
        if path not in self._files:
            try:
                self._files[path] = self._load_file(path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                raise RefResolutionError(f"Cannot load referenced file {path}: {e}") from e
        return self._files[path]

    def _target(self, ref: str, current: Path) -> tuple[Path, str]:
        file_part, _, pointer = ref.partition("#")
        if "://" in file_part:
            raise RefResolutionError(f"Remote references are not supported: {ref}")
        target_file = (current.parent / file_part).resolve() if file_part else current
        return target_file, pointer

    def _lookup(self, target_file: Path, pointer: str) -> Any:
        node = self._file(target_file)
        for token in _decode_pointer(pointer):
            if isinstance(node, dict) and token in node:
                node = node[token]
            elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
                node = node[int(token)]
            else:
                raise RefResolutionError(f"Unresolvable reference {target_file.name}#{pointer}")
        return node

    def _resolve(self, node: Any, current: Path, stack: tuple[tuple[Path, str], ...]) -> Any:
        if isinstance(node, list):
            return [self._resolve(item, current, stack) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if not isinstance(ref, str):
            return {key: self._resolve(value, current, stack) for key, value in node.items()}

        target_file, pointer = self._target(ref, current)
        key = (target_file, pointer)
        if key in stack:
            return dict(node)
        resolved = self._resolve(self._lookup(target_file, pointer), target_file, stack + (key,))

        # OpenAPI 3.1 allows summary/description next to $ref; they override the target.
        siblings = {k: v for k, v in node.items() if k != "$ref"}
        if siblings and isinstance(resolved, dict):
            resolved = {**resolved, **self._resolve(siblings, current, stack)}
        return resolved
