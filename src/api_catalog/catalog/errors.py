"""Error taxonomy shared by the storage adapter, builder and service."""

from enum import Enum


class ErrorCode(str, Enum):
    INIT_ERROR = "INIT_ERROR"  # directory/bootstrap failure, or initialize failed
    SCAN_ERROR = "SCAN_ERROR"  # catalog build commit failed, previous state kept
    PERSIST_ERROR = "PERSIST_ERROR"  # a document or catalog write failed
    LOAD_ERROR = "LOAD_ERROR"  # a read failed


class CatalogError(Exception):
    """Raised for any storage-level or build-level failure.

    The underlying exception, when there is one, is available as ``cause``
    (and as ``__cause__`` when raised with ``from``).
    """

    def __init__(self, message: str, code: ErrorCode, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"[{self.code.value}] {self.message}: {self.cause}"
        return f"[{self.code.value}] {self.message}"

    @property
    def not_found(self) -> bool:
        return False


class SpecNotFoundError(CatalogError):
    """A LOAD_ERROR for a document (or catalog) that was never persisted."""

    def __init__(self, spec_id: str):
        super().__init__(f"Specification not found: {spec_id}", ErrorCode.LOAD_ERROR)
        self.spec_id = spec_id

    @property
    def not_found(self) -> bool:
        return True
