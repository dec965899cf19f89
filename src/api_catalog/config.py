"""Configuration for the spec catalog."""

from pathlib import Path, PurePath

from pydantic import BaseModel, field_validator

DEFAULT_CATALOG_DIR = "_catalog"
DEFAULT_DEREFERENCED_DIR = "_dereferenced"
DEFAULT_CACHE_MAX_SIZE = 500
DEFAULT_CACHE_TTL_MS = 60 * 60 * 1000  # 1 hour
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 1000


class CatalogConfig(BaseModel):
    """Where raw specs live, where derived files go, and cache/retry tuning."""

    base_path: Path
    catalog_dir: str = DEFAULT_CATALOG_DIR
    dereferenced_dir: str = DEFAULT_DEREFERENCED_DIR
    cache_max_size: int = DEFAULT_CACHE_MAX_SIZE
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS

    @field_validator("catalog_dir", "dereferenced_dir")
    @classmethod
    def _single_component(cls, value: str) -> str:
        parts = PurePath(value).parts
        if len(parts) != 1 or parts[0] in (".", "..") or PurePath(value).is_absolute():
            raise ValueError(f"must be a single directory name, got {value!r}")
        return value

    @field_validator("cache_max_size", "retry_attempts")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("cache_ttl_ms", "retry_delay_ms")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @property
    def catalog_path(self) -> Path:
        return self.base_path / self.catalog_dir

    @property
    def dereferenced_path(self) -> Path:
        return self.base_path / self.dereferenced_dir

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_ms / 1000

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000
