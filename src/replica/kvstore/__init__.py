"""Key-value store backends selected through configuration."""

from __future__ import annotations

from functools import lru_cache

from replica.config import SyncSettings

from .errors import StorageError
from .mock_store import (
    ConditionalKeyValueStore,
    DEFAULT_MAX_VALUE_CHARS,
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
)


def create_kv_store(settings: SyncSettings) -> KeyValueStore:
    """Instantiate the backend named by ``settings.kv_backend``."""

    backend = settings.kv_backend.strip().lower()

    if backend == "memory":
        return InMemoryKeyValueStore(max_value_chars=settings.max_value_chars)

    if backend == "file":
        try:
            return FileKeyValueStore(settings.kv_persist_dir, max_value_chars=settings.max_value_chars)
        except OSError as exc:
            raise StorageError(
                f"Failed to initialise file store at {settings.kv_persist_dir!r}", cause=exc
            ) from exc

    raise ValueError(f"Unsupported KV_STORE backend: {backend!r}")


@lru_cache()
def get_kv_store() -> KeyValueStore:
    """Return a lazily initialised store instance based on the environment."""

    return create_kv_store(SyncSettings.from_env())


def reset_kv_store_cache() -> None:
    """Clear the cached store (primarily for testing)."""

    get_kv_store.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "ConditionalKeyValueStore",
    "DEFAULT_MAX_VALUE_CHARS",
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "StorageError",
    "create_kv_store",
    "get_kv_store",
    "reset_kv_store_cache",
]
