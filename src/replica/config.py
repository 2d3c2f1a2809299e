"""Environment driven configuration for the sync service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 6_000_000
DEFAULT_MAX_VALUE_CHARS = 25 * 1024 * 1024
DEFAULT_NAMESPACE = "latest_tally"


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _int_from_env(name: str, default: int, *, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default
    if parsed < minimum:
        LOGGER.warning("%s must be >= %s (got %s); using default %s", name, minimum, parsed, default)
        return default
    return parsed


@dataclass(slots=True)
class SyncSettings:
    kv_backend: str = "memory"
    kv_persist_dir: str = "kv_data"
    namespace: str = DEFAULT_NAMESPACE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_value_chars: int = DEFAULT_MAX_VALUE_CHARS
    render_policy: str = "header"
    default_source: str = "tally"

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Build settings from ``KV_*``, ``ROW_RENDER_POLICY`` and ``SYNC_*`` variables."""

        return cls(
            kv_backend=_str_from_env("KV_STORE", "memory").lower(),
            kv_persist_dir=_str_from_env("KV_PERSIST_DIR", "kv_data"),
            namespace=_str_from_env("KV_NAMESPACE", DEFAULT_NAMESPACE),
            chunk_size=_int_from_env("KV_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            max_value_chars=_int_from_env("KV_MAX_VALUE_CHARS", DEFAULT_MAX_VALUE_CHARS),
            render_policy=_str_from_env("ROW_RENDER_POLICY", "header").lower(),
            default_source=_str_from_env("SYNC_DEFAULT_SOURCE", "tally"),
        )


__all__ = ["SyncSettings", "DEFAULT_CHUNK_SIZE", "DEFAULT_MAX_VALUE_CHARS", "DEFAULT_NAMESPACE"]
