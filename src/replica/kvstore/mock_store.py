"""Local key-value backends mirroring the semantics of a hosted KV namespace."""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Protocol
from urllib.parse import quote, unquote

from .errors import StorageError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_VALUE_CHARS = 25 * 1024 * 1024


class KeyValueStore(Protocol):
    """Protocol describing the primitives the chunked store relies on.

    Values are strings with a size ceiling; there is no atomicity across keys.
    """

    max_value_chars: int

    def get(self, key: str) -> str | None:
        ...

    def put(self, key: str, value: str) -> None:
        ...

    def list(self, prefix: str = "") -> List[str]:
        ...

    def delete(self, key: str) -> None:
        ...


class ConditionalKeyValueStore(KeyValueStore, Protocol):
    """Backends that can create a key only when it does not exist yet."""

    def put_if_absent(self, key: str, value: str) -> bool:
        ...


def _check_value(key: str, value: str, limit: int) -> None:
    if not key:
        raise StorageError("Key must not be empty")
    if not isinstance(value, str):
        raise StorageError(f"Value for {key!r} must be a string")
    if len(value) > limit:
        raise StorageError(f"Value for {key!r} exceeds the {limit} character limit ({len(value)} characters)")


class InMemoryKeyValueStore:
    """Dictionary-backed store used by default and in tests."""

    def __init__(self, *, max_value_chars: int = DEFAULT_MAX_VALUE_CHARS) -> None:
        self.max_value_chars = max_value_chars
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        _check_value(key, value, self.max_value_chars)
        with self._lock:
            self._data[key] = value

    def put_if_absent(self, key: str, value: str) -> bool:
        _check_value(key, value, self.max_value_chars)
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def list(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(key for key in self._data if key.startswith(prefix))

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileKeyValueStore:
    """Store each key as one UTF-8 file inside *persist_dir*."""

    _SUFFIX = ".kv"

    def __init__(self, persist_dir: Path | str, *, max_value_chars: int = DEFAULT_MAX_VALUE_CHARS) -> None:
        self.persist_dir = Path(persist_dir).resolve()
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        self.max_value_chars = max_value_chars

    def _path(self, key: str) -> Path:
        return self.persist_dir / f"{quote(key, safe='')}{self._SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {key!r}", cause=exc) from exc

    def put(self, key: str, value: str) -> None:
        _check_value(key, value, self.max_value_chars)
        path = self._path(key)
        tmp_path = path.with_name(f"{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {key!r}", cause=exc) from exc

    def put_if_absent(self, key: str, value: str) -> bool:
        _check_value(key, value, self.max_value_chars)
        try:
            with self._path(key).open("x", encoding="utf-8") as handle:
                handle.write(value)
        except FileExistsError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to create {key!r}", cause=exc) from exc
        return True

    def list(self, prefix: str = "") -> List[str]:
        try:
            names = [entry.name for entry in self.persist_dir.iterdir() if entry.name.endswith(self._SUFFIX)]
        except OSError as exc:
            raise StorageError("Failed to list keys", cause=exc) from exc
        keys = (unquote(name[: -len(self._SUFFIX)]) for name in names)
        return sorted(key for key in keys if key.startswith(prefix))

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete {key!r}", cause=exc) from exc


__all__ = [
    "ConditionalKeyValueStore",
    "DEFAULT_MAX_VALUE_CHARS",
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
]
