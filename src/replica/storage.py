"""Chunked persistence of large documents on a size-limited key-value store.

A write removes the previous chunks and metadata, stores the new chunks and
writes the metadata record last; metadata never references chunks that are
not stored. Chunk keys carry the generation token of the write that produced
them and metadata records the part count, length and sha256 of the document.
When two writes race for the metadata record, the one whose chunks are still
complete keeps it.
"""
from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from replica.config import DEFAULT_CHUNK_SIZE, DEFAULT_NAMESPACE
from replica.errors import ReconstructionError
from replica.kvstore import KeyValueStore, StorageError
from replica.telemetry import emit_store_event

LOGGER = logging.getLogger(__name__)


def split_chunks(text: str, size: int) -> List[str]:
    """Split *text* into consecutive substrings of at most *size* characters."""

    if size <= 0:
        raise ValueError("Chunk size must be a positive integer")
    return [text[offset : offset + size] for offset in range(0, len(text), size)]


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class ChunkMeta:
    """Descriptor written after every chunk of a document is stored."""

    parts: int
    stored_at: str
    counts: Dict[str, int] = field(default_factory=dict)
    generation: str = ""
    sha256: str = ""
    length: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parts": self.parts,
            "storedAt": self.stored_at,
            "counts": dict(self.counts),
            "generation": self.generation,
            "sha256": self.sha256,
            "length": self.length,
        }

    @classmethod
    def from_json(cls, raw: str) -> "ChunkMeta":
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ReconstructionError("Metadata record is not valid JSON", cause=exc) from exc
        if not isinstance(data, dict):
            raise ReconstructionError("Metadata record must be a JSON object")
        try:
            parts = int(data.get("parts") or 0)
            length = data.get("length")
            return cls(
                parts=parts,
                stored_at=str(data.get("storedAt") or ""),
                counts={str(key): int(value) for key, value in (data.get("counts") or {}).items()},
                generation=str(data.get("generation") or ""),
                sha256=str(data.get("sha256") or ""),
                length=int(length) if length is not None else None,
            )
        except (TypeError, ValueError, AttributeError) as exc:
            raise ReconstructionError("Metadata record is malformed", cause=exc) from exc


class LargeObjectStore:
    """Store one large string per namespace as a set of chunks plus metadata."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("Chunk size must be a positive integer")
        limit = getattr(store, "max_value_chars", None)
        if isinstance(limit, int) and 0 < limit < chunk_size:
            LOGGER.warning("Chunk size %s exceeds backend value limit %s; clamping", chunk_size, limit)
            chunk_size = limit
        self._store = store
        self.namespace = namespace
        self.chunk_size = chunk_size

    @property
    def meta_key(self) -> str:
        return f"{self.namespace}:meta"

    @property
    def chunk_prefix(self) -> str:
        return f"{self.namespace}:chunk:"

    @property
    def legacy_key(self) -> str:
        """Single-value key used before documents were chunked."""

        return f"{self.namespace}_json"

    def chunk_key(self, generation: str, index: int) -> str:
        if generation:
            return f"{self.chunk_prefix}{generation}:{index:06d}"
        return f"{self.chunk_prefix}{index:06d}"

    def put_large(self, text: str, counts: Mapping[str, int] | None = None) -> ChunkMeta:
        """Replace the stored object with *text*.

        Raises :class:`StorageError` when the backend rejects any step. The
        previous object may already be deleted at that point.
        """

        started = time.perf_counter()
        generation = uuid.uuid4().hex
        chunks = split_chunks(text, self.chunk_size)
        meta = ChunkMeta(
            parts=len(chunks),
            stored_at=_utc_now(),
            counts=dict(counts or {}),
            generation=generation,
            sha256=_sha256(text),
            length=len(text),
        )
        try:
            self._delete_existing()
            for index, chunk in enumerate(chunks):
                self._store.put(self.chunk_key(generation, index), chunk)
            self._write_meta(meta)
        except StorageError as error:
            emit_store_event(
                "store.put",
                namespace=self.namespace,
                parts=meta.parts,
                chars=meta.length,
                generation=generation,
                error=error,
            )
            raise
        except Exception as error:  # pragma: no cover - unexpected backend failure
            emit_store_event(
                "store.put",
                namespace=self.namespace,
                parts=meta.parts,
                chars=meta.length,
                generation=generation,
                error=error,
            )
            raise StorageError("Failed to persist document chunks", cause=error) from error

        emit_store_event(
            "store.put",
            namespace=self.namespace,
            parts=meta.parts,
            chars=meta.length,
            generation=generation,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return meta

    def get_meta(self) -> Optional[ChunkMeta]:
        raw = self._store.get(self.meta_key)
        if raw is None:
            return None
        return ChunkMeta.from_json(raw)

    def get_large(self) -> Optional[str]:
        """Reassemble the stored object, or return ``None`` when nothing is stored.

        Raises :class:`ReconstructionError` when a chunk is missing or the
        reassembled text does not match the recorded length or checksum.
        """

        started = time.perf_counter()
        meta = self.get_meta()
        if meta is None or meta.parts <= 0:
            return self._store.get(self.legacy_key)

        pieces: List[str] = []
        for index in range(meta.parts):
            chunk = self._store.get(self.chunk_key(meta.generation, index))
            if chunk is None:
                raise ReconstructionError(
                    f"Chunk {index} of {meta.parts} is missing for generation {meta.generation or '-'}"
                )
            pieces.append(chunk)
        text = "".join(pieces)

        if meta.length is not None and len(text) != meta.length:
            raise ReconstructionError(
                f"Reassembled document has {len(text)} characters, expected {meta.length}"
            )
        if meta.sha256 and _sha256(text) != meta.sha256:
            raise ReconstructionError("Reassembled document checksum does not match metadata")

        emit_store_event(
            "store.get",
            namespace=self.namespace,
            parts=meta.parts,
            chars=len(text),
            generation=meta.generation,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return text

    def _delete_existing(self) -> None:
        for key in self._store.list(self.chunk_prefix):
            self._store.delete(key)
        self._store.delete(self.meta_key)
        self._store.delete(self.legacy_key)

    def _write_meta(self, meta: ChunkMeta) -> None:
        serialized = json.dumps(meta.to_dict(), ensure_ascii=False)
        put_if_absent = getattr(self._store, "put_if_absent", None)
        if not callable(put_if_absent):
            self._store.put(self.meta_key, serialized)
            return
        if put_if_absent(self.meta_key, serialized):
            return

        winner = self._stored_generation_intact()
        if winner is None:
            # A concurrent writer whose chunks are already gone loses to us.
            LOGGER.warning(
                "Metadata for %s references missing chunks; replacing it with generation %s",
                self.namespace,
                meta.generation,
            )
            self._store.put(self.meta_key, serialized)
            return

        LOGGER.warning(
            "Metadata for %s was written concurrently by generation %s; discarding generation %s",
            self.namespace,
            winner,
            meta.generation,
        )
        for index in range(meta.parts):
            self._store.delete(self.chunk_key(meta.generation, index))
        raise StorageError("A concurrent push replaced the document; retry the push")

    def _stored_generation_intact(self) -> Optional[str]:
        """Return the generation named by the stored metadata if all its chunks exist."""

        try:
            current = self.get_meta()
        except ReconstructionError:
            return None
        if current is None:
            return None
        for index in range(current.parts):
            if self._store.get(self.chunk_key(current.generation, index)) is None:
                return None
        return current.generation


class ChunkedDocumentStore:
    """JSON document persistence on top of :class:`LargeObjectStore`."""

    def __init__(self, large_store: LargeObjectStore) -> None:
        self.large_store = large_store

    @staticmethod
    def serialize(document: Mapping[str, Any]) -> str:
        return json.dumps(document, ensure_ascii=False, separators=(",", ":"))

    def store(self, document: Mapping[str, Any]) -> ChunkMeta:
        counts = document.get("counts") or {}
        return self.large_store.put_large(self.serialize(document), counts)

    def load(self) -> Optional[Dict[str, Any]]:
        text = self.large_store.get_large()
        if text is None:
            return None
        try:
            document = json.loads(text)
        except ValueError as exc:
            raise ReconstructionError("Stored document is not valid JSON", cause=exc) from exc
        if not isinstance(document, dict):
            raise ReconstructionError("Stored document must be a JSON object")
        return document


__all__ = [
    "ChunkMeta",
    "ChunkedDocumentStore",
    "LargeObjectStore",
    "split_chunks",
]
