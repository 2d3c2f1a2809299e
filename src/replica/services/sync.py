from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Mapping

from replica.config import SyncSettings
from replica.ingest.aggregation import NormalizedDocument, RenderPolicy
from replica.ingest.pipeline import SyncPipeline, SyncPipelineConfig
from replica.kvstore import StorageError, get_kv_store
from replica.logging_config import AUDIT_LOGGER_NAME
from replica.storage import ChunkedDocumentStore, LargeObjectStore
from replica.telemetry import emit_exception, emit_push_event, traced_duration

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

EMPTY_DOCUMENT: Dict[str, Any] = {"status": "empty"}


@dataclass(slots=True)
class PushResult:
    """Structured result returned from :meth:`SyncService.push`."""

    req_id: str
    counts: Dict[str, int]
    parts: int
    stored_at: str
    generation: str
    duration_seconds: float


class SyncService:
    """Orchestrates the push (normalise then store) and fetch workflows."""

    def __init__(
        self,
        *,
        settings: SyncSettings | None = None,
        pipeline: SyncPipeline | None = None,
        document_store: ChunkedDocumentStore | None = None,
    ) -> None:
        self.settings = settings or SyncSettings.from_env()
        self.pipeline = pipeline or SyncPipeline(
            SyncPipelineConfig(
                render_policy=RenderPolicy.from_value(self.settings.render_policy),
                default_source=self.settings.default_source,
            )
        )
        if document_store is None:
            document_store = ChunkedDocumentStore(
                LargeObjectStore(
                    get_kv_store(),
                    namespace=self.settings.namespace,
                    chunk_size=self.settings.chunk_size,
                )
            )
        self.document_store = document_store

    def push(self, payload: Mapping[str, Any]) -> PushResult:
        """Normalise a JSON push envelope and replace the stored document."""

        started = time.perf_counter()
        req_id = uuid.uuid4().hex
        document = self.pipeline.run(payload, req_id=req_id)
        return self._store(document, req_id=req_id, started=started)

    def push_envelope(self, xml: str, *, source: str | None = None) -> PushResult:
        """Normalise a raw ``<ENVELOPE>`` export and replace the stored document."""

        started = time.perf_counter()
        req_id = uuid.uuid4().hex
        document = self.pipeline.run_envelope(xml, source=source, req_id=req_id)
        return self._store(document, req_id=req_id, started=started)

    def fetch(self) -> Dict[str, Any]:
        """Return the stored document, or ``{"status": "empty"}`` before any push.

        A document that cannot be reassembled raises
        :class:`~replica.errors.ReconstructionError`; callers should retry.
        """

        with traced_duration("fetch", logger=LOGGER, namespace=self.settings.namespace):
            document = self.document_store.load()
        if document is None:
            return dict(EMPTY_DOCUMENT)
        return document

    def _store(self, document: NormalizedDocument, *, req_id: str, started: float) -> PushResult:
        try:
            meta = self.document_store.store(document.to_dict())
        except StorageError as error:
            emit_push_event(
                "push.store",
                req_id=req_id,
                source=document.source,
                counts=document.counts,
                error=error,
            )
            emit_exception(module=f"{__name__}.store", error=error, req_id=req_id)
            raise

        duration = time.perf_counter() - started
        emit_push_event(
            "push.complete",
            req_id=req_id,
            source=document.source,
            counts=document.counts,
            duration_ms=duration * 1000.0,
        )
        AUDIT_LOGGER.info(
            {
                "event": "push",
                "req_id": req_id,
                "source": document.source,
                "time": document.time,
                "counts": document.counts,
                "parts": meta.parts,
                "generation": meta.generation,
            }
        )
        return PushResult(
            req_id=req_id,
            counts=dict(document.counts),
            parts=meta.parts,
            stored_at=meta.stored_at,
            generation=meta.generation,
            duration_seconds=duration,
        )


@lru_cache()
def get_sync_service() -> SyncService:
    """FastAPI dependency returning the shared :class:`SyncService` instance."""

    return SyncService()


def reset_sync_service_cache() -> None:
    get_sync_service.cache_clear()  # type: ignore[attr-defined]


__all__ = ["EMPTY_DOCUMENT", "PushResult", "SyncService", "get_sync_service", "reset_sync_service_cache"]
