"""API router exposing the push and fetch endpoints of the sync service."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from replica.errors import InvalidInputError, ReconstructionError
from replica.kvstore import StorageError
from replica.services.sync import PushResult, SyncService, get_sync_service

router = APIRouter(prefix="/api", tags=["sync"])

_JSON_CONTENT_TYPES = {"application/json"}
_XML_CONTENT_TYPES = {"application/xml", "text/xml", "text/plain"}


class ConnectivityResponse(BaseModel):
    """Response body of the connectivity check."""

    status: str
    message: str
    time: str


class PushResponse(BaseModel):
    """Response body returned after a successful push."""

    success: bool
    message: str
    counts: dict[str, int]
    parts: int


def _media_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";", 1)[0].strip().lower()


def _decode_body(body: bytes) -> str:
    try:
        return body.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="Request body must be UTF-8 encoded") from exc


def _parse_json_payload(text: str) -> dict[str, Any]:
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Push body must be a JSON object")
    return payload


def _serialise_push(result: PushResult) -> PushResponse:
    return PushResponse(
        success=True,
        message="XML parsed successfully",
        counts=result.counts,
        parts=result.parts,
    )


@router.get("/test", response_model=ConnectivityResponse)
def connectivity_check() -> ConnectivityResponse:
    """Let the desktop pusher verify that it can reach the backend."""

    return ConnectivityResponse(
        status="success",
        message="Backend connected successfully",
        time=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )


@router.post("/push/tally", response_model=PushResponse)
async def push_tally(
    request: Request,
    sync_service: SyncService = Depends(get_sync_service),
) -> PushResponse:
    """Accept a JSON envelope of per-category XML fields or a raw XML export."""

    media_type = _media_type(request)
    is_json = media_type in _JSON_CONTENT_TYPES or media_type.endswith("+json")
    if not is_json and media_type not in _XML_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported content type {media_type or '(none)'}; send application/json or XML",
        )

    text = _decode_body(await request.body())
    try:
        if is_json:
            payload = _parse_json_payload(text)
            result = await run_in_threadpool(sync_service.push, payload)
        else:
            source = request.query_params.get("source")
            result = await run_in_threadpool(sync_service.push_envelope, text, source=source)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return _serialise_push(result)


@router.get("/imports/latest")
async def latest_import(sync_service: SyncService = Depends(get_sync_service)) -> JSONResponse:
    """Return the most recently pushed document."""

    try:
        document = await run_in_threadpool(sync_service.fetch)
    except ReconstructionError as exc:
        raise HTTPException(status_code=503, detail={"status": "corrupt", "error": str(exc)}) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return JSONResponse(document)
