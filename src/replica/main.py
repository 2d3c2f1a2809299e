import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from replica.api.sync import router as sync_router
from replica.errors import InvalidInputError, ReconstructionError, ReplicaError
from replica.kvstore import KeyValueStore, StorageError, get_kv_store
from replica.logging_config import configure_logging
from replica.telemetry import emit_app_startup_event, emit_exception

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Tally Replica Sync API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.include_router(sync_router)


@app.on_event("startup")
async def _startup() -> None:
    emit_app_startup_event()


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    content = exc.detail if isinstance(exc.detail, dict) else {"error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {exc}"})


@app.exception_handler(ReplicaError)
async def _replica_exception_handler(request: Request, exc: ReplicaError) -> JSONResponse:
    status_code = 500
    if isinstance(exc, InvalidInputError):
        status_code = 400
    elif isinstance(exc, ReconstructionError):
        status_code = 503
    emit_exception(module=__name__, error=exc)
    return JSONResponse(status_code=status_code, content={"error": str(exc) or "Processing failed"})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    emit_exception(module=__name__, error=exc)
    return JSONResponse(status_code=500, content={"error": "Processing failed"})


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Banner confirming the backend is running."""
    return "Replica backend active"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"


@app.get("/readyz", response_class=PlainTextResponse)
def readiness_probe(store: KeyValueStore = Depends(get_kv_store)) -> str:
    """Readiness probe that ensures the key-value backend answers."""

    try:
        store.list("__readyz__")
    except StorageError as exc:
        raise HTTPException(status_code=503, detail=f"kv_store_unavailable: {exc}") from exc
    return "ok"
