"""Structured lifecycle logging for push, fetch and storage steps."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

LOGGER = logging.getLogger("replica.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "KV_STORE",
    "KV_PERSIST_DIR",
    "KV_NAMESPACE",
    "KV_CHUNK_SIZE",
    "KV_MAX_VALUE_CHARS",
    "ROW_RENDER_POLICY",
    "SYNC_DEFAULT_SOURCE",
    "LOG_LEVEL",
    "LOG_DIR",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_push_event(
    step: str,
    *,
    req_id: str,
    source: str | None = None,
    counts: Mapping[str, int] | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "source": source,
        "counts": dict(counts) if counts is not None else None,
        "total_rows": sum(counts.values()) if counts else 0,
    }
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, req_id=req_id, duration_ms=duration_ms, details=details, exc=error)


def emit_category_event(
    category: str,
    *,
    req_id: str | None,
    xml_chars: int,
    blocks: int,
    records: int,
    error: BaseException | None = None,
) -> None:
    details = {
        "category": category,
        "xml_chars": xml_chars,
        "blocks": blocks,
        "records": records,
    }
    level = "warning" if error else "debug"
    log_event(LOGGER, "push.category", level=level, req_id=req_id, details=details, exc=error)


def emit_store_event(
    step: str,
    *,
    namespace: str,
    parts: int | None = None,
    chars: int | None = None,
    generation: str | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "namespace": namespace,
        "parts": parts,
        "chars": chars,
        "generation": generation,
    }
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, duration_ms=duration_ms, details=details, exc=error)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
) -> None:
    details = {"module": module}
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", level="debug", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_category_event",
    "emit_exception",
    "emit_push_event",
    "emit_store_event",
    "log_event",
    "traced_duration",
]
