"""JSON logging for the sync service and its push audit trail."""

from __future__ import annotations

import json
import logging
import logging.config
import os
import time
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "replica.sync.audit"
AUDIT_LOG_FILENAME = "sync_audit.log"

# Attributes every LogRecord carries; anything else was passed through ``extra``.
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class MinimalJSONFormatter(logging.Formatter):
    """Render one compact JSON object per record.

    Dict messages (the structured events of :mod:`replica.telemetry` and the
    audit entries) are merged into the object; ``extra`` fields are appended.
    """

    converter = time.gmtime
    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03dZ"

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
        }
        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            payload["message"] = record.getMessage()

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info and "exc" not in payload:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(log_dir: Path, level: str) -> dict[str, Any]:
    """Return the ``dictConfig`` schema for the service loggers."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": MinimalJSONFormatter}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "json"},
            "sync_audit": {
                "class": "logging.FileHandler",
                "filename": str(log_dir / AUDIT_LOG_FILENAME),
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {
                "level": "INFO",
                "handlers": ["sync_audit"],
                "propagate": False,
            }
        },
    }


def configure_logging(log_dir: Path | str | None = None, level: str | None = None) -> None:
    """Install JSON logging; ``LOG_DIR`` and ``LOG_LEVEL`` provide the defaults."""

    log_path = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    log_path.mkdir(parents=True, exist_ok=True)
    root_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(build_logging_config(log_path, root_level))


__all__ = [
    "AUDIT_LOGGER_NAME",
    "MinimalJSONFormatter",
    "build_logging_config",
    "configure_logging",
]
