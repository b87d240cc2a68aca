# backend/app/logging_config.py
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .middleware.request_id import get_request_id

SERVICE_NAME = "staysync"

# extras accepted via `log.info(..., extra={...})`; anything else is dropped
STRUCTURED_KEYS = (
    "user_id",
    "property_id",
    "reservation_id",
    "subscription_id",
    "sync_status",
    "month",
    "task_id",
)

# library loggers and the env var that overrides their level
_QUIET_LOGGERS = {
    "sqlalchemy.engine": "SQL_LOG_LEVEL",
    "httpx": "HTTPX_LOG_LEVEL",
    "httpcore": "HTTPX_LOG_LEVEL",
    "celery": "CELERY_LOG_LEVEL",
}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: ts, level, logger, message, request_id when a
    request is in flight, the structured extras above, and exc_info.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        rid = get_request_id()
        if rid:
            payload["request_id"] = rid

        for k in STRUCTURED_KEYS:
            v = getattr(record, k, None)
            if v is not None:
                payload[k] = v

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()

    root = logging.getLogger()
    root.setLevel(level)

    # uvicorn --reload and repeated create_app() calls would otherwise stack handlers
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    for name, env_var in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel((os.getenv(env_var) or "WARNING").upper())
