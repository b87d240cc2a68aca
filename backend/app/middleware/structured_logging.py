# backend/app/middleware/structured_logging.py
from __future__ import annotations

import json
import logging
import re
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("staysync.request")

# feed and share tokens are bearer credentials; never written to logs
_PUBLIC_PATH = re.compile(r"^/(feed|share)/[^/]+")


def _redact_path(path: str) -> tuple[str, bool]:
    redacted, n = _PUBLIC_PATH.subn(lambda m: f"/{m.group(1)}/<token>", path)
    return redacted, bool(n)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One `http_request` line per request. Owner calls carry the dev identity
    header; public feed/share calls carry the poller's User-Agent instead, so
    a misbehaving calendar platform can be spotted.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()
        path, is_public = _redact_path(request.url.path)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            request_id: Optional[str] = getattr(request.state, "request_id", None)
            payload = {
                "event": "http_request",
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "status_code": status_code,
                "latency_ms": int((time.perf_counter() - t0) * 1000),
            }
            if is_public:
                payload["user_agent"] = request.headers.get("User-Agent")
            else:
                payload["user_email"] = request.headers.get(settings.dev_header_user_email)
            log.info(json.dumps(payload, default=str))
