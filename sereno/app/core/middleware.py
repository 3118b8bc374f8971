"""
Request middleware: correlation ids and one access-log line per request.

Every response carries ``X-Request-ID`` (echoed from the client when sent)
and ``X-Process-Time``. A user who reports a failed panic activation can
quote the request id to support.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from sereno.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

# paths hit by probes and docs; never worth an access-log line
_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path
        set_request_context(
            request_id=request_id,
            client_ip=request.client.host if request.client else None,
            endpoint=path,
            method=request.method,
        )

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            if not path.startswith(_QUIET_PREFIXES) or status_code >= 500:
                logger.log(
                    logging.WARNING if status_code >= 400 else logging.INFO,
                    "%s %s %d %.1fms", request.method, path, status_code, elapsed_ms,
                    extra={"duration_ms": round(elapsed_ms, 1), "status_code": status_code},
                )
            set_request_context()

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"
        return response
