"""
VoiceConnect Backend: Request Logging Middleware
==================================================

One access line per request on the `voiceconnect.access` logger:

    GET /api/posts/feed 200 23.4ms [a1b2c3d4] from 10.0.0.7

The same fields are attached as `extra` so a JSON formatter can index them.
5xx logs at ERROR, 4xx at WARNING, everything else at INFO.

Request bodies are never logged: they carry passwords, tokens and audio.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from voiceconnect.middleware.request_id import request_id_var

logger = logging.getLogger("voiceconnect.access")

# Probed every few seconds by the orchestrator
QUIET_PATHS = {"/health"}


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        ip = client_ip(request)
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": ip,
            },
        )
        return response
