"""
VoiceConnect Backend: Request ID Middleware
=============================================

Assigns every request a short correlation ID.

    1. Reuse the client's X-Request-ID header if it sent one
    2. Otherwise generate one (first 8 chars of a uuid4)
    3. Keep it in a ContextVar so exception handlers and services can log it
    4. Echo it back in the X-Request-ID response header

Error envelopes include the same value as `request_id`, so a user can quote
it in a bug report and it maps straight to the server log lines.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
