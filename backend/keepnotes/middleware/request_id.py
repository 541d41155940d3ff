"""
KeepNotes Backend — Request ID Middleware
===========================================

What:  Assigns a short correlation ID to each request and echoes it in the response.
Why:   A chat request fans out into an agent process and several log lines;
       the ID ties them together and appears in every error body.
How:   Reuses a client-supplied X-Request-ID or generates one, stores it in a
       ContextVar read by loggers and exception handlers.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Accept or generate X-Request-ID and add it to the response headers."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # 8 chars is enough to correlate log lines within one deployment
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
