"""
KeepNotes Backend — Request Logging Middleware
================================================

What:  One log line per HTTP request with method, path, status and duration.
Why:   Chat requests can take up to the agent timeout; durations make slow
       or killed agents visible without reading agent logs.
How:   Measures from middleware entry to response, picks the level from the
       status class, attaches fields via `extra` for structured handlers.

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path, status, duration, IP, request ID
    ❌ Don't log: request bodies (chat messages may contain personal data)
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from keepnotes.middleware.request_id import request_id_var

logger = logging.getLogger("keepnotes.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request after the response is produced.

    Typical durations:
        - GET /health:    1-5ms (not logged)
        - POST /api/chat: seconds to AGENT_TIMEOUT_MS (agent start-up dominates)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path

        # Health probes run every few seconds; logging them buries real traffic
        if path == "/health":
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
