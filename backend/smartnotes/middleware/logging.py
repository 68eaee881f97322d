"""
SmartNotes Backend - Request Logging Middleware
================================================

What:  One access log line per HTTP request: method, path, status, duration.
Who:   Applied to every request; runs inside RequestIDMiddleware so the
       request ID is available.

Not logged: request bodies (note content, uploaded files) and the
Authorization header.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from smartnotes.middleware.request_id import request_id_var

logger = logging.getLogger("smartnotes.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request at a level derived from the response status.

    5xx -> ERROR, 4xx -> WARNING, everything else INFO. Health checks are
    skipped.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        # Why skip /health: load balancers poll it every few seconds and
        # would drown the access log.
        if path == "/health":
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        # perf_counter is monotonic; wall-clock jumps cannot skew durations.
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
            "%s %s %d %.1fms from %s",
            request.method,
            path,
            status,
            duration_ms,
            client_ip,
            # Structured fields for JSON log shippers; the message above is
            # for humans.
            extra={
                "request_id": request_id_var.get(""),
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
