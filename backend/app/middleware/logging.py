"""
Klara Backend — Request Logging Middleware
============================================

What:  One access-log line per HTTP request.
How:   Measures wall time around the downstream handler and logs
       method, path, status, duration, request id and client IP.

Never logged: request/response bodies (notes and chat messages are private),
the Authorization header, and query strings (a client could put a key there).

Typical durations:
    GET  /health           1-5ms
    GET  /api/notes        10-50ms
    POST /api/chat         1-10s (provider call dominates)
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("klara.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access logger. 5xx logs at ERROR, 4xx at WARNING, everything else at INFO."""

    # Probed every few seconds by the orchestrator; would drown real traffic
    QUIET_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
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
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
