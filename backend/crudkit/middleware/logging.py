"""
crudkit — Request Logging Middleware
======================================

What:  One access-log line per request: method, path, status, duration,
       request id and client address.
How:   Measures with perf_counter around call_next and picks the log level
       from the status class.
When:  Inside RequestIDMiddleware, so the request id is already set.
       Not installed when ENVIRONMENT=test.

    GET /api/customers 200 12.4ms [a1b2c3d4] from 10.0.0.7
"""

import logging
import time
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from crudkit.middleware.request_id import request_id_var

logger = logging.getLogger("crudkit.access")

PROBE_PATHS = ("/health", "/healthz", "/ready")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access logging.

    Levels:
        5xx → ERROR
        4xx → WARNING
        else → INFO

    Health probes hit the service every few seconds and are not logged.
    """

    def __init__(self, app: ASGIApp, skip_paths: Iterable[str] = PROBE_PATHS):
        super().__init__(app)
        self.skip_paths = frozenset(skip_paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.skip_paths:
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
