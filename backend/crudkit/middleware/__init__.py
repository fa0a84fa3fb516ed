"""
crudkit — Middleware Package
==============================

What:  Cross-cutting concerns applied to every request of a service.

Middleware Chain (outermost first, as installed by ServiceBootstrap):
    Request → [Request ID] → [Logging] → [GZip] → [Body Limit] → [CORS]
            → [Security Headers] → [Unhandled Error] → [custom middlewares]
            → Router

    - Request ID first, so the access log line and every handler log line
      share the same id.
    - Unhandled Error inside the header-setting middlewares, so a 500 still
      carries X-Request-ID, CORS and security headers and reaches the access log.
    - Body Limit before CORS and routing: oversized uploads are refused
      before anything parses them.
"""

from crudkit.middleware.body_limit import BodySizeLimitMiddleware
from crudkit.middleware.errors import UnhandledErrorMiddleware
from crudkit.middleware.logging import RequestLoggingMiddleware
from crudkit.middleware.request_id import RequestIDMiddleware, request_id_var
from crudkit.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "BodySizeLimitMiddleware",
    "RequestIDMiddleware",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "UnhandledErrorMiddleware",
    "request_id_var",
]
