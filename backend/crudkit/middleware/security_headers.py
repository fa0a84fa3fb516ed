"""Security response headers (helmet-style defaults)."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

DEFAULT_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}

PRODUCTION_HEADERS = {
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the default headers to every response; HSTS and CSP only when strict."""

    def __init__(self, app: ASGIApp, strict: bool = False):
        super().__init__(app)
        self.headers = dict(DEFAULT_HEADERS)
        if strict:
            self.headers.update(PRODUCTION_HEADERS)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            # Routes that set their own value win
            response.headers.setdefault(name, value)
        return response
