"""
crudkit — Unhandled Error Middleware
======================================

What:  Turns an exception that no route or exception handler dealt with into
       the 500 failure envelope.
How:   Starlette only runs an `Exception` handler from its outermost
       ServerErrorMiddleware, after every crudkit middleware has unwound. This
       middleware sits inside RequestIDMiddleware instead, so the 500 response
       still gets its X-Request-ID header and the error log line still reads
       the request id from the ContextVar.
"""

from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

ErrorHandler = Callable[[Request, Exception], Awaitable[Response]]


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, handler: ErrorHandler):
        super().__init__(app)
        self.handler = handler

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return await self.handler(request, exc)
