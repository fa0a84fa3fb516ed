"""
crudkit — Request Body Size Limit
===================================

What:  Rejects request bodies larger than MAX_BODY_SIZE with a 413 envelope.
How:   Two checks, both before the application sees the request:
         1. Content-Length header above the limit → reject without reading
         2. Streamed byte count above the limit   → reject mid-stream
       Bodies within the limit are buffered and replayed to the app.
       Written as a plain ASGI middleware because the limit has to apply to
       the raw receive channel.
"""

import logging

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from crudkit.exceptions import PayloadTooLargeError
from crudkit.responses import fail

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware:
    def __init__(self, app: ASGIApp, max_body_size: int):
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] in ("GET", "HEAD", "OPTIONS"):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        declared = headers.get(b"content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_size:
            await self._reject(scope, receive, send, int(declared))
            return

        messages = []
        received = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            received += len(message.get("body", b""))
            if received > self.max_body_size:
                await self._reject(scope, receive, send, received)
                return
            messages.append(message)
            if not message.get("more_body", False):
                break

        async def replay() -> Message:
            if messages:
                return messages.pop(0)
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: int) -> None:
        error = PayloadTooLargeError(limit=self.max_body_size)
        logger.warning(
            "Rejected %s %s: body of at least %d bytes exceeds %d",
            scope["method"],
            scope.get("path", ""),
            size,
            self.max_body_size,
        )
        response = fail(error.status_code, error.message, headers={"Connection": "close"})
        await response(scope, receive, send)
