"""
Ultra Roadmap Sync - Middleware
===============================

Request body size limit.
"""

from typing import Any, Optional

import structlog
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from roadmap_sync.core.config import settings
from roadmap_sync.core.exceptions import PayloadTooLargeError
from roadmap_sync.core.schemas import ErrorResponse

logger = structlog.get_logger()


def error_response(status_code: int, error: str, details: Optional[Any] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, details=details).model_dump(exclude_none=True),
    )


class BodySizeLimitMiddleware:
    """
    Refuse request bodies larger than MAX_REQUEST_BODY_BYTES with a 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked uploads) are buffered while counting and refused as soon as
    they pass the limit; the buffered body is then replayed to the app.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = settings.MAX_REQUEST_BODY_BYTES
        length = Headers(scope=scope).get("content-length")
        if length is not None and length.isdigit():
            if int(length) > limit:
                await self._reject(scope, receive, send, limit, int(length))
                return
            await self.app(scope, receive, send)
            return

        chunks: list[bytes] = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > limit:
                await self._reject(scope, receive, send, limit, received)
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay, send)

    @staticmethod
    async def _reject(scope: Scope, receive: Receive, send: Send, limit: int, received: int) -> None:
        exc = PayloadTooLargeError(limit)
        logger.warning("request_body_too_large", path=scope.get("path"), received_bytes=received)
        response = error_response(exc.status_code, exc.message, exc.details)
        await response(scope, receive, send)
