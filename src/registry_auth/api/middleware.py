"""ASGI middleware capping request body size."""

from __future__ import annotations

from fastapi import HTTPException, status
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from registry_auth.api.errors import error_response

PAYLOAD_TOO_LARGE = "payload too large"


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_body_bytes`` with 413.

    A declared ``Content-Length`` over the cap is refused before the app
    runs. Bodies without one (chunked uploads) are counted as they are
    received, and reading past the cap raises a 413 ``HTTPException`` that
    the app's error handlers render.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length is not None and length.isdigit() and int(length) > self.max_body_bytes:
            response = error_response(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, PAYLOAD_TOO_LARGE)
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=PAYLOAD_TOO_LARGE,
                    )
            return message

        await self.app(scope, limited_receive, send)
