"""
ASGI middleware enforcing the request body size limit.

A declared ``Content-Length`` over the limit is rejected before the app runs.
Bodies without one (chunked uploads) are counted as they stream in, and the
read fails with 413 once the limit is passed.
"""
import logging

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from pastebin.errors import PayloadTooLarge

logger = logging.getLogger(__name__)


def _too_large(max_bytes: int) -> PayloadTooLarge:
    return PayloadTooLarge(f"Request body must not exceed {max_bytes} bytes")


class BodySizeLimitMiddleware:
    def __init__(self, app, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        content_length = headers.get(b"content-length", b"").decode("latin-1")
        if content_length.isdigit() and int(content_length) > self.max_bytes:
            logger.warning(f"Rejected {scope.get('path')}: Content-Length {content_length}")
            error = _too_large(self.max_bytes)
            response = JSONResponse(status_code=error.status_code, content=error.to_dict())
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning(f"Rejected {scope.get('path')}: streamed body over {self.max_bytes} bytes")
                    raise HTTPException(status_code=413, detail=_too_large(self.max_bytes).message)
            return message

        await self.app(scope, limited_receive, send)
