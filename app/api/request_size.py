"""ASGI middleware that rejects oversized request bodies before any parsing."""

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.api.responses import error_response
from app.core.config import Settings
from app.core.errors import ErrorCode

BODYLESS_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def request_size_limit(path: str, settings: Settings) -> int:
    """Byte limit for a request path: auth < configuration writes < default."""
    prefix = settings.API_V1_PREFIX
    if path.startswith(f"{prefix}/auth") or path.startswith(f"{prefix}/api-tokens"):
        return settings.MAX_REQUEST_SIZE_AUTH
    if path.startswith(f"{prefix}/configs") or path.startswith(f"{prefix}/editor"):
        return settings.MAX_REQUEST_SIZE_CONFIG
    return settings.MAX_REQUEST_SIZE_DEFAULT


class RequestSizeLimitMiddleware:
    """
    Enforce per-route body limits.

    A declared Content-Length is checked up front. Without one (chunked
    uploads), the body is read chunk by chunk and the request is aborted as
    soon as the running total passes the limit; an accepted body is replayed
    to the application unchanged.
    """

    def __init__(self, app: ASGIApp, settings: Settings) -> None:
        self.app = app
        self.settings = settings

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        path = scope["path"]
        limit = request_size_limit(path, self.settings)
        content_length = Headers(scope=scope).get("content-length")

        if content_length is not None:
            try:
                declared = int(content_length)
            except ValueError:
                declared = -1
            if declared < 0:
                await self._reject(scope, receive, send, limit, "Invalid Content-Length header")
                return
            if declared > limit:
                await self._reject(scope, receive, send, limit)
                return
            await self.app(scope, receive, send)
            return

        if method in BODYLESS_METHODS:
            await self.app(scope, receive, send)
            return

        chunks: list[bytes] = []
        total = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            total += len(chunk)
            if total > limit:
                await self._reject(scope, receive, send, limit)
                return
            chunks.append(chunk)
            if not message.get("more_body", False):
                break

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        limit: int,
        details: str | None = None,
    ) -> None:
        response = error_response(
            413,
            "Payload Too Large",
            ErrorCode.PAYLOAD_TOO_LARGE,
            details=details or f"Request body exceeds the maximum size of {limit} bytes",
            method=scope["method"],
            path=scope["path"],
        )
        await response(scope, receive, send)
