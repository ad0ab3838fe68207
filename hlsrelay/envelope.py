# hlsrelay/envelope.py
import logging

from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Type, Accept",
    "Access-Control-Expose-Headers": "Content-Length, Content-Range, Accept-Ranges",
}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

_CORS_RAW = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in CORS_HEADERS.items()]
_CORS_NAMES = {name for name, _ in _CORS_RAW}


def cors_headers(extra=None):
    headers = dict(CORS_HEADERS)
    if extra:
        headers.update(extra)
    return headers


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=cors_headers())


class EnvelopeMiddleware:
    """
    Pure ASGI middleware wrapping every HTTP response.

    OPTIONS requests are answered here with a bare 204. Every other response
    has the CORS headers merged into its start message. An exception escaping
    the app becomes a JSON 500 if nothing was sent yet; once headers are out
    the connection can only be dropped.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            await Response(status_code=204, headers=CORS_HEADERS)(scope, receive, send)
            return

        started = False

        async def send_with_cors(message):
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
                headers = [(k, v) for k, v in message.get("headers", []) if k.lower() not in _CORS_NAMES]
                message = dict(message, headers=headers + _CORS_RAW)
            await send(message)

        try:
            await self.app(scope, receive, send_with_cors)
        except Exception:
            if started:
                logger.exception("Error after response started for %s, dropping connection", scope.get("path"))
                raise
            logger.exception("Unhandled error for %s", scope.get("path"))
            await error_response(500, "Internal proxy error")(scope, receive, send)
