# hlsrelay/server.py
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from hlsrelay.config import Settings
from hlsrelay.envelope import EnvelopeMiddleware, error_response
from hlsrelay.errors import ProxyError
from hlsrelay.fetcher import UpstreamFetcher, build_client
from hlsrelay.routes import router

logger = logging.getLogger(__name__)


def _log_loop_exception(loop, context):
    # a stray task failing must not take the other requests down with it
    exc = context.get("exception")
    logger.error("Unhandled event loop error: %s", context.get("message"), exc_info=exc)


def create_app(settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

        owned = None
        if getattr(app.state, "fetcher", None) is None:
            owned = build_client(timeout=httpx.Timeout(settings.segment_timeout))
            app.state.fetcher = UpstreamFetcher(owned, settings.max_redirects)
        logger.info("HLS relay ready, redirect limit %d", settings.max_redirects)
        try:
            yield
        finally:
            if owned is not None:
                await owned.aclose()
                app.state.fetcher = None

    app = FastAPI(
        title="HLS Relay",
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.fetcher = UpstreamFetcher(client, settings.max_redirects) if client is not None else None

    app.add_middleware(EnvelopeMiddleware)

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        if exc.status_code >= 500:
            logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = [f"{e['loc'][-1]}: {e['msg']}" for e in exc.errors()]
        return error_response(400, " | ".join(messages))

    app.include_router(router)
    return app
