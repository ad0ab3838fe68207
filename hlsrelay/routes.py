# hlsrelay/routes.py
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse

from hlsrelay.config import Settings
from hlsrelay.errors import InvalidUrl
from hlsrelay.fetcher import UpstreamFetcher, build_client
from hlsrelay.headers import TargetRequest, encode_header_param, overrides_or_empty, resolve_header_set
from hlsrelay.relay import relay_segment, respond_playlist
from hlsrelay.rewriter import PlaylistRewriter

router = APIRouter()

USAGE_PAGE = """<!doctype html>
<html>
<head><title>HLS Relay</title></head>
<body>
<h1>HLS Relay</h1>
<p>Playlists: <code>/m3u8-proxy?url=&lt;encoded-url&gt;&amp;headers=&lt;encoded-json&gt;</code></p>
<p>Segments and keys: <code>/ts-proxy?url=&lt;encoded-url&gt;&amp;headers=&lt;encoded-json&gt;</code></p>
<p>Legacy: <code>/?url=&lt;encoded-url&gt;&amp;referer=&lt;encoded-referer&gt;</code></p>
<p>Health: <code>/health</code></p>
</body>
</html>
"""


def proxy_base(request: Request, settings: Settings) -> str:
    if settings.public_url:
        return settings.public_url

    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    # first hop wins when several proxies appended themselves
    proto = proto.split(",")[0].strip()
    host = host.split(",")[0].strip()
    return f"{proto}://{host}"


def _fetcher(request: Request) -> UpstreamFetcher:
    state = request.app.state
    if state.fetcher is None:
        # serverless hosts may never run the lifespan
        client = build_client(timeout=httpx.Timeout(state.settings.segment_timeout))
        state.fetcher = UpstreamFetcher(client, state.settings.max_redirects)
    return state.fetcher


def target_url(url: Optional[str]) -> str:
    if not url or not url.strip():
        raise InvalidUrl("url parameter is required")

    url = url.strip()
    # an unencoded '+' arrives as a space
    if " " in url:
        url = url.replace(" ", "+")
    return url


async def _playlist(request: Request, target: TargetRequest):
    settings: Settings = request.app.state.settings
    fetcher = _fetcher(request)

    header_set = resolve_header_set(target.header_overrides, target.url, settings.default_referer)
    upstream = await fetcher.fetch(target, header_set, timeout=settings.playlist_timeout)
    try:
        rewriter = PlaylistRewriter(proxy_base(request, settings), encode_header_param(target.header_overrides))
        return respond_playlist(upstream, rewriter)
    finally:
        await upstream.aclose()


async def _segment(request: Request, target: TargetRequest):
    settings: Settings = request.app.state.settings
    fetcher = _fetcher(request)

    header_set = resolve_header_set(target.header_overrides, target.url, settings.default_referer)
    upstream = await fetcher.fetch(target, header_set, stream=True, timeout=settings.segment_timeout)
    return relay_segment(upstream, settings.chunk_size)


async def _segment_or_playlist(request: Request, target: TargetRequest):
    settings: Settings = request.app.state.settings
    fetcher = _fetcher(request)

    header_set = resolve_header_set(target.header_overrides, target.url, settings.default_referer)
    upstream = await fetcher.fetch(target, header_set, stream=True, timeout=settings.segment_timeout)

    if "mpegurl" not in upstream.headers.get("content-type", "").lower():
        return relay_segment(upstream, settings.chunk_size)

    # playlist served from a URL without .m3u8 in it
    try:
        await upstream.aread()
        rewriter = PlaylistRewriter(proxy_base(request, settings), encode_header_param(target.header_overrides))
        return respond_playlist(upstream, rewriter)
    finally:
        await upstream.aclose()


@router.api_route("/m3u8-proxy", methods=["GET", "HEAD"])
async def m3u8_proxy(request: Request, url: Optional[str] = Query(None), headers: Optional[str] = Query(None)):
    target = TargetRequest(
        url=target_url(url),
        header_overrides=overrides_or_empty(headers),
        method=request.method,
    )
    return await _playlist(request, target)


@router.api_route("/ts-proxy", methods=["GET", "HEAD"])
async def ts_proxy(request: Request, url: Optional[str] = Query(None), headers: Optional[str] = Query(None)):
    target = TargetRequest(
        url=target_url(url),
        header_overrides=overrides_or_empty(headers),
        inbound_range=request.headers.get("range"),
        method=request.method,
    )
    return await _segment(request, target)


@router.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.api_route("/", methods=["GET", "HEAD"])
async def legacy_proxy(request: Request, url: Optional[str] = Query(None), referer: Optional[str] = Query(None)):
    """Original single-route form: ?url=...&referer=..."""
    if url is None:
        return HTMLResponse(content=USAGE_PAGE)

    url = target_url(url)
    overrides = {"Referer": referer} if referer else {}

    if ".m3u8" in url:
        target = TargetRequest(url=url, header_overrides=overrides, method=request.method)
        return await _playlist(request, target)

    target = TargetRequest(
        url=url,
        header_overrides=overrides,
        inbound_range=request.headers.get("range"),
        method=request.method,
    )
    return await _segment_or_playlist(request, target)

