# hlsrelay/relay.py
import logging

import httpx
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from hlsrelay.envelope import NO_CACHE_HEADERS
from hlsrelay.fetcher import UpstreamResponse
from hlsrelay.rewriter import PLAYLIST_CONTENT_TYPE, PlaylistRewriter, looks_like_playlist

logger = logging.getLogger(__name__)

SEGMENT_CONTENT_TYPE = "video/mp2t"

# Copied from upstream when present, needed for seeking
PASSTHROUGH_HEADERS = ("Content-Length", "Content-Range", "Accept-Ranges")


def relay_segment(upstream: UpstreamResponse, chunk_size: int = 65536) -> StreamingResponse:
    """Stream an upstream body to the client untouched, status included (206 too)."""
    headers = {"Content-Type": upstream.headers.get("content-type") or SEGMENT_CONTENT_TYPE}
    for name in PASSTHROUGH_HEADERS:
        value = upstream.headers.get(name)
        if value is not None:
            headers[name] = value
    # httpx decodes compressed bodies, the upstream length no longer applies
    if upstream.headers.get("content-encoding", "identity") != "identity":
        headers.pop("Content-Length", None)

    async def body():
        try:
            async for chunk in upstream.response.aiter_bytes(chunk_size):
                yield chunk
        except httpx.HTTPError as e:
            # headers are committed, nothing left but to drop the connection
            logger.warning("Upstream stream broke for %s: %s", upstream.url, e)
            raise
        finally:
            await upstream.aclose()

    return StreamingResponse(
        body(),
        status_code=upstream.status_code,
        headers=headers,
        # also runs when the client goes away before the body is drained
        background=BackgroundTask(upstream.aclose),
    )


def respond_playlist(upstream: UpstreamResponse, rewriter: PlaylistRewriter) -> Response:
    """Buffered response for /m3u8-proxy: rewrite playlists, pass everything else through."""
    content_type = upstream.headers.get("content-type", "")
    content = upstream.response.content

    if not upstream.is_success:
        return Response(
            content=content,
            status_code=upstream.status_code,
            media_type=content_type or "text/plain",
        )

    text = content.decode("utf-8-sig", errors="replace")
    if not looks_like_playlist(upstream.url, content_type, text):
        logger.debug("Not a playlist, passing through: %s", upstream.url)
        return Response(
            content=content,
            status_code=upstream.status_code,
            media_type=content_type or "application/octet-stream",
            headers=NO_CACHE_HEADERS,
        )

    return Response(
        content=rewriter.rewrite(text, upstream.url),
        status_code=upstream.status_code,
        media_type=PLAYLIST_CONTENT_TYPE,
        headers=NO_CACHE_HEADERS,
    )
