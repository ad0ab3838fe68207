# hlsrelay/rewriter.py
import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import quote, urljoin, urlparse

logger = logging.getLogger(__name__)

PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"

URI_ATTRIBUTE = re.compile(r'URI="([^"]*)"')


class LineKind(enum.Enum):
    BLANK = "blank"
    DIRECTIVE = "directive"
    MEDIA = "media"


@dataclass(frozen=True)
class PlaylistLine:
    kind: LineKind
    raw: str
    uris: Tuple[str, ...] = ()


def classify_line(line: str) -> PlaylistLine:
    stripped = line.strip()
    if not stripped:
        return PlaylistLine(LineKind.BLANK, line)
    if stripped.startswith("#"):
        return PlaylistLine(LineKind.DIRECTIVE, line, tuple(URI_ATTRIBUTE.findall(line)))
    return PlaylistLine(LineKind.MEDIA, line, (stripped,))


def looks_like_playlist(url: str, content_type: str, text: str) -> bool:
    # HTML error pages are sometimes served from .m3u8 URLs
    if text.lstrip()[:1] == "<":
        return False
    return (
        "mpegurl" in (content_type or "").lower()
        or ".m3u8" in url
        or "#EXTM3U" in text
        or "#EXTINF" in text
    )


def resolve_uri(uri: str, base_url: str) -> str:
    """Absolute URIs pass through, anything else is joined onto the playlist URL."""
    if urlparse(uri).scheme:
        return uri
    return urljoin(base_url, uri)


class PlaylistRewriter:
    """
    Points every URI in a playlist back at this relay.

    Sub-playlists go to /m3u8-proxy, everything else (segments, keys,
    init sections) to /ts-proxy. Both carry the caller's header overrides
    so the player's follow-up requests reach the origin with the same identity.
    """

    def __init__(self, proxy_base: str, header_param: str):
        self.proxy_base = proxy_base.rstrip("/")
        self.header_param = header_param

    def proxy_url(self, resolved: str) -> str:
        route = "m3u8-proxy" if ".m3u8" in resolved else "ts-proxy"
        return (
            f"{self.proxy_base}/{route}"
            f"?url={quote(resolved, safe='')}&headers={quote(self.header_param, safe='')}"
        )

    def _rewrite_uri(self, uri: str, base_url: str) -> Optional[str]:
        resolved = resolve_uri(uri, base_url)
        # data:, skd: and friends cannot be fetched by the relay
        if urlparse(resolved).scheme not in ("http", "https"):
            return None
        return self.proxy_url(resolved)

    def rewrite_line(self, line: str, base_url: str) -> str:
        parsed = classify_line(line)

        if parsed.kind is LineKind.BLANK:
            return line

        if parsed.kind is LineKind.DIRECTIVE:
            if not parsed.uris:
                return line

            def repl(match):
                uri = match.group(1)
                if not uri:
                    return match.group(0)
                proxied = self._rewrite_uri(uri, base_url)
                return f'URI="{proxied}"' if proxied else match.group(0)

            return URI_ATTRIBUTE.sub(repl, line)

        proxied = self._rewrite_uri(parsed.uris[0], base_url)
        if proxied is None:
            return line
        # keep CRLF playlists CRLF
        return proxied + ("\r" if line.endswith("\r") else "")

    def rewrite(self, text: str, playlist_url: str) -> str:
        # a leading BOM would hide #EXTM3U from the directive check
        text = text.lstrip("\ufeff")
        out = []
        for line in text.split("\n"):
            try:
                out.append(self.rewrite_line(line, playlist_url))
            except ValueError as e:
                logger.debug("Keeping unresolvable playlist line %r: %s", line, e)
                out.append(line)
        return "\n".join(out)
