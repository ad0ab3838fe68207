# hlsrelay/headers.py
# Identity headers sent upstream: Referer/Origin resolution and caller overrides
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

import httpx

from hlsrelay.errors import HeaderParseFailure, InvalidUrl

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

# Never forwarded from caller overrides, httpx owns framing
_DROPPED = {"host", "connection", "content-length", "transfer-encoding"}


@dataclass(frozen=True)
class HeaderSet:
    referer: str
    origin: str
    extras: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TargetRequest:
    url: str
    header_overrides: Dict[str, str] = field(default_factory=dict)
    inbound_range: Optional[str] = None
    method: str = "GET"

    def __post_init__(self):
        if not _is_fetchable(self.url):
            raise InvalidUrl(f"Invalid URL: {self.url}")


def _is_fetchable(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def origin_of(url: str) -> Optional[str]:
    """scheme://host[:port] of an absolute URL, None if it has no origin."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def parse_header_overrides(raw: Optional[str]) -> Dict[str, str]:
    """
    Decode the `headers` query parameter: a JSON object of header name -> string.
    Non-object payloads and non-string values raise HeaderParseFailure.
    """
    if raw is None or not raw.strip():
        return {}

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise HeaderParseFailure(f"headers is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise HeaderParseFailure("headers must be a JSON object")

    overrides = {}
    for name, value in data.items():
        if not isinstance(value, str):
            raise HeaderParseFailure(f"header {name!r} must be a string")
        overrides[name] = value
    return overrides


def overrides_or_empty(raw: Optional[str]) -> Dict[str, str]:
    try:
        return parse_header_overrides(raw)
    except HeaderParseFailure as e:
        logger.debug("Ignoring headers parameter: %s", e.message)
        return {}


def _lookup(overrides: Mapping[str, str], name: str) -> Optional[str]:
    for key, value in overrides.items():
        if key.lower() == name:
            return value
    return None


def resolve_header_set(overrides: Mapping[str, str], target_url: str, default_referer: str) -> HeaderSet:
    # explicit override -> the target's own origin -> fixed default
    referer = _lookup(overrides, "referer")
    if not referer:
        target_origin = origin_of(target_url)
        referer = f"{target_origin}/" if target_origin else default_referer

    origin = _lookup(overrides, "origin")
    if not origin:
        origin = origin_of(referer) or origin_of(default_referer) or default_referer.rstrip("/")

    extras = {
        name: value for name, value in overrides.items()
        if name.lower() not in _DROPPED and name.lower() not in ("referer", "origin")
    }
    return HeaderSet(referer=referer, origin=origin, extras=extras)


def outbound_headers(header_set: HeaderSet, inbound_range: Optional[str] = None) -> httpx.Headers:
    headers = httpx.Headers({
        "User-Agent": USER_AGENT,
        "Referer": header_set.referer,
        "Origin": header_set.origin,
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
    })
    for name, value in header_set.extras.items():
        headers[name] = value

    if inbound_range:
        headers["Range"] = inbound_range
    return headers


def encode_header_param(overrides: Mapping[str, str]) -> str:
    """Compact JSON of the caller's overrides, carried into rewritten URLs."""
    return json.dumps(dict(overrides), separators=(",", ":"))
