# hlsrelay/fetcher.py
"""
Upstream fetches for the relay.

TLS certificate verification is turned off on the client built by
``build_client``. HLS origins are often self-signed or serve certificates for
another hostname, and the relay only ever passes their bytes along. This is a
deliberate trust trade-off: do not reuse this client for anything that sends
credentials.
"""
import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx

from hlsrelay.errors import TooManyRedirects, UpstreamNetworkFailure, UpstreamTimeout
from hlsrelay.headers import HeaderSet, TargetRequest, outbound_headers

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 307, 308)


def build_client(**kwargs) -> httpx.AsyncClient:
    kwargs.setdefault("verify", False)
    # redirects are followed by UpstreamFetcher so the hop bound is ours
    kwargs.setdefault("follow_redirects", False)
    kwargs.setdefault("timeout", httpx.Timeout(60.0))
    return httpx.AsyncClient(**kwargs)


@dataclass
class UpstreamResponse:
    url: str
    response: httpx.Response

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    @property
    def is_success(self) -> bool:
        return self.response.is_success

    async def aread(self) -> bytes:
        try:
            return await self.response.aread()
        except httpx.TimeoutException:
            raise UpstreamTimeout("Upstream timed out reading body")
        except httpx.HTTPError as e:
            raise UpstreamNetworkFailure(str(e) or e.__class__.__name__)

    async def aclose(self):
        await self.response.aclose()


class UpstreamFetcher:
    def __init__(self, client: httpx.AsyncClient, max_redirects: int = 5):
        self.client = client
        self.max_redirects = max_redirects

    async def fetch(self, target: TargetRequest, header_set: HeaderSet,
                    *, stream: bool = False, timeout: float = 30.0) -> UpstreamResponse:
        """
        Issue one logical request, following up to ``max_redirects`` hops.

        With ``stream=False`` the body is read before returning. With
        ``stream=True`` the caller owns the open response and must ``aclose()`` it.
        """
        headers = outbound_headers(header_set, target.inbound_range)
        url = target.url
        hops = 0

        while True:
            response = await self._attempt(target.method, url, headers, stream, timeout)

            location = response.headers.get("location")
            if response.status_code not in REDIRECT_STATUSES or not location:
                return UpstreamResponse(url=url, response=response)

            await response.aclose()
            if hops >= self.max_redirects:
                logger.warning("Too many redirects fetching %s", target.url)
                raise TooManyRedirects("Too many redirects")

            hops += 1
            next_url = urljoin(url, location)
            logger.debug("Redirect %d/%d: %s -> %s", hops, self.max_redirects, url, next_url)
            url = next_url

    async def _attempt(self, method, url, headers, stream, timeout) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            return await asyncio.wait_for(
                self._send(method, url, headers, stream, timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Upstream timeout after %ss: %s", timeout, url)
            raise UpstreamTimeout(f"Upstream timed out after {timeout:g}s")
        except httpx.HTTPError as e:
            logger.warning("Upstream fetch failed for %s: %s", url, e)
            raise UpstreamNetworkFailure(str(e) or e.__class__.__name__)

    async def _send(self, method, url, headers, stream, timeout) -> httpx.Response:
        request = self.client.build_request(method, url, headers=headers, timeout=timeout)
        response = await self.client.send(request, stream=True)
        if stream and response.status_code not in REDIRECT_STATUSES:
            return response

        try:
            await response.aread()
        except BaseException:
            await response.aclose()
            raise
        return response
