import asyncio
import logging
from typing import AsyncIterator, List, Mapping, Optional, Tuple

import httpx

from halo.proxy.errors import InvalidTarget, UpstreamFailure
from halo.proxy.headers import DEFAULT_POLICY, HeaderPolicy
from halo.proxy.models import BODYLESS_METHODS
from halo.utils.exception_logging import format_exception_message
from halo.vars import (
    UPSTREAM_RETRIES,
    UPSTREAM_RETRY_BACKOFF,
    UPSTREAM_TIMEOUT,
    UPSTREAM_VERIFY_TLS,
)

logger = logging.getLogger("uvicorn.error")

IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS", "PUT", "DELETE"}


class UpstreamResponse:
    """
    The final upstream response after redirects.

    Owns the client that produced it; ``aclose`` must run once the body has
    been read or streamed.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient):
        self._response = response
        self._client = client
        self.status_code = response.status_code
        self.headers: List[Tuple[str, str]] = response.headers.multi_items()
        self.content_type = response.headers.get("content-type") or "text/html"
        self.url = str(response.url)
        self.charset: Optional[str] = response.charset_encoding
        self._closed = False

    async def read(self) -> bytes:
        try:
            return await self._response.aread()
        except httpx.HTTPError as e:
            raise UpstreamFailure(format_exception_message(e) or type(e).__name__) from e

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Stream the body; the connection is released however the stream ends."""
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class UpstreamFetcher:
    def __init__(
        self,
        policy: HeaderPolicy = DEFAULT_POLICY,
        timeout: float = UPSTREAM_TIMEOUT,
        retries: int = UPSTREAM_RETRIES,
        backoff: float = UPSTREAM_RETRY_BACKOFF,
        verify: bool = UPSTREAM_VERIFY_TLS,
    ):
        self.policy = policy
        self.timeout = timeout
        self.retries = max(0, retries)
        self.backoff = backoff
        self.verify = verify

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.timeout) if self.timeout > 0 else httpx.Timeout(None)
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            verify=self.verify,
        )

    async def fetch(
        self,
        target_url: str,
        method: str,
        inbound_headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> UpstreamResponse:
        """Send the request upstream and return the unread final response."""
        method = method.upper()
        headers = self.policy.outbound(inbound_headers)
        content = None if method in BODYLESS_METHODS else body
        attempts = 1 + (self.retries if method in IDEMPOTENT_METHODS else 0)

        client = self._client()
        try:
            request = client.build_request(
                method, target_url, headers=headers, content=content
            )
        except httpx.InvalidURL as e:
            await client.aclose()
            raise InvalidTarget(f"Invalid URL: {e}")

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await client.send(request, stream=True)
                break
            except httpx.TransportError as e:
                if attempt < attempts:
                    delay = self.backoff * (2 ** (attempt - 1))
                    logger.warning(
                        f"[Upstream] {method} {target_url} failed "
                        f"(attempt {attempt}/{attempts}), retrying in {delay:.2f}s: "
                        f"{format_exception_message(e)}"
                    )
                    await asyncio.sleep(delay)
                    continue
                await client.aclose()
                raise UpstreamFailure(format_exception_message(e) or type(e).__name__) from e
            except httpx.HTTPError as e:
                await client.aclose()
                raise UpstreamFailure(format_exception_message(e) or type(e).__name__) from e

        logger.debug(
            f"[Upstream] {method} {target_url} -> {response.status_code} ({response.url})"
        )
        return UpstreamResponse(response, client)
