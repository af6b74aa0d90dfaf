"""
HTTP transport to the upstream chat service.

``UpstreamClient`` owns one pooled ``httpx.AsyncClient`` and issues the single
JSON POST per chat request, with the browser-like headers the upstream expects
and an ``X-Request-ID`` tracing header.

Usage:
    async with UpstreamClient(config) as upstream:
        async with upstream.open(payload, request_id) as response:
            async for chunk in response.aiter_bytes():
                ...
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from loguru import logger

from .config import ProxyConfig
from .schemas import UpstreamRequest

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

EVENT_STREAM = "text/event-stream"


class UpstreamError(Exception):
    """The upstream answered with a non-success status.

    Attributes:
        status_code: HTTP status returned by the upstream.
        body: Response body as text.
    """

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Upstream error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


def is_event_stream(response: httpx.Response) -> bool:
    """Whether the upstream response is ``text/event-stream``."""
    return EVENT_STREAM in response.headers.get("content-type", "")


class UpstreamClient:
    """Async client for the upstream chat endpoint.

    No retries and no read timeout: streaming responses stay open for as long
    as the upstream keeps sending. Redirects are followed.

    Args:
        config: Proxy configuration (upstream URL and origin).
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(self, config: ProxyConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._client = httpx.AsyncClient(
            transport=transport,
            follow_redirects=True,
            timeout=httpx.Timeout(connect=15.0, read=None, write=60.0, pool=60.0),
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def headers(self, request_id: str) -> dict[str, str]:
        origin = self.config.upstream_origin
        return {
            "Content-Type": "application/json",
            "Accept": "*/*",
            "Origin": origin,
            "Referer": f"{origin}/",
            "User-Agent": USER_AGENT,
            "X-Request-ID": request_id,
        }

    @asynccontextmanager
    async def open(self, payload: UpstreamRequest, request_id: str) -> AsyncIterator[httpx.Response]:
        """POST ``payload`` upstream and yield the streaming response.

        The body is not read; the caller pulls it with ``aiter_bytes()`` or
        ``aread()``. The response is closed when the context exits.

        Raises:
            UpstreamError: If the upstream returns a non-success status.
            httpx.HTTPError: If the upstream can't be reached.
        """
        request = self._client.build_request(
            "POST",
            self.config.upstream_url,
            headers=self.headers(request_id),
            json=payload.model_dump(by_alias=True),
        )
        response = await self._client.send(request, stream=True)
        try:
            if not response.is_success:
                body = (await response.aread()).decode("utf-8", errors="replace")
                logger.error(f"Upstream Error: {response.status_code} {body[:500]}")
                raise UpstreamError(response.status_code, body)
            yield response
        finally:
            await response.aclose()

    async def aclose(self):
        await self._client.aclose()
