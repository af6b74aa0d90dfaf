"""
Public Python API for botzy2api.

Provides the BotzyClient class - an async context manager that talks to the
upstream directly, using the same adapter, reassembler, relay and aggregator
as the API server, without running an HTTP server.

Usage as context manager (recommended):
    async with BotzyClient() as client:
        answer = await client.ask("What is the capital of France?")
        print(answer)

Streaming (aclosing releases the upstream response if the loop stops early):
    async with BotzyClient() as client:
        async with aclosing(client.stream("Tell me a story")) as deltas:
            async for delta in deltas:
                print(delta, end="", flush=True)
"""

from typing import AsyncIterator, Optional, Union
from uuid import uuid4

from loguru import logger

from .adapter import adapt_request
from .aggregator import aggregate
from .config import ProxyConfig, build_config
from .reassembler import aiter_lines
from .relay import StreamRelay
from .schemas import ChatCompletionRequest
from .upstream import UpstreamClient

Messages = Union[str, list[dict]]


def _to_request(messages: Messages, model: Optional[str], stream: bool) -> ChatCompletionRequest:
    """Wrap a bare prompt string as a single user message."""
    if isinstance(messages, str):
        messages = [{"role": "user", "content": messages}]
    return ChatCompletionRequest(model=model, messages=messages, stream=stream)


class BotzyClient:
    """High-level async client for the upstream chat service.

    Attributes:
        config (ProxyConfig): Settings used for the upstream URL, origin and
            default model.
        upstream (UpstreamClient): The underlying HTTP transport.

    Example:
        async with BotzyClient() as client:
            answer = await client.ask([
                {"role": "system", "content": "Answer briefly."},
                {"role": "user", "content": "Hello!"},
            ])
    """

    def __init__(self, config: Optional[ProxyConfig] = None, transport=None):
        """Initialize the client.

        Args:
            config: Proxy configuration. Defaults to ``build_config()``.
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
        """
        self.config = config or build_config()
        self.upstream = UpstreamClient(self.config, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def ask(self, messages: Messages, model: Optional[str] = None) -> str:
        """Send a prompt (or a messages list) and return the full answer.

        Raises:
            UpstreamError: If the upstream returns a non-success status.
        """
        req = _to_request(messages, model, stream=False)
        payload = adapt_request(req, self.config.default_model)
        request_id = f"chatcmpl-{uuid4()}"
        logger.info(f"[{request_id}] ask model={payload.model}")

        async with self.upstream.open(payload, request_id) as response:
            full_body = (await response.aread()).decode("utf-8", errors="replace")
        completion = aggregate(full_body, request_id, payload.model)
        return completion.choices[0].message.content

    async def stream(self, messages: Messages, model: Optional[str] = None) -> AsyncIterator[str]:
        """Send a prompt and yield content deltas as they arrive.

        The upstream response stays open until the iterator is exhausted or
        closed. Callers that may stop early should close it explicitly:

            async with contextlib.aclosing(client.stream("hi")) as deltas:
                async for delta in deltas:
                    ...

        Raises:
            UpstreamError: If the upstream returns a non-success status.
        """
        req = _to_request(messages, model, stream=True)
        payload = adapt_request(req, self.config.default_model)
        request_id = f"chatcmpl-{uuid4()}"
        relay = StreamRelay(request_id, payload.model)
        logger.info(f"[{request_id}] stream model={payload.model}")

        async with self.upstream.open(payload, request_id) as response:
            lines = aiter_lines(response.aiter_bytes(), flush_trailing=self.config.flush_trailing_line)
            async for line in lines:
                chunk = relay.relay(line)
                if chunk is not None:
                    yield chunk.choices[0].delta.content

    async def close(self):
        """Close the underlying HTTP client."""
        await self.upstream.aclose()
