"""
OpenAI-compatible API server in front of the Botzy upstream.

Provides a Starlette-based HTTP server that accepts OpenAI chat completion
requests, forwards them to the upstream in its own request shape, and
translates the upstream event stream back into OpenAI output.

Endpoints:
    GET  /, /health               - Health check (no auth)
    GET  /v1/models               - List advertised models
    POST /v1/chat/completions     - Chat completion (streaming and non-streaming)

Architecture:
    - The configuration is built once and passed to create_app().
    - One pooled UpstreamClient is opened in the lifespan and shared by all
      requests. Nothing else is shared between requests.
    - Streaming: upstream bytes -> EventFrameReassembler -> StreamRelay -> SSE.
    - Non-streaming: full upstream body -> aggregate() -> JSON.

Usage:
    from botzy2api.server import create_app
    from botzy2api.config import build_config
    import uvicorn

    uvicorn.run(create_app(build_config()), host="0.0.0.0", port=3000)
"""

import json
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional
from uuid import uuid4

import httpx
from loguru import logger
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .adapter import adapt_request
from .aggregator import aggregate
from .config import ProxyConfig, build_config
from .reassembler import aiter_lines
from .relay import StreamRelay, relay_events
from .schemas import ChatCompletionRequest, ModelListResponse, ModelObject
from .upstream import UpstreamClient, UpstreamError, is_event_stream


def _error_response(message: str, status_code: int = 500, code: str = "internal_error",
                    error_type: str = "api_error") -> JSONResponse:
    """Create an OpenAI-compatible error response.

    Args:
        message: Human-readable error description.
        status_code: HTTP status code. Defaults to 500.
        code: Machine-readable error code.
        error_type: OpenAI error type.

    Returns:
        JSONResponse: ``{"error": {"message", "type", "code"}}``.
    """
    return JSONResponse(
        {"error": {"message": message, "type": error_type, "code": code}},
        status_code=status_code,
    )


def _authorize(request: Request) -> Optional[JSONResponse]:
    """Check the bearer token. Returns an error response, or None if allowed."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return _error_response("Missing Bearer Token.", 401, "unauthorized")
    if auth[7:] != request.app.state.config.api_master_key:
        return _error_response("Invalid API Key.", 403, "invalid_api_key")
    return None


# ── Endpoints ────────────────────────────────────────────────────────

async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "service": request.app.state.config.project_name})


async def list_models(request: Request) -> JSONResponse:
    """List the configured model identifiers in OpenAI format."""
    denied = _authorize(request)
    if denied:
        return denied

    config: ProxyConfig = request.app.state.config
    models = ModelListResponse(data=[ModelObject(id=m) for m in config.models])
    return JSONResponse(models.model_dump())


async def chat_completions(request: Request):
    """Handle a chat completion request (OpenAI-compatible).

    Flow:
      1. Authenticate and parse the request body.
      2. Adapt it to the upstream request shape.
      3. POST it upstream with an X-Request-ID tracing header.
      4. If the client asked to stream and the upstream answers with an event
         stream, relay it as SSE. Otherwise read the whole body and aggregate.

    Returns:
        EventSourceResponse | JSONResponse
    """
    denied = _authorize(request)
    if denied:
        return denied

    config: ProxyConfig = request.app.state.config
    upstream: UpstreamClient = request.app.state.upstream
    request_id = f"chatcmpl-{uuid4()}"

    try:
        body = await request.json()
        req = ChatCompletionRequest.model_validate(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error_response("Request body is not valid JSON.", 400, "invalid_json",
                               "invalid_request_error")
    except ValidationError as e:
        return _error_response(f"Invalid request: {e.errors()[0]['msg']}", 400,
                               "invalid_request", "invalid_request_error")

    payload = adapt_request(req, config.default_model)
    logger.info(f"[{request_id}] model={payload.model} stream={bool(req.stream)}")

    stack = AsyncExitStack()
    try:
        response = await stack.enter_async_context(upstream.open(payload, request_id))

        if req.stream and is_event_stream(response):
            return _stream_response(stack, response, request_id, payload.model,
                                    config.flush_trailing_line)

        async with stack:
            full_body = (await response.aread()).decode("utf-8", errors="replace")
        completion = aggregate(full_body, request_id, payload.model)
        return JSONResponse(completion.model_dump(), headers={"X-Trace-ID": request_id})

    except UpstreamError as e:
        await stack.aclose()
        return _error_response(f"Upstream error {e.status_code}: {e.body}", e.status_code,
                               "upstream_error")
    except httpx.HTTPError as e:
        await stack.aclose()
        logger.error(f"[{request_id}] Upstream unreachable: {e!r}")
        return _error_response(f"Upstream unreachable: {e}", 502, "upstream_unreachable")
    except Exception as e:
        await stack.aclose()
        logger.exception(f"[{request_id}] Handler exception")
        return _error_response(f"Internal Error: {e}", 500, "internal_server_error")


def _stream_response(stack: AsyncExitStack, response: httpx.Response, request_id: str,
                     model: str, flush_trailing: bool) -> EventSourceResponse:
    """Relay the upstream event stream as OpenAI SSE chunks.

    The upstream response stays open until the generator finishes or the
    client disconnects.
    """
    relay = StreamRelay(request_id, model)

    async def event_generator():
        try:
            lines = aiter_lines(response.aiter_bytes(), flush_trailing=flush_trailing)
            async for event in relay_events(lines, relay):
                yield event
        except httpx.HTTPError as e:
            logger.error(f"[{request_id}] Upstream stream broke: {e!r}")
            raise
        finally:
            await stack.aclose()
            logger.info(f"[{request_id}] Stream closed")

    return EventSourceResponse(
        event_generator(),
        headers={"Cache-Control": "no-cache", "X-Trace-ID": request_id},
        sep="\n",
        background=BackgroundTask(stack.aclose),
    )


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    """404/405 handler returning the OpenAI error envelope.

    Unknown paths under /v1/ still require a valid API key.
    """
    path = request.url.path
    if path.startswith("/v1/"):
        denied = _authorize(request)
        if denied:
            return denied
        if exc.status_code == 404:
            return _error_response(f"Unsupported path: {path}", 404, "not_found")
    if exc.status_code == 405:
        return _error_response(f"Method {request.method} not allowed on {path}", 405,
                               "method_not_allowed", "invalid_request_error")
    return _error_response(f"Path not found: {path}", exc.status_code, "not_found",
                           "invalid_request_error")


# ── App ──────────────────────────────────────────────────────────────

def create_app(config: ProxyConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> Starlette:
    """Build the Starlette application.

    Args:
        config: The frozen proxy configuration.
        transport: Optional httpx transport for the upstream client (tests).

    Returns:
        Starlette: The ASGI application.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette):
        app.state.upstream = UpstreamClient(config, transport=transport)
        logger.info(f"{config.project_name} ready, upstream: {config.upstream_url}")
        try:
            yield
        finally:
            await app.state.upstream.aclose()

    app = Starlette(
        routes=[
            Route("/", health, methods=["GET"]),
            Route("/health", health, methods=["GET"]),
            Route("/v1/models", list_models, methods=["GET"]),
            Route("/v1/chat/completions", chat_completions, methods=["POST"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["Content-Type", "Authorization"],
                expose_headers=["X-Trace-ID"],
            ),
        ],
        exception_handlers={404: _http_error, 405: _http_error},
        lifespan=lifespan,
    )
    app.state.config = config
    return app


def build_app() -> Starlette:
    """App factory for ``uvicorn botzy2api.server:build_app --factory``."""
    return create_app(build_config())
