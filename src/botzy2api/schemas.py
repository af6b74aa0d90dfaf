"""
Request/response Pydantic models for both sides of the proxy.

Models are organized into:
  - Client request: ChatCompletionRequest
  - Upstream request: UpstreamRequest, UpstreamSettings
  - Non-streaming response: ChatCompletionResponse, ChatCompletionChoice, UsageInfo
  - Streaming response: ChatCompletionChunk, StreamChoice, DeltaContent
  - Model listing: ModelObject, ModelListResponse
"""

import time
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer


# ── Client request ───────────────────────────────────────────────────

class ChatCompletionRequest(BaseModel):
    """Incoming chat completion request (OpenAI-compatible).

    ``messages`` is deliberately untyped: the records are forwarded to the
    upstream exactly as received. Unknown OpenAI fields (temperature,
    max_tokens, ...) are accepted and ignored.

    Attributes:
        model: Requested model. Falls back to the configured default when
               missing or empty.
        messages: The conversation history, passed through unmodified.
        stream: Whether to stream the response as SSE events.
    """
    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    messages: Any = None
    stream: Optional[bool] = False


# ── Upstream request ─────────────────────────────────────────────────

class UpstreamSettings(BaseModel):
    """Persona settings the upstream expects on every request."""
    avatar: None = None
    name: str = ""
    nickname: str = ""
    age: int = 0
    gender: str = "other"


class UpstreamRequest(BaseModel):
    """Body of the POST sent to the upstream chat endpoint.

    Dump with ``by_alias=True`` so ``image_url`` goes out as ``imageUrl``.
    """
    model_config = ConfigDict(populate_by_name=True)

    task: Literal["chat"] = "chat"
    model: str
    messages: Any = None
    image_url: None = Field(default=None, alias="imageUrl")
    settings: UpstreamSettings = Field(default_factory=UpstreamSettings)


# ── Response (non-streaming) ─────────────────────────────────────────

class UsageInfo(BaseModel):
    """Token usage. No token accounting is performed, so these stay zero."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AssistantMessage(BaseModel):
    """The assistant's reply in a non-streaming completion.

    Attributes:
        role: Always "assistant".
        content: The concatenation of every upstream content delta.
    """
    role: str = "assistant"
    content: str


class ChatCompletionChoice(BaseModel):
    """A single completion choice in a non-streaming response.

    Attributes:
        index: The choice index (always 0, the upstream returns one choice).
        message: The assistant's response message.
        finish_reason: Why generation stopped. Always "stop".
    """
    index: int = 0
    message: AssistantMessage
    finish_reason: str = "stop"


class ChatCompletionResponse(BaseModel):
    """Complete non-streaming chat completion response (OpenAI-compatible).

    Attributes:
        id: Completion ID, also sent upstream as X-Request-ID.
        object: Always "chat.completion".
        created: Unix timestamp of when the response was built.
        model: The model the request resolved to.
        choices: One ChatCompletionChoice.
        usage: Token usage, always zero.
    """
    id: str
    object: str = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: list[ChatCompletionChoice]
    usage: UsageInfo = Field(default_factory=UsageInfo)


# ── Response (streaming) ─────────────────────────────────────────────

class DeltaContent(BaseModel):
    """Incremental message fragment.

    Unset fields are left out of the JSON entirely, so the stop chunk
    carries ``"delta": {}`` rather than ``{"content": null}``.

    Attributes:
        content: New text since the previous chunk, or None on the stop chunk.
    """
    content: Optional[str] = None

    @model_serializer(mode="wrap")
    def _drop_unset(self, handler):
        return {k: v for k, v in handler(self).items() if v is not None}


class StreamChoice(BaseModel):
    """A single choice within a streaming chunk.

    Attributes:
        index: The choice index (always 0).
        delta: The incremental content for this chunk.
        finish_reason: None while streaming, "stop" on the final chunk.
    """
    index: int = 0
    delta: DeltaContent
    finish_reason: Optional[str] = None


class ChatCompletionChunk(BaseModel):
    """A single SSE chunk in a streaming response (OpenAI-compatible).

    Attributes:
        id: Completion ID, the same across all chunks of one response.
        object: Always "chat.completion.chunk".
        created: Unix timestamp shared by all chunks of one response.
        model: The model the request resolved to.
        choices: One StreamChoice.
    """
    id: str
    object: str = "chat.completion.chunk"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: list[StreamChoice]


# ── Models list ──────────────────────────────────────────────────────

class ModelObject(BaseModel):
    """A model entry in the /v1/models response.

    Attributes:
        id: The model identifier clients pass as "model".
        object: Always "model".
        created: Unix timestamp of when the list was built.
        owned_by: Always "botzy-2api".
    """
    id: str
    object: str = "model"
    created: int = Field(default_factory=lambda: int(time.time()))
    owned_by: str = "botzy-2api"


class ModelListResponse(BaseModel):
    """Response for GET /v1/models.

    Attributes:
        object: Always "list".
        data: The advertised models.
    """
    object: str = "list"
    data: list[ModelObject]
