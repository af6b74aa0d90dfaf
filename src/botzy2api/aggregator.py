"""Reassemble a buffered upstream event stream into one chat completion."""

import time
from typing import Optional

from .events import iter_contents
from .schemas import AssistantMessage, ChatCompletionChoice, ChatCompletionResponse


def aggregate(
    full_body: str, request_id: str, model: str, created: Optional[int] = None
) -> ChatCompletionResponse:
    """Concatenate every content delta in ``full_body`` into one completion.

    Lines are filtered exactly like the streaming path, so the result matches
    what a client would get by joining the streamed deltas. Usage is always
    reported as zero.

    Args:
        full_body: The complete upstream response body.
        request_id: Completion ID for the response.
        model: Model name to report.
        created: Optional Unix timestamp; defaults to now.

    Returns:
        ChatCompletionResponse: The OpenAI-shaped, non-streaming completion.
    """
    content = "".join(iter_contents(full_body.split("\n")))
    return ChatCompletionResponse(
        id=request_id,
        created=created if created is not None else int(time.time()),
        model=model,
        choices=[ChatCompletionChoice(message=AssistantMessage(content=content))],
    )
