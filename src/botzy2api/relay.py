"""
Re-emission of upstream events as OpenAI streaming chunks.

``StreamRelay`` maps one reassembled upstream line to zero or one
``chat.completion.chunk`` and, once the upstream is exhausted, produces the
closing pair:

  1. A chunk with an empty delta and finish_reason="stop"
  2. The ``[DONE]`` terminator

``relay_events`` wires a relay to an async line source and yields events in
the ``{"data": ...}`` form EventSourceResponse expects.
"""

import time
from typing import AsyncIterable, AsyncIterator, Optional

from .events import DONE_TOKEN, line_content
from .schemas import ChatCompletionChunk, DeltaContent, StreamChoice


class StreamRelay:
    """Per-response translator from upstream lines to OpenAI chunks.

    Attributes:
        request_id: Completion ID stamped on every chunk.
        model: Model name reported on every chunk.
        created: Unix timestamp shared by every chunk of the response.
    """

    def __init__(self, request_id: str, model: str, created: Optional[int] = None):
        self.request_id = request_id
        self.model = model
        self.created = created if created is not None else int(time.time())
        self._finalized = False

    def _chunk(self, delta: DeltaContent, finish_reason: Optional[str] = None) -> ChatCompletionChunk:
        return ChatCompletionChunk(
            id=self.request_id,
            created=self.created,
            model=self.model,
            choices=[StreamChoice(delta=delta, finish_reason=finish_reason)],
        )

    def relay(self, line: str) -> Optional[ChatCompletionChunk]:
        """Translate one upstream line.

        Returns:
            ChatCompletionChunk | None: A content chunk, or None when the line
            carries no content (not a data line, ``[DONE]``, bad JSON, or no
            string ``choices[0].delta.content``).
        """
        content = line_content(line)
        if content is None:
            return None
        return self._chunk(DeltaContent(content=content))

    def finalize(self) -> tuple[ChatCompletionChunk, str]:
        """Return the stop chunk and the terminator token.

        Raises:
            RuntimeError: If called more than once for the same stream.
        """
        if self._finalized:
            raise RuntimeError(f"Stream {self.request_id} already finalized")
        self._finalized = True
        return self._chunk(DeltaContent(), finish_reason="stop"), DONE_TOKEN


async def relay_events(lines: AsyncIterable[str], relay: StreamRelay) -> AsyncIterator[dict]:
    """Yield SSE events for every content line, then the closing pair.

    The closing pair is emitted even when the upstream produced no content.
    """
    async for line in lines:
        chunk = relay.relay(line)
        if chunk is not None:
            yield {"data": chunk.model_dump_json()}

    stop, terminator = relay.finalize()
    yield {"data": stop.model_dump_json()}
    yield {"data": terminator}
