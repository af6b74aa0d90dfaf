"""
Incremental re-framing of the upstream byte stream into text lines.

Network chunks don't line up with event boundaries: one chunk may end in the
middle of a ``data:`` line, or even in the middle of a multi-byte UTF-8
character. ``EventFrameReassembler`` keeps the unfinished tail between chunks
and hands back only complete, newline-terminated lines.

Usage:
    reassembler = EventFrameReassembler()
    for chunk in chunks:
        for line in reassembler.feed(chunk):
            ...
    for line in reassembler.close():
        ...
"""

import codecs
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator

from loguru import logger


class EventFrameReassembler:
    """Turns arbitrarily fragmented byte chunks into complete lines.

    One instance belongs to exactly one upstream response.

    Attributes:
        flush_trailing: If True, ``close()`` returns an unterminated final
            fragment as a line. If False (the default), it is dropped.
    """

    def __init__(self, flush_trailing: bool = False):
        self.flush_trailing = flush_trailing
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """The not-yet-terminated tail seen so far."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one chunk and return the lines it completed.

        Args:
            chunk: Raw bytes as delivered by the transport.

        Returns:
            list[str]: Complete lines, without their ``\\n`` terminator.
        """
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return lines

    def close(self) -> list[str]:
        """Signal end of stream and return whatever is left to emit."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not tail:
            return []
        if self.flush_trailing:
            return [tail]
        logger.debug(f"Dropping unterminated trailing line ({len(tail)} chars)")
        return []


async def aiter_lines(
    chunks: AsyncIterable[bytes], flush_trailing: bool = False
) -> AsyncIterator[str]:
    """Async generator yielding complete lines from an async chunk source."""
    reassembler = EventFrameReassembler(flush_trailing=flush_trailing)
    async for chunk in chunks:
        for line in reassembler.feed(chunk):
            yield line
    for line in reassembler.close():
        yield line


def iter_lines(chunks: Iterable[bytes], flush_trailing: bool = False) -> Iterator[str]:
    """Synchronous counterpart of ``aiter_lines``."""
    reassembler = EventFrameReassembler(flush_trailing=flush_trailing)
    for chunk in chunks:
        yield from reassembler.feed(chunk)
    yield from reassembler.close()
