"""
Parsing of individual upstream event lines.

An upstream event line looks like ``data: {"choices":[{"delta":{"content":"Hi"}}]}``.
Parsing is split into two steps so callers can filter instead of catching:

  - ``parse_event(line)`` returns the decoded JSON payload, or None for
    anything that isn't a data event (other lines, the ``[DONE]`` token,
    malformed JSON).
  - ``extract_content(payload)`` returns ``choices[0].delta.content`` when it
    is a string, or None.
"""

import json
from typing import Any, Iterable, Iterator, Optional

from loguru import logger

DATA_PREFIX = "data:"
DONE_TOKEN = "[DONE]"


def parse_event(line: str) -> Optional[Any]:
    """Decode the JSON payload of one upstream line.

    Args:
        line: One complete line of the upstream event stream.

    Returns:
        The decoded payload, or None if the line is not a data event, is the
        ``[DONE]`` terminator, or carries malformed JSON.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):].strip()
    if data == DONE_TOKEN:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed upstream event: {data[:80]!r}")
        return None


def extract_content(payload: Any) -> Optional[str]:
    """Return ``choices[0].delta.content`` if it is a string, else None.

    An empty string is a valid delta and is returned as-is.
    """
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


def line_content(line: str) -> Optional[str]:
    """Content delta carried by one upstream line, or None."""
    payload = parse_event(line)
    if payload is None:
        return None
    return extract_content(payload)


def iter_contents(lines: Iterable[str]) -> Iterator[str]:
    """Yield the content delta of every line that carries one, in order."""
    for line in lines:
        content = line_content(line)
        if content is not None:
            yield content
