"""
botzy2api - an OpenAI-compatible API proxy for the Botzy chat service.

Accepts OpenAI chat completion requests, forwards them to the upstream in its
own request shape, and translates the upstream event stream back into OpenAI
responses (streaming SSE or a single JSON completion).

Public API:
    from botzy2api import BotzyClient

    async with BotzyClient() as client:
        answer = await client.ask("Hello!")
"""

from .client import BotzyClient

__all__ = ["BotzyClient"]
