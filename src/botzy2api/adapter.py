"""Translate OpenAI chat requests into the upstream request shape."""

from .schemas import ChatCompletionRequest, UpstreamRequest


def resolve_model(request: ChatCompletionRequest, default_model: str) -> str:
    """Return the requested model, or ``default_model`` when missing or empty."""
    return request.model or default_model


def adapt_request(request: ChatCompletionRequest, default_model: str) -> UpstreamRequest:
    """Build the upstream request for an OpenAI chat completion request.

    ``messages`` is forwarded as-is, without validation. ``imageUrl`` and
    ``settings`` are always the fixed upstream constants.

    Args:
        request: The parsed client request.
        default_model: Model to use when the client didn't name one.

    Returns:
        UpstreamRequest: Ready to be dumped with ``by_alias=True``.
    """
    return UpstreamRequest(
        model=resolve_model(request, default_model),
        messages=request.messages,
    )
