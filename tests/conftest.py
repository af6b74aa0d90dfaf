"""
Pytest configuration and shared fixtures for botzy2api tests.

Registers custom markers:
    live: Tests that hit the real upstream (require BOTZY_LIVE=1 and network)

Usage:
    pytest tests/ -v                    # Run all tests (live tests skip themselves)
    pytest tests/ -v -m "not live"      # Skip live tests entirely
    BOTZY_LIVE=1 pytest tests/ -m live  # Only run live upstream tests
"""

import json

import httpx
import pytest

from botzy2api.config import ProxyConfig

API_KEY = "test-key"


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "live: marks tests that hit the real upstream (slow, requires network)"
    )


def sse_line(content) -> str:
    """One upstream event line (with its blank-line separator) carrying ``content``."""
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


HI_THERE_BODY = (
    'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n'
    'data: {"choices":[{"delta":{"content":" there"}}]}\n\n'
    "data: [DONE]\n\n"
)


class FakeUpstream:
    """Programmable upstream for httpx.MockTransport.

    Attributes:
        status_code: Status to answer with.
        content_type: Content-Type header of the answer.
        chunks: Body, delivered as these separate byte chunks.
        requests: Every request received, in order.
    """

    def __init__(self):
        self.status_code = 200
        self.content_type = "text/event-stream; charset=utf-8"
        self.chunks: list[bytes] = [HI_THERE_BODY.encode("utf-8")]
        self.requests: list[httpx.Request] = []
        self.closed = False

    def set_body(self, body: str, split_at: tuple = ()):
        """Deliver ``body`` split at the given byte offsets."""
        raw = body.encode("utf-8")
        bounds = [0, *split_at, len(raw)]
        self.chunks = [raw[a:b] for a, b in zip(bounds, bounds[1:])]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        upstream = self

        async def body():
            try:
                for chunk in upstream.chunks:
                    yield chunk
            finally:
                upstream.closed = True

        return httpx.Response(
            self.status_code,
            headers={"content-type": self.content_type},
            content=body(),
        )

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def config():
    return ProxyConfig(
        api_master_key=API_KEY,
        upstream_url="https://upstream.test/api/chat",
        upstream_origin="https://upstream.test",
    )


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
def transport(fake_upstream):
    return httpx.MockTransport(fake_upstream.handler)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_KEY}"}
