"""Tests for the stream relay and its agreement with the aggregator."""

import asyncio
import json

import pytest

from botzy2api.aggregator import aggregate
from botzy2api.reassembler import aiter_lines, iter_lines
from botzy2api.relay import StreamRelay, relay_events

from conftest import HI_THERE_BODY, sse_line


def _contents(relay, lines):
    chunks = [relay.relay(line) for line in lines]
    return [c.choices[0].delta.content for c in chunks if c is not None]


async def _collect_events(chunks, relay):
    async def source():
        for c in chunks:
            yield c

    return [event async for event in relay_events(aiter_lines(source()), relay)]


class TestStreamRelay:

    def test_content_chunk_shape(self):
        relay = StreamRelay("chatcmpl-1", "m", created=100)
        chunk = relay.relay('data: {"choices":[{"delta":{"content":"Hi"}}]}')
        assert json.loads(chunk.model_dump_json()) == {
            "id": "chatcmpl-1",
            "object": "chat.completion.chunk",
            "created": 100,
            "model": "m",
            "choices": [{"index": 0, "delta": {"content": "Hi"}, "finish_reason": None}],
        }

    def test_empty_content_is_emitted(self):
        relay = StreamRelay("id", "m")
        chunk = relay.relay('data: {"choices":[{"delta":{"content":""}}]}')
        assert chunk is not None
        assert chunk.choices[0].delta.content == ""

    def test_ignored_lines(self):
        relay = StreamRelay("id", "m")
        for line in ["", "event: x", "data: [DONE]", "data: not-json",
                     'data: {"choices":[{"delta":{}}]}']:
            assert relay.relay(line) is None

    def test_not_json_does_not_affect_neighbours(self):
        relay = StreamRelay("id", "m")
        lines = [sse_line("a").strip(), "data: not-json", sse_line("b").strip()]
        assert _contents(relay, lines) == ["a", "b"]

    def test_finalize_shape(self):
        relay = StreamRelay("chatcmpl-1", "m", created=100)
        stop, terminator = relay.finalize()
        assert json.loads(stop.model_dump_json())["choices"] == [
            {"index": 0, "delta": {}, "finish_reason": "stop"}
        ]
        assert terminator == "[DONE]"

    def test_finalize_only_once(self):
        relay = StreamRelay("id", "m")
        relay.finalize()
        with pytest.raises(RuntimeError):
            relay.finalize()

    def test_delta_carries_content_only(self):
        """Other upstream delta fields (e.g. role) are not forwarded."""
        relay = StreamRelay("id", "m")
        chunk = relay.relay('data: {"choices":[{"delta":{"content":"x","role":"assistant"}}]}')
        assert json.loads(chunk.model_dump_json())["choices"][0]["delta"] == {"content": "x"}


class TestRelayEvents:

    def test_split_inside_first_data_line(self):
        """Chunks cut mid-line still give two content chunks, then stop and [DONE]."""
        raw = HI_THERE_BODY.encode("utf-8")
        events = asyncio.run(_collect_events([raw[:12], raw[12:]], StreamRelay("id", "m")))

        assert len(events) == 4
        contents = [json.loads(e["data"])["choices"][0]["delta"]["content"] for e in events[:2]]
        assert contents == ["Hi", " there"]
        stop = json.loads(events[2]["data"])
        assert stop["choices"][0] == {"index": 0, "delta": {}, "finish_reason": "stop"}
        assert events[3] == {"data": "[DONE]"}

    def test_empty_stream_still_finalizes(self):
        events = asyncio.run(_collect_events([], StreamRelay("id", "m")))
        assert len(events) == 2
        assert json.loads(events[0]["data"])["choices"][0]["finish_reason"] == "stop"
        assert events[1] == {"data": "[DONE]"}

    def test_upstream_done_not_forwarded_twice(self):
        raw = b"data: [DONE]\n\n"
        events = asyncio.run(_collect_events([raw], StreamRelay("id", "m")))
        assert [e["data"] for e in events].count("[DONE]") == 1


class TestStreamingMatchesAggregation:

    BODY = (
        sse_line("Hel") + sse_line("lo, ") + ": comment\n" + "data: not-json\n\n"
        + sse_line("") + sse_line("wörld ✓") + 'data: {"choices":[{"delta":{"role":"x"}}]}\n\n'
        + "data: [DONE]\n\n"
    )

    def test_joined_deltas_equal_aggregated_content(self):
        raw = self.BODY.encode("utf-8")
        aggregated = aggregate(self.BODY, "id", "m").choices[0].message.content
        assert aggregated == "Hello, wörld ✓"

        for offset in range(0, len(raw) + 1, 7):
            chunks = [raw[:offset], raw[offset:]]
            streamed = "".join(_contents(StreamRelay("id", "m"), iter_lines(chunks)))
            assert streamed == aggregated, offset
