"""
Tests for reading upload events back out of Redis Streams.
"""

import asyncio
import json

import redis.asyncio as aioredis

from variant_matrix.api.v1.sse import _format_event, _for_row
from variant_matrix.core.events import stream_session_events


class ScriptedStreams:
    """xread returning queued replies; exceptions in the queue are raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def xread(self, streams, count=None, block=None):
        self.calls.append(dict(streams))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def collect(redis, limit):
    async def scenario():
        events = []
        async for event in stream_session_events(redis, "abc", block_ms=10):
            events.append(event)
            if len(events) == limit:
                break
        return events
    return asyncio.run(scenario())


def entry(entry_id, event, **data):
    return (entry_id, {"event": event, "data": json.dumps(data)})


def test_yields_entries_and_resumes_after_last_id():
    redis = ScriptedStreams(
        [("matrix:abc:events", [entry("1-0", "status", row_id="Red"), entry("2-0", "progress", row_id="Red")])],
        [],
    )

    events = collect(redis, 3)

    assert [e["id"] for e in events] == ["1-0", "2-0", None]
    assert events[2]["event"] == "comment"
    assert redis.calls == [{"matrix:abc:events": "$"}, {"matrix:abc:events": "2-0"}]


def test_gives_up_after_repeated_connection_errors():
    lost = aioredis.ConnectionError("down")
    redis = ScriptedStreams(lost, lost, lost)

    events = collect(redis, 10)

    assert [e["event"] for e in events] == ["comment", "comment", "error"]
    assert "Redis connection lost" in json.loads(events[-1]["data"])["error"]


def test_sse_frames():
    assert _format_event({"id": None, "event": "comment", "data": "ping"}) == ": ping\n\n"
    assert _format_event({"id": "5-0", "event": "progress", "data": "{}"}) == "id: 5-0\nevent: progress\ndata: {}\n\n"


def test_row_filter():
    red = {"event": "progress", "data": json.dumps({"row_id": "Red"})}

    assert _for_row(red, None)
    assert _for_row(red, "Red")
    assert not _for_row(red, "Blue")
    assert _for_row({"event": "comment", "data": "ping"}, "Blue")
