"""Tests for SSE framing and the single-terminal-event guarantee."""

from __future__ import annotations

from fakes import event_names, events

from toolstream.chat.streaming.emitter import (
    HEARTBEAT_FRAME,
    EventEmitter,
    decode_frames,
    encode_event,
)
from toolstream.chat.streaming.transport import BufferTransport


def test_encode_event_json_payload() -> None:
    frame = encode_event("content", {"delta": "Hi"})
    assert frame == 'event: content\ndata: {"delta": "Hi"}\n\n'


def test_encode_event_splits_multiline_strings() -> None:
    frame = encode_event("status", "line one\nline two")
    assert frame == "event: status\ndata: line one\ndata: line two\n\n"
    assert decode_frames([frame]) == [("status", "line one\nline two")]


def test_events_written_in_emission_order() -> None:
    transport = BufferTransport()
    emitter = EventEmitter(transport)

    emitter.content("a")
    emitter.tool_call("calculator", {"expression": "1+1"})
    emitter.tool_result("calculator", {"result": 2})
    emitter.content("b")
    emitter.done(["https://example.com"])

    assert events(transport) == [
        ("content", {"delta": "a"}),
        ("tool_call", {"tool": "calculator", "args": {"expression": "1+1"}}),
        ("tool_result", {"tool": "calculator", "result": {"result": 2}}),
        ("content", {"delta": "b"}),
        ("done", {"citations": ["https://example.com"]}),
    ]
    assert transport.end_calls == 1


def test_only_one_terminal_event_is_written() -> None:
    transport = BufferTransport()
    emitter = EventEmitter(transport)

    assert emitter.done([]) is True
    assert emitter.error("late failure") is False
    assert emitter.content("late text") is False

    assert event_names(transport) == ["done"]
    assert emitter.terminal == "done"
    assert transport.end_calls == 1


def test_writes_dropped_after_disconnect() -> None:
    transport = BufferTransport()
    emitter = EventEmitter(transport)
    emitter.content("before")
    transport.disconnect()

    assert emitter.content("after") is False
    assert emitter.heartbeat() is False
    assert emitter.error("gone") is False
    assert event_names(transport) == ["content"]
    assert emitter.finished is True


def test_heartbeat_is_a_comment_frame() -> None:
    transport = BufferTransport()
    emitter = EventEmitter(transport)

    emitter.heartbeat()

    assert transport.frames == [HEARTBEAT_FRAME]
    assert decode_frames(transport.frames) == []


def test_transport_write_failure_is_contained() -> None:
    class BrokenTransport(BufferTransport):
        def write(self, frame: str) -> None:
            raise RuntimeError("socket closed")

    emitter = EventEmitter(BrokenTransport())
    assert emitter.content("x") is False
    assert emitter.written == 0
