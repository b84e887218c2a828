"""Tests for decoding provider stream events into text and tool calls."""

from __future__ import annotations

from fakes import completed, function_call, text_delta

from toolstream.chat.streaming.decoder import StreamDecoder
from toolstream.schemas.provider_events import parse_provider_event


def _feed(decoder: StreamDecoder, events) -> list[str]:
    deltas = []
    for event in events:
        delta = decoder.feed(event)
        if delta:
            deltas.append(delta)
    return deltas


class TestTextAccumulation:
    def test_forwards_text_deltas_in_order(self):
        decoder = StreamDecoder()
        deltas = _feed(decoder, [text_delta("Hel"), text_delta("lo"), completed()])

        assert deltas == ["Hel", "lo"]
        assert decoder.text == "Hello"
        assert decoder.completed is True
        assert decoder.tool_calls == []

    def test_fallback_text_recovered_from_completed_message(self):
        decoder = StreamDecoder()
        _feed(
            decoder,
            [
                completed(
                    [
                        {
                            "type": "message",
                            "role": "assistant",
                            "content": [{"type": "output_text", "text": "4"}],
                        }
                    ]
                )
            ],
        )

        assert decoder.fallback_text() == "4"
        assert decoder.text == "4"

    def test_no_fallback_when_deltas_arrived(self):
        decoder = StreamDecoder()
        _feed(
            decoder,
            [
                text_delta("4"),
                completed(
                    [
                        {
                            "type": "message",
                            "role": "assistant",
                            "content": [{"type": "output_text", "text": "4"}],
                        }
                    ]
                ),
            ],
        )

        assert decoder.fallback_text() is None
        assert decoder.text == "4"


class TestToolCallFragments:
    def test_reassembles_streamed_arguments(self):
        decoder = StreamDecoder()
        _feed(decoder, function_call("call_1", "calculator", {"expression": "2+2"}, chunks=4))

        calls = decoder.tool_calls
        assert len(calls) == 1
        assert calls[0].call_id == "call_1"
        assert calls[0].name == "calculator"
        assert calls[0].arguments_text == '{"expression": "2+2"}'
        assert calls[0].complete is True

    def test_interleaved_calls_keep_separate_buffers(self):
        first = function_call("call_a", "web_search", {"q": "alpha query"}, chunks=3)
        second = function_call("call_b", "calculator", {"expression": "1+1"}, chunks=3)
        # added(a), added(b), then alternate argument deltas
        interleaved = [first[0], second[0]]
        for a, b in zip(first[1:4], second[1:4]):
            interleaved.extend([a, b])
        interleaved.extend(first[4:] + second[4:])

        decoder = StreamDecoder()
        _feed(decoder, interleaved)

        calls = {call.call_id: call for call in decoder.tool_calls}
        assert [call.call_id for call in decoder.tool_calls] == ["call_a", "call_b"]
        assert calls["call_a"].arguments_text == '{"q": "alpha query"}'
        assert calls["call_b"].arguments_text == '{"expression": "1+1"}'

    def test_terminal_payload_overrides_deltas(self):
        decoder = StreamDecoder()
        _feed(
            decoder,
            [
                parse_provider_event(
                    {
                        "type": "response.output_item.added",
                        "item": {"type": "function_call", "id": "fc_1", "call_id": "call_1", "name": "web_search"},
                    }
                ),
                parse_provider_event(
                    {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": '{"q": "gar'}
                ),
                parse_provider_event(
                    {
                        "type": "response.function_call_arguments.done",
                        "item_id": "fc_1",
                        "arguments": '{"q": "clean query"}',
                    }
                ),
                parse_provider_event(
                    {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": "bage"}
                ),
            ],
        )

        (call,) = decoder.tool_calls
        assert call.arguments_text == '{"q": "clean query"}'

    def test_item_id_only_fragment_rekeyed_to_call_id(self):
        decoder = StreamDecoder()
        _feed(
            decoder,
            [
                parse_provider_event(
                    {"type": "response.function_call_arguments.delta", "item_id": "fc_9", "delta": '{"url": '}
                ),
                parse_provider_event(
                    {
                        "type": "response.output_item.done",
                        "item": {
                            "type": "function_call",
                            "id": "fc_9",
                            "call_id": "call_9",
                            "name": "http_fetch",
                            "arguments": '{"url": "https://example.com"}',
                        },
                    }
                ),
            ],
        )

        (call,) = decoder.tool_calls
        assert call.call_id == "call_9"
        assert call.name == "http_fetch"
        assert call.arguments_text == '{"url": "https://example.com"}'

    def test_output_items_include_function_calls_for_replay(self):
        decoder = StreamDecoder()
        _feed(decoder, [text_delta("Let me check."), *function_call("call_1", "calculator", {"expression": "3*3"})])

        items = decoder.output_items()
        function_calls = [item for item in items if item["type"] == "function_call"]
        assert len(function_calls) == 1
        assert function_calls[0]["call_id"] == "call_1"
        assert function_calls[0]["arguments"] == '{"expression": "3*3"}'

    def test_output_items_prefer_completed_response(self):
        output = [
            {"type": "reasoning", "id": "rs_1", "summary": []},
            {
                "type": "function_call",
                "id": "fc_1",
                "call_id": "call_1",
                "name": "calculator",
                "arguments": '{"expression": "1+2"}',
            },
        ]
        decoder = StreamDecoder()
        _feed(decoder, [*function_call("call_1", "calculator", {"expression": "1+2"}), completed(output)])

        items = decoder.output_items()
        assert [item["type"] for item in items] == ["reasoning", "function_call"]

    def test_ignored_events_are_harmless(self):
        decoder = StreamDecoder()
        assert decoder.feed(parse_provider_event({"type": "response.created"})) is None
        assert decoder.feed(parse_provider_event("not a dict")) is None
        assert decoder.text == ""
        assert decoder.tool_calls == []
