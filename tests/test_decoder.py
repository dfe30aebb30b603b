"""Tests for ariste.api.decoder — the streamed-response decoder."""

from __future__ import annotations

import json

import pytest

from ariste.api.decoder import DecoderState, StreamDecoder, StreamObserver
from ariste.errors import ChatTransportError, StreamDecodeError

from conftest import ndjson


class RecordingObserver(StreamObserver):
    def __init__(self):
        self.events: list[tuple] = []

    def on_thinking_start(self):
        self.events.append(("thinking_start",))

    def on_thinking_line(self, line):
        self.events.append(("thinking_line", line))

    def on_thinking_end(self):
        self.events.append(("thinking_end",))

    def on_response_start(self):
        self.events.append(("response_start",))

    def on_content(self, fragment):
        self.events.append(("content", fragment))

    def on_stream_end(self):
        self.events.append(("stream_end",))


def _content(text: str, **extra) -> dict:
    return {"message": {"role": "assistant", "content": text, **extra}, "done": False}


def _thinking(text: str) -> dict:
    return {"message": {"role": "assistant", "content": "", "thinking": text}, "done": False}


def _done() -> dict:
    return {"message": {"role": "assistant", "content": ""}, "done": True}


def _decode(data: bytes, **kwargs):
    decoder = StreamDecoder(**kwargs)
    decoder.feed(data)
    return decoder.finish()


class TestContentAggregation:
    def test_content_is_concatenated_in_stream_order(self):
        response = _decode(ndjson(_content("Hel"), _content("lo, "), _content("world"), _done()))
        assert response.content == "Hello, world"
        assert response.tool_calls is None

    def test_thinking_never_leaks_into_content(self):
        response = _decode(ndjson(
            _thinking("let me think\nabout it"),
            _content("Answer"),
            _content(": 4"),
            _done(),
        ))
        assert response.content == "Answer: 4"
        assert "think" not in response.content

    def test_empty_stream_gives_empty_content(self):
        response = _decode(b"")
        assert response.content == ""
        assert response.tool_calls is None

    def test_chunks_split_across_network_packets(self):
        data = ndjson(_content("héllo"), _content(" wörld"), _done())
        decoder = StreamDecoder()
        for i in range(len(data)):
            if decoder.feed(data[i:i + 1]):
                break
        assert decoder.finish().content == "héllo wörld"

    def test_trailing_line_without_newline_is_decoded(self):
        data = ndjson(_content("a")) + json.dumps(_content("b")).encode()
        assert _decode(data).content == "ab"


class TestToolCalls:
    def test_tool_calls_across_chunks_keep_order(self):
        first = {"function": {"name": "calculator", "arguments": {"expression": "1+1"}}, "id": "a"}
        second = {"function": {"name": "echo", "arguments": {"text": "x"}}, "id": "b"}
        third = {"function": {"name": "calculator", "arguments": {"expression": "2*3"}}, "id": "c"}
        response = _decode(ndjson(
            _content("", tool_calls=[first]),
            _content("", tool_calls=[second, third]),
            _done(),
        ))
        assert [c.id for c in response.tool_calls] == ["a", "b", "c"]
        assert [c.name for c in response.tool_calls] == ["calculator", "echo", "calculator"]
        assert response.tool_calls[0].arguments == {"expression": "1+1"}

    def test_missing_ids_are_generated_and_unique(self):
        calls = [
            {"function": {"name": "echo", "arguments": {"text": "1"}}},
            {"function": {"name": "echo", "arguments": {"text": "2"}}},
        ]
        response = _decode(ndjson(_content("", tool_calls=calls), _done()))
        ids = [c.id for c in response.tool_calls]
        assert all(i.startswith("call_") for i in ids)
        assert len(set(ids)) == 2

    def test_string_arguments_are_json_decoded(self):
        raw = {"id": "x", "function": {"name": "echo", "arguments": '{"text": "hi"}'}}
        response = _decode(ndjson(_content("", tool_calls=[raw]), _done()))
        assert response.tool_calls[0].arguments == {"text": "hi"}

    def test_tool_calls_on_done_chunk_are_kept(self):
        raw = {"id": "x", "function": {"name": "echo", "arguments": {}}}
        done = {"message": {"role": "assistant", "content": "", "tool_calls": [raw]}, "done": True}
        response = _decode(ndjson(done))
        assert [c.id for c in response.tool_calls] == ["x"]


class TestDone:
    def test_done_stops_decoding_remaining_bytes(self):
        decoder = StreamDecoder()
        finished = decoder.feed(ndjson(_content("kept"), _done(), _content("dropped")))
        assert finished is True
        assert decoder.done
        assert decoder.finish().content == "kept"

    def test_content_on_done_chunk_is_kept(self):
        # a non-streaming reply is one object carrying the whole answer and done
        decoder = StreamDecoder()
        assert decoder.feed(ndjson({"message": {"role": "assistant", "content": "4"}, "done": True}))
        assert decoder.finish().content == "4"

    def test_thinking_and_content_on_done_chunk(self):
        observer = RecordingObserver()
        done = {"message": {"role": "assistant", "thinking": "add", "content": "4"}, "done": True}
        response = _decode(ndjson(_content("2+2="), done), observer=observer)
        assert response.content == "2+2=4"

    def test_feed_after_done_is_ignored(self):
        decoder = StreamDecoder()
        decoder.feed(ndjson(_done()))
        assert decoder.feed(ndjson(_content("late"))) is True
        assert decoder.finish().content == ""

    @pytest.mark.asyncio
    async def test_decode_async_stream(self):
        async def chunks():
            yield ndjson(_content("one "))
            yield ndjson(_content("two"), _done())
            yield ndjson(_content("never"))

        response = await StreamDecoder().decode(chunks())
        assert response.content == "one two"


class TestLenientDecoding:
    def test_malformed_json_line_is_skipped(self):
        data = ndjson(_content("a")) + b"{not json}\n" + ndjson(_content("b"), _done())
        decoder = StreamDecoder()
        decoder.feed(data)
        response = decoder.finish()
        assert response.content == "ab"
        assert decoder.skipped_lines == 1

    def test_invalid_utf8_line_is_skipped(self):
        data = b'{"message": {"content": "\xff\xfe"}}\n' + ndjson(_content("ok"), _done())
        assert _decode(data).content == "ok"

    def test_non_object_chunk_is_skipped(self):
        data = b"[1, 2, 3]\n" + ndjson(_content("ok"))
        assert _decode(data).content == "ok"

    def test_strict_mode_raises_on_malformed_line(self):
        decoder = StreamDecoder(lenient=False)
        with pytest.raises(StreamDecodeError):
            decoder.feed(b"{broken\n")

    def test_error_chunk_raises_transport_error(self):
        decoder = StreamDecoder()
        with pytest.raises(ChatTransportError, match="model not found"):
            decoder.feed(b'{"error": "model not found"}\n')


class TestObserverEvents:
    def test_reasoning_then_response_event_sequence(self):
        observer = RecordingObserver()
        decoder = StreamDecoder(observer=observer)
        decoder.feed(ndjson(_thinking("step one\nstep"), _thinking(" two"), _content("Hi"), _done()))
        decoder.finish()
        assert observer.events == [
            ("thinking_start",),
            ("thinking_line", "step one"),
            ("thinking_line", "step two"),
            ("thinking_end",),
            ("response_start",),
            ("content", "Hi"),
            ("stream_end",),
        ]

    def test_unflushed_reasoning_is_flushed_at_end(self):
        observer = RecordingObserver()
        decoder = StreamDecoder(observer=observer)
        decoder.feed(ndjson(_thinking("partial thought")))
        assert decoder.state is DecoderState.REASONING
        decoder.finish()
        assert ("thinking_line", "partial thought") in observer.events
        assert observer.events[-2:] == [("thinking_end",), ("stream_end",)]

    def test_state_moves_idle_to_responding(self):
        decoder = StreamDecoder()
        assert decoder.state is DecoderState.IDLE
        decoder.feed(ndjson(_content("x")))
        assert decoder.state is DecoderState.RESPONDING

    def test_observer_errors_do_not_break_decoding(self):
        class Broken(StreamObserver):
            def on_content(self, fragment):
                raise RuntimeError("display failed")

        response = _decode(ndjson(_content("a"), _content("b"), _done()), observer=Broken())
        assert response.content == "ab"

    def test_finish_is_idempotent(self):
        observer = RecordingObserver()
        decoder = StreamDecoder(observer=observer)
        decoder.feed(ndjson(_content("x"), _done()))
        first = decoder.finish()
        second = decoder.finish()
        assert first.content == second.content == "x"
        assert observer.events.count(("stream_end",)) == 1
