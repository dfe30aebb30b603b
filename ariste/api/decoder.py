"""
Transport decoder: turns a streamed chat response into one decoded message.

The chat endpoint answers with newline-delimited JSON. Each line is a partial
update carrying any of: a fragment of visible text, a fragment of reasoning
("thinking") text, an array of tool calls, and a ``done`` flag. The decoder
accumulates the visible text, collects tool calls in arrival order, and drives
a small three-state cursor (idle, reasoning, responding) so that a progress
observer can render reasoning and answer separately.

Reasoning text is only ever delivered to the observer. It never reaches the
decoded response, and it never enters the conversation history.

Network chunks are not aligned with lines, so bytes are buffered until a
newline completes a line. A multi-byte UTF-8 character split across chunks is
therefore reassembled before decoding rather than lost.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, AsyncIterable, Optional

import structlog

from ariste.errors import ChatTransportError, StreamDecodeError
from ariste.types import DecodedResponse, ToolCallRequest

logger = structlog.get_logger(__name__)


class DecoderState(str, Enum):
    IDLE = "idle"
    REASONING = "reasoning"
    RESPONDING = "responding"


class StreamObserver:
    """
    Receives progress events while a response streams in.

    Every method is a no-op here; subclasses override what they care about.
    Exceptions raised by an observer are logged and ignored: rendering
    progress must never break decoding.
    """

    def on_thinking_start(self) -> None:
        pass

    def on_thinking_line(self, line: str) -> None:
        pass

    def on_thinking_end(self) -> None:
        pass

    def on_response_start(self) -> None:
        pass

    def on_content(self, fragment: str) -> None:
        pass

    def on_stream_end(self) -> None:
        pass


class StreamDecoder:
    """
    Incremental decoder for one streamed chat response.

    Usage::

        decoder = StreamDecoder(observer=ConsoleObserver())
        for chunk in chunks:
            if decoder.feed(chunk):
                break
        response = decoder.finish()

    or simply ``await decoder.decode(async_chunks)``.

    In lenient mode (the default) a line that is not valid UTF-8 or not valid
    JSON is logged and skipped. In strict mode it raises ``StreamDecodeError``.
    """

    def __init__(self, observer: Optional[StreamObserver] = None, lenient: bool = True):
        self._observer = observer
        self._lenient = lenient
        self._buffer = b""
        self._content_parts: list[str] = []
        self._tool_calls: list[ToolCallRequest] = []
        self._thinking_buffer = ""
        self._state = DecoderState.IDLE
        self._done = False
        self._finished = False
        self._skipped_lines = 0

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def done(self) -> bool:
        return self._done

    @property
    def skipped_lines(self) -> int:
        return self._skipped_lines

    def feed(self, data: bytes) -> bool:
        """Consume one network chunk. Returns True once a ``done`` line was seen."""
        if self._done:
            return True
        self._buffer += data
        while not self._done and b"\n" in self._buffer:
            line, self._buffer = self._buffer.split(b"\n", 1)
            self._handle_line(line)
        return self._done

    def finish(self) -> DecodedResponse:
        """Flush any trailing partial line and return the aggregated response."""
        if self._finished:
            return self._build_response()
        self._finished = True

        if not self._done and self._buffer.strip():
            self._handle_line(self._buffer)
        self._buffer = b""

        self._flush_thinking()
        if self._state is DecoderState.REASONING:
            self._notify("on_thinking_end")
        self._notify("on_stream_end")

        response = self._build_response()
        logger.debug(
            "decoder.finished",
            content_chars=len(response.content),
            tool_calls=len(response.tool_calls or ()),
            skipped_lines=self._skipped_lines,
            saw_done=self._done,
        )
        return response

    async def decode(self, chunks: AsyncIterable[bytes]) -> DecodedResponse:
        """Drain an async byte stream until ``done`` or end of stream."""
        async for chunk in chunks:
            if self.feed(chunk):
                break
        return self.finish()

    # ---- line handling ----

    def _handle_line(self, raw: bytes) -> None:
        if not raw.strip():
            return
        try:
            chunk = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self._reject(raw, str(e))
            return
        if not isinstance(chunk, dict):
            self._reject(raw, "chunk is not a JSON object")
            return

        error = chunk.get("error")
        if error:
            raise ChatTransportError(f"Chat endpoint reported an error: {error}")

        message = chunk.get("message")
        if not isinstance(message, dict):
            message = {}

        raw_calls = message.get("tool_calls")
        if isinstance(raw_calls, list):
            for raw_call in raw_calls:
                if isinstance(raw_call, dict):
                    self._tool_calls.append(ToolCallRequest.from_api(raw_call))

        thinking = message.get("thinking")
        if isinstance(thinking, str) and thinking:
            self._on_thinking(thinking)

        content = message.get("content")
        if isinstance(content, str) and content:
            self._on_content(content)

        # Lines after the done chunk are never read.
        if chunk.get("done") is True:
            self._done = True

    def _reject(self, raw: bytes, reason: str) -> None:
        if not self._lenient:
            raise StreamDecodeError(f"Undecodable stream chunk: {reason}")
        self._skipped_lines += 1
        logger.warning(
            "decoder.chunk_skipped",
            reason=reason,
            preview=raw[:80].decode("utf-8", errors="replace"),
        )

    def _on_thinking(self, fragment: str) -> None:
        if self._state is DecoderState.IDLE:
            self._state = DecoderState.REASONING
            self._notify("on_thinking_start")
        self._thinking_buffer += fragment
        while "\n" in self._thinking_buffer:
            line, self._thinking_buffer = self._thinking_buffer.split("\n", 1)
            self._notify("on_thinking_line", line)

    def _on_content(self, fragment: str) -> None:
        if self._state is DecoderState.IDLE:
            self._state = DecoderState.RESPONDING
            self._notify("on_response_start")
        elif self._state is DecoderState.REASONING:
            self._flush_thinking()
            self._notify("on_thinking_end")
            self._state = DecoderState.RESPONDING
            self._notify("on_response_start")
        self._content_parts.append(fragment)
        self._notify("on_content", fragment)

    def _flush_thinking(self) -> None:
        if self._thinking_buffer:
            self._notify("on_thinking_line", self._thinking_buffer)
            self._thinking_buffer = ""

    def _notify(self, event: str, *args: Any) -> None:
        if self._observer is None:
            return
        try:
            getattr(self._observer, event)(*args)
        except Exception as e:
            logger.warning("decoder.observer_error", callback=event, error=str(e))

    def _build_response(self) -> DecodedResponse:
        return DecodedResponse(
            content="".join(self._content_parts),
            tool_calls=list(self._tool_calls) if self._tool_calls else None,
        )
