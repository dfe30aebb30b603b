"""
Conversation state: the ordered log of messages passed to the chat model.

A conversation is append-only: messages are immutable and kept in insertion
order. ``append`` enforces the pairing rule between assistant tool calls and
tool results, so a history that reaches the chat endpoint always lets the
model correlate every result with the request that produced it.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional, Sequence

import structlog

from ariste.types import Message, Role

logger = structlog.get_logger(__name__)


def recent_context(messages: Sequence[Message], limit: int) -> list[Message]:
    """The tail of a history suitable for seeding another conversation.

    Takes the last ``limit`` messages and drops system messages. Tool results
    whose assistant request fell outside the window are dropped as well, so
    the returned slice can be appended to a fresh conversation.
    """
    if limit <= 0:
        return []
    window = [m for m in list(messages)[-limit:] if m.role is not Role.SYSTEM]
    known_ids: set[str] = set()
    context: list[Message] = []
    for message in window:
        if message.role is Role.ASSISTANT:
            known_ids = {call.id for call in message.tool_calls or ()}
        elif message.role is Role.TOOL:
            if message.tool_call_id not in known_ids:
                continue
        else:
            known_ids = set()
        context.append(message)
    return context


class Conversation:
    """An ordered, append-only sequence of role-tagged messages."""

    def __init__(self, messages: Optional[Iterable[Message]] = None):
        self._messages: list[Message] = []
        for message in messages or ():
            self.append(message)

    def append(self, message: Message) -> None:
        """Append a message, rejecting tool results with no matching request.

        A ``tool`` message must carry a ``tool_call_id`` that names one of the
        ``tool_calls`` of the nearest preceding assistant message.
        """
        if message.role is Role.TOOL:
            if not message.tool_call_id:
                raise ValueError("Tool messages must carry a tool_call_id")
            if message.tool_call_id not in self._pending_call_ids():
                raise ValueError(
                    f"Tool result '{message.tool_call_id}' does not answer a "
                    "tool call of the preceding assistant message"
                )
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def _pending_call_ids(self) -> set[str]:
        for message in reversed(self._messages):
            if message.role is Role.ASSISTANT:
                return {call.id for call in message.tool_calls or ()}
            if message.role is not Role.TOOL:
                break
        return set()

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def last_assistant_content(self) -> Optional[str]:
        """Content of the most recent assistant message with non-empty text."""
        for message in reversed(self._messages):
            if message.role is Role.ASSISTANT and message.content:
                return message.content
        return None

    def recent_context(self, limit: int) -> list[Message]:
        return recent_context(self._messages, limit)

    def clear(self) -> None:
        logger.debug("conversation.cleared", dropped=len(self._messages))
        self._messages.clear()

    def to_api_format(self) -> list[dict[str, Any]]:
        return [message.to_api_format() for message in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __repr__(self) -> str:
        return f"Conversation(messages={len(self._messages)})"
