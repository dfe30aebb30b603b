"""
Core data types shared across Ariste subsystems.

These are the value objects that cross subsystem boundaries: the messages a
conversation is made of, the tool invocations a model asks for, and the
aggregated response the decoder hands back to the loop. They live here rather
than in a specific subsystem to avoid circular imports.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    """Who authored a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def new_tool_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolCallRequest:
    """A single tool invocation requested by the model.

    ``id`` is round-tripped verbatim into the ``tool`` message that carries
    the result, so the model can correlate the two.
    """

    id: str
    name: str
    arguments: Any

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "ToolCallRequest":
        """Build a request from one entry of a streamed ``tool_calls`` array.

        Entries without an ``id`` get a generated one. String-encoded
        arguments (OpenAI style) are decoded; undecodable strings are kept
        as-is so the dispatcher can reject them with a readable error.
        """
        function = raw.get("function") or {}
        name = function.get("name") or raw.get("name") or ""
        arguments = function.get("arguments", raw.get("arguments"))
        if arguments is None:
            arguments = {}
        elif isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                pass
        call_id = raw.get("id") or new_tool_call_id()
        return cls(id=str(call_id), name=str(name), arguments=arguments)

    def to_api_format(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class Message:
    """One role-tagged entry in a conversation. Immutable once created."""

    role: Role
    content: str = ""
    tool_calls: Optional[tuple[ToolCallRequest, ...]] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Optional[list[ToolCallRequest]] = None,
    ) -> "Message":
        return cls(
            role=Role.ASSISTANT,
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    def to_api_format(self) -> dict[str, Any]:
        """Convert to the shape the chat endpoint expects in ``messages``."""
        payload: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_api_format() for call in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        return payload


@dataclass
class DecodedResponse:
    """The aggregated result of one streamed chat call.

    ``tool_calls`` is ``None`` when the model asked for nothing, otherwise a
    non-empty list in the order the fragments arrived.
    """

    content: str = ""
    tool_calls: Optional[list[ToolCallRequest]] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
