"""
Shared fixtures for the Ariste test suite.

Provides a scripted stand-in for ChatClient, helpers to build model replies,
and default configs so individual test modules can focus on behavior rather
than setup. No test touches the network.
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Optional, Union

import pytest

from ariste.config import AristeConfig, ChatConfig, LoopConfig, OrchestrationConfig
from ariste.tools.builtin import register_builtin_tools
from ariste.tools.registry import ToolDefinition, ToolRegistry
from ariste.types import DecodedResponse, Message, ToolCallRequest


# ---------------------------------------------------------------------------
# Reply helpers
# ---------------------------------------------------------------------------

def reply(text: str) -> DecodedResponse:
    """A final answer with no tool calls."""
    return DecodedResponse(content=text)


def call(name: str, arguments: Optional[dict[str, Any]] = None, call_id: str = "call_1") -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name=name, arguments=arguments or {})


def tool_reply(*calls: ToolCallRequest, text: str = "") -> DecodedResponse:
    """A reply asking for the given tool calls."""
    return DecodedResponse(content=text, tool_calls=list(calls))


def ndjson(*chunks: dict[str, Any]) -> bytes:
    """Encode chunks the way the chat endpoint streams them."""
    return b"".join(json.dumps(chunk).encode("utf-8") + b"\n" for chunk in chunks)


# ---------------------------------------------------------------------------
# ScriptedClient — a ChatClient stand-in
# ---------------------------------------------------------------------------

Responder = Callable[["ScriptedClient", list[Message]], Union[DecodedResponse, Awaitable[DecodedResponse]]]


class _Script:
    """State shared by a scripted client and every client derived from it."""

    def __init__(self, responses: list[DecodedResponse], responder: Optional[Responder]):
        self.responses = list(responses)
        self.responder = responder
        self.calls: list[tuple["ScriptedClient", list[Message]]] = []
        self.derived: list["ScriptedClient"] = []


class ScriptedClient:
    """
    A fake ChatClient that answers from a script.

    Each ``send`` records a snapshot of the history it was given, then either
    pops the next queued response or asks ``responder`` for one. Derived
    clients (``with_tools``, ``without_tools``, ...) share the script and the
    call log, so a test can see what every subagent was sent and which tools
    its client carried.
    """

    def __init__(
        self,
        responses: Optional[list[DecodedResponse]] = None,
        responder: Optional[Responder] = None,
        model: str = "test-model",
        tools: tuple[dict[str, Any], ...] = (),
        _script: Optional[_Script] = None,
    ):
        self._script = _script or _Script(responses or [], responder)
        self.model = model
        self.tools = tuple(tools)

    @property
    def has_tools(self) -> bool:
        return bool(self.tools)

    @property
    def tool_names(self) -> list[str]:
        return [t["function"]["name"] for t in self.tools]

    @property
    def calls(self) -> list[tuple["ScriptedClient", list[Message]]]:
        return self._script.calls

    @property
    def derived(self) -> list["ScriptedClient"]:
        return self._script.derived

    @property
    def call_count(self) -> int:
        return len(self._script.calls)

    def _derive(self, **overrides: Any) -> "ScriptedClient":
        params: dict[str, Any] = {"model": self.model, "tools": self.tools}
        params.update(overrides)
        client = ScriptedClient(_script=self._script, **params)
        self._script.derived.append(client)
        return client

    def with_tools(self, tools: Any) -> "ScriptedClient":
        return self._derive(tools=tuple(tools))

    def without_tools(self) -> "ScriptedClient":
        return self._derive(tools=())

    def with_model(self, model: str) -> "ScriptedClient":
        return self._derive(model=model or self.model)

    def with_observer(self, observer: Any) -> "ScriptedClient":
        return self._derive()

    async def send(self, messages: Any) -> DecodedResponse:
        history = list(messages)
        self._script.calls.append((self, history))
        if self._script.responder is not None:
            response = self._script.responder(self, history)
            if hasattr(response, "__await__"):
                response = await response
            return response
        if not self._script.responses:
            return reply("[no more scripted responses]")
        return self._script.responses.pop(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def ariste_config() -> AristeConfig:
    """Default configuration with retries off so failures surface immediately."""
    return AristeConfig(
        chat=ChatConfig(
            base_url="http://chat.test",
            model="test-model",
            retry_max_retries=0,
        ),
        loop=LoopConfig(max_tool_iterations=5),
        orchestration=OrchestrationConfig(max_turns=10, context_messages=10),
    )


def echo_tool(name: str = "echo") -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description="Echo the given text back",
        parameters={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
        handler=lambda text: f"echo: {text}",
    )


def failing_tool(name: str = "explode") -> ToolDefinition:
    def _explode() -> str:
        raise RuntimeError("kaboom")

    return ToolDefinition(
        name=name,
        description="Always fails",
        parameters={"type": "object", "properties": {}},
        handler=_explode,
    )


@pytest.fixture()
def registry() -> ToolRegistry:
    """Built-in tools plus an echo tool and a tool that always fails."""
    reg = ToolRegistry()
    register_builtin_tools(reg)
    reg.register(echo_tool())
    reg.register(failing_tool())
    return reg
