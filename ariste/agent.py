"""
Agent — wires configuration, tools, chat client, loop and orchestrator.

The Agent owns exactly one Conversation: the top-level history that grows
turn by turn. Each ``invoke`` drives one turn through a fail-fast
``AgenticLoop``. When the model calls the delegation tool the loop hands the
call to the ``Orchestrator``, which runs a subagent on its own conversation
and client and returns a text report that becomes the tool result.

A failed turn leaves the history as it stood at the point of failure; the
next ``invoke`` continues from there.
"""

from __future__ import annotations

from typing import Optional, Sequence

import httpx
import structlog

from ariste.api.client import ChatClient
from ariste.api.decoder import StreamObserver
from ariste.config import AristeConfig
from ariste.conversation import Conversation
from ariste.harness.loop import AgenticLoop, LoopResult, ToolErrorPolicy, ToolObserver
from ariste.orchestration.models import SubagentResult, SubagentRole, SubagentTask
from ariste.orchestration.orchestrator import OrchestrationObserver, Orchestrator
from ariste.tools.builtin import register_builtin_tools
from ariste.tools.executor import ToolExecutor
from ariste.tools.registry import ToolRegistry
from ariste.types import ToolCallRequest

logger = structlog.get_logger(__name__)


class Agent:
    """The top-level, tool-using conversational agent."""

    def __init__(
        self,
        config: AristeConfig,
        registry: Optional[ToolRegistry] = None,
        client: Optional[ChatClient] = None,
        stream_observer: Optional[StreamObserver] = None,
        tool_observer: Optional[ToolObserver] = None,
        orchestration_observer: Optional[OrchestrationObserver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config

        if registry is None:
            registry = ToolRegistry()
            register_builtin_tools(registry)
        self._registry = registry

        if client is None:
            client = ChatClient(
                config.chat,
                tools=registry.get_api_tools(),
                observer=stream_observer,
                transport=transport,
            )
        self._client = client

        self._orchestrator = Orchestrator(
            config.orchestration,
            client,
            registry,
            max_iterations=config.loop.max_tool_iterations,
            tool_default_timeout=config.loop.tool_default_timeout,
            tool_max_output_length=config.loop.tool_max_output_length,
            observer=orchestration_observer,
        )
        self._executor = ToolExecutor(
            registry,
            default_timeout=config.loop.tool_default_timeout,
            max_output_length=config.loop.tool_max_output_length,
        )
        self._loop = AgenticLoop(
            client=client,
            executor=self._executor,
            max_iterations=config.loop.max_tool_iterations,
            error_policy=ToolErrorPolicy.FAIL_FAST,
            delegate=self._delegate,
            delegation_depth=0,
            max_delegation_depth=config.orchestration.max_delegation_depth,
            observer=tool_observer,
        )
        self._conversation = Conversation()

        logger.info("agent.initialized", config=repr(config), tools=registry.names)

    @property
    def config(self) -> AristeConfig:
        return self._config

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def client(self) -> ChatClient:
        return self._client

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def loop(self) -> AgenticLoop:
        return self._loop

    @property
    def orchestrator(self) -> Orchestrator:
        return self._orchestrator

    async def invoke(self, prompt: str) -> LoopResult:
        """
        Run one user turn and return its result.

        Raises whatever ends the turn early (transport failure, the
        iteration ceiling, a failing tool). The history is not rolled back.
        """
        try:
            return await self._loop.run(self._conversation, prompt)
        except Exception as e:
            logger.error(
                "agent.turn_failed",
                error_type=type(e).__name__,
                error=str(e),
                messages=len(self._conversation),
            )
            raise

    async def _delegate(self, call: ToolCallRequest) -> str:
        # The delegation tool never carries the parent's history.
        return await self._orchestrator.handle_delegation(call)

    async def spawn_task(
        self,
        role: "str | SubagentRole",
        description: str,
        prompt: str,
        include_context: bool = False,
        include_tools: bool = False,
    ) -> str:
        """Delegate one task directly, optionally with recent history as context."""
        context = self._conversation.messages if include_context else None
        return await self._orchestrator.spawn(
            role,
            description,
            prompt,
            context=context,
            include_tools=include_tools,
        )

    async def spawn_tasks(
        self,
        tasks: Sequence[SubagentTask],
        all_or_nothing: bool = False,
    ) -> list[SubagentResult]:
        """Run several tasks concurrently; records come back in request order."""
        return await self._orchestrator.spawn_many(
            tasks,
            context=self._conversation.messages,
            all_or_nothing=all_or_nothing,
        )

    def clear_history(self) -> None:
        self._conversation.clear()
