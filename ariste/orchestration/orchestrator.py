"""
Orchestrator: spawns subagents and folds their results back.

A subagent is an ephemeral agent built for one task. It gets:

  - a fresh Conversation, seeded with the role's system prompt (if any), at
    most ``context_messages`` recent non-system messages of the parent, and
    one user message stating the task
  - a ChatClient derived from the parent's, carrying tool schemas only when
    both the task asks for tools and the role may use them
  - its own ToolExecutor over the shared, read-only ToolRegistry
  - an AgenticLoop one delegation level deeper than the orchestrator, with
    the degrade error policy, and a delegate only while that level is still
    below the maximum delegation depth (never, with the default depth of 1)

Nothing mutable is shared between a parent and its subagents, or between
sibling subagents: only the final text crosses the boundary.

Recursion is blocked twice. A subagent's client never carries the delegation
tool's schema, and a subagent loop at the maximum delegation depth answers
any delegation call with a recursion-guard tool result. ``spawn`` itself also
refuses to run when the orchestrator is already at that depth.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional, Sequence

import structlog

from ariste.api.client import ChatClient
from ariste.config import OrchestrationConfig
from ariste.conversation import Conversation, recent_context
from ariste.errors import AristeError, DelegationDepthExceeded, SubagentError
from ariste.harness.loop import AgenticLoop, ToolErrorPolicy
from ariste.orchestration.models import (
    SubagentResult,
    SubagentRole,
    SubagentTask,
)
from ariste.tools.builtin import DELEGATION_TOOL_NAME
from ariste.tools.executor import ToolExecutor, validate_tool_input
from ariste.tools.registry import ToolRegistry
from ariste.types import Message, ToolCallRequest

logger = structlog.get_logger(__name__)


class OrchestrationObserver:
    """Advisory subagent lifecycle events. Exceptions in here are logged and ignored."""

    def on_subagent_start(self, result: SubagentResult) -> None:
        pass

    def on_subagent_complete(self, result: SubagentResult) -> None:
        pass

    def on_swarm_start(self, tasks: Sequence[SubagentTask]) -> None:
        pass

    def on_swarm_complete(self, results: Sequence[SubagentResult], elapsed_seconds: float) -> None:
        pass


class Orchestrator:
    """Builds, runs and collects subagents for one parent agent."""

    def __init__(
        self,
        config: OrchestrationConfig,
        client: ChatClient,
        registry: ToolRegistry,
        max_iterations: int = 5,
        tool_default_timeout: Optional[float] = None,
        tool_max_output_length: int = 25000,
        delegation_depth: int = 0,
        observer: Optional[OrchestrationObserver] = None,
    ):
        self._config = config
        self._client = client
        self._registry = registry
        self._max_iterations = max_iterations
        self._tool_default_timeout = tool_default_timeout
        self._tool_max_output_length = tool_max_output_length
        self._delegation_depth = delegation_depth
        self._observer = observer

        self._total_spawned = 0
        self._total_failed = 0

        logger.info(
            "orchestrator.initialized",
            max_concurrent=config.max_concurrent_subagents,
            max_turns=config.max_turns,
            max_depth=config.max_delegation_depth,
            depth=delegation_depth,
        )

    @property
    def delegation_depth(self) -> int:
        return self._delegation_depth

    @property
    def max_turns(self) -> int:
        return self._config.max_turns

    # ---- building blocks ----

    def build_conversation(
        self,
        task: SubagentTask,
        context: Optional[Sequence[Message]] = None,
    ) -> Conversation:
        """The subagent's starting history: role prompt, recent context, task."""
        conversation = Conversation()
        profile = task.profile
        if profile.system_prompt:
            conversation.append(Message.system(profile.system_prompt))
        if context:
            conversation.extend(recent_context(context, self._config.context_messages))
        conversation.append(Message.user(task.task_statement()))
        return conversation

    def resolve_model(self, task: SubagentTask) -> str:
        return task.model or self._config.subagent_model or self._client.model

    @property
    def child_may_delegate(self) -> bool:
        return self._delegation_depth + 1 < self._config.max_delegation_depth

    def build_client(self, task: SubagentTask) -> ChatClient:
        """
        A client for one subagent.

        Tool schemas are attached only when the task asks for tools and the
        role allows them. The delegation tool is left out unless the
        subagent itself is still allowed to delegate.
        """
        client = self._client.with_model(self.resolve_model(task)).with_observer(None)
        if not task.uses_tools:
            return client.without_tools()
        exclude = [] if self.child_may_delegate else [DELEGATION_TOOL_NAME]
        return client.with_tools(self._registry.get_api_tools(exclude=exclude))

    def build_loop(self, client: ChatClient) -> AgenticLoop:
        executor = ToolExecutor(
            self._registry,
            default_timeout=self._tool_default_timeout,
            max_output_length=self._tool_max_output_length,
        )
        delegate = None
        if self.child_may_delegate:
            child = Orchestrator(
                self._config,
                client,
                self._registry,
                max_iterations=self._max_iterations,
                tool_default_timeout=self._tool_default_timeout,
                tool_max_output_length=self._tool_max_output_length,
                delegation_depth=self._delegation_depth + 1,
                observer=self._observer,
            )
            delegate = child.handle_delegation
        return AgenticLoop(
            client=client,
            executor=executor,
            max_iterations=self._max_iterations,
            error_policy=ToolErrorPolicy.DEGRADE,
            delegate=delegate,
            delegation_depth=self._delegation_depth + 1,
            max_delegation_depth=self._config.max_delegation_depth,
        )

    # ---- single subagent ----

    async def _execute(
        self,
        result: SubagentResult,
        context: Optional[Sequence[Message]],
    ) -> None:
        """Run one subagent to completion, recording the outcome on ``result``."""
        if self._delegation_depth >= self._config.max_delegation_depth:
            error = DelegationDepthExceeded(
                self._delegation_depth, self._config.max_delegation_depth
            )
            result.mark_failed(str(error))
            logger.warning("orchestration.depth_exceeded", depth=self._delegation_depth)
            raise error

        task = result.task
        client = self.build_client(task)
        result.model = client.model
        result.used_tools = task.uses_tools
        conversation = self.build_conversation(task, context)
        loop = self.build_loop(client)

        result.mark_running()
        self._total_spawned += 1
        self._notify("on_subagent_start", result)
        logger.info(
            "orchestration.spawn",
            subagent_id=result.id,
            role=task.role.value,
            description=task.description,
            model=client.model,
            tools=len(client.tools),
        )

        try:
            text = await loop.run_turns(conversation, self._config.max_turns)
        except AristeError as e:
            self._total_failed += 1
            result.mark_failed(str(e))
            logger.warning(
                "orchestration.subagent_failed",
                subagent_id=result.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._notify("on_subagent_complete", result)
            raise

        result.mark_completed(text)
        logger.info(
            "orchestration.subagent_complete",
            subagent_id=result.id,
            duration_ms=result.duration_ms,
            messages=len(conversation),
        )
        self._notify("on_subagent_complete", result)

    async def run_task(
        self,
        task: SubagentTask,
        context: Optional[Sequence[Message]] = None,
    ) -> SubagentResult:
        """
        Run one task and return its execution record.

        Raises on failure (``ChatTransportError``, ``SubagentError``); the
        record passed to the observer is marked failed first.
        """
        result = SubagentResult(task=task)
        await self._execute(result, context if task.include_context else None)
        return result

    async def spawn(
        self,
        role: "str | SubagentRole",
        description: str,
        prompt: str,
        context: Optional[Sequence[Message]] = None,
        include_tools: bool = False,
        model: str = "",
    ) -> str:
        """Run one subagent and return the formatted completion report."""
        task = SubagentTask(
            role=SubagentRole.parse(role),
            description=description,
            prompt=prompt,
            include_context=context is not None,
            include_tools=include_tools,
            model=model,
        )
        result = await self.run_task(task, context)
        return result.to_report()

    # ---- the delegation tool ----

    def parse_delegation(self, arguments: Any) -> SubagentTask:
        """
        Turn delegation tool arguments into a task.

        Raises:
            SubagentError: arguments are not an object, a required parameter
                is missing, or ``subagent_type`` names no known role.
        """
        if not isinstance(arguments, dict):
            raise SubagentError(
                f"Tool arguments must be a JSON object, got {type(arguments).__name__}"
            )
        required = ["subagent_type", "description", "prompt"]
        missing = [name for name in required if not arguments.get(name)]
        if missing:
            raise SubagentError(f"Missing required parameter(s): {', '.join(missing)}")
        try:
            role = SubagentRole.parse(arguments["subagent_type"])
        except ValueError as e:
            raise SubagentError(str(e)) from None

        delegation = self._registry.get(DELEGATION_TOOL_NAME)
        if delegation is not None:
            normalized = {**arguments, "subagent_type": role.value}
            error = validate_tool_input(delegation.parameters, normalized)
            if error:
                raise SubagentError(error)

        return SubagentTask(
            role=role,
            description=str(arguments["description"]),
            prompt=str(arguments["prompt"]),
            include_tools=bool(arguments.get("include_tools", False)),
        )

    async def handle_delegation(
        self,
        call: ToolCallRequest,
        context: Optional[Sequence[Message]] = None,
    ) -> str:
        """Run the subagent a delegation tool call asks for; return the report."""
        task = self.parse_delegation(call.arguments)
        if context is not None:
            task = task.model_copy(update={"include_context": True})
        logger.info(
            "orchestration.delegation",
            tool_call_id=call.id,
            role=task.role.value,
            include_tools=task.include_tools,
        )
        result = await self.run_task(task, context)
        return result.to_report()

    # ---- fan-out ----

    async def spawn_many(
        self,
        tasks: Sequence[SubagentTask],
        context: Optional[Sequence[Message]] = None,
        all_or_nothing: bool = False,
    ) -> list[SubagentResult]:
        """
        Run several tasks concurrently and return their records in request order.

        At most ``max_concurrent_subagents`` run at once. A failed task is
        returned as a failed record without affecting its siblings. With
        ``all_or_nothing`` the first failure in request order is raised
        instead, once every task has finished.
        """
        tasks = list(tasks)
        if not tasks:
            return []

        semaphore = asyncio.Semaphore(self._config.max_concurrent_subagents)
        records = [SubagentResult(task=task) for task in tasks]
        start = time.monotonic()

        self._notify("on_swarm_start", tasks)
        logger.info(
            "orchestration.spawn_swarm",
            agent_count=len(tasks),
            max_concurrent=self._config.max_concurrent_subagents,
        )

        async def _run(record: SubagentResult) -> None:
            async with semaphore:
                task_context = context if record.task.include_context else None
                await self._execute(record, task_context)

        outcomes = await asyncio.gather(
            *(_run(record) for record in records),
            return_exceptions=True,
        )

        elapsed = time.monotonic() - start
        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        logger.info(
            "orchestration.swarm_complete",
            agent_count=len(records),
            failed=len(failures),
            elapsed=round(elapsed, 2),
        )
        self._notify("on_swarm_complete", records, elapsed)

        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(outcome, AristeError):
                raise outcome
        if all_or_nothing and failures:
            raise failures[0]
        return records

    async def spawn_many_reports(
        self,
        tasks: Sequence[SubagentTask],
        context: Optional[Sequence[Message]] = None,
    ) -> list[str]:
        """All-or-nothing fan-out returning the formatted reports."""
        records = await self.spawn_many(tasks, context, all_or_nothing=True)
        return [record.to_report() for record in records]

    # ---- observability ----

    def _notify(self, event: str, *args: Any) -> None:
        if self._observer is None:
            return
        try:
            getattr(self._observer, event)(*args)
        except Exception as e:
            logger.warning("orchestration.observer_error", callback=event, error=str(e))

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_spawned": self._total_spawned,
            "total_failed": self._total_failed,
            "depth": self._delegation_depth,
        }
