"""
The Agentic Loop: drives one logical user turn to completion.

The pattern is deliberately small:

    while iterations remain:
        response = client.send(conversation)
        if not response.tool_calls:
            conversation.append(assistant(response.content))
            return
        conversation.append(assistant(response.content, response.tool_calls))
        for call in response.tool_calls:
            conversation.append(tool(dispatch(call), call.id))
    fail: "Too many tool call iterations"

Exactly one chat call is in flight at a time. Tool calls from one response are
dispatched sequentially, in the order the model requested them.

Two things slot into that skeleton:

- The tool error policy. The top-level loop fails fast: an unknown tool or a
  failing tool aborts the turn (after its error is recorded in the history).
  Subagent loops degrade: the error becomes the tool result and the model
  gets a chance to recover.

- The delegation tool. It is never executed by the tool executor. At depth
  zero it is routed to the orchestrator; at or beyond the maximum delegation
  depth it is answered with a fixed recursion-guard message instead.
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import structlog

from ariste.api.client import ChatClient
from ariste.conversation import Conversation
from ariste.errors import (
    AristeError,
    IterationLimitExceeded,
    SubagentError,
    ToolExecutionError,
    ToolNotFoundError,
)
from ariste.tools.builtin import DELEGATION_TOOL_NAME
from ariste.tools.executor import ToolExecutor
from ariste.types import Message, ToolCallRequest

logger = structlog.get_logger(__name__)

RECURSION_GUARD_ERROR = "Subagents cannot spawn additional subagents"
RECURSION_GUARD_SUGGESTION = "Complete the task yourself using available tools"
SKIPPED_AFTER_FAILURE = "Tool call skipped: an earlier tool call in this turn failed"

DelegateFn = Callable[[ToolCallRequest], Awaitable[str]]


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    FAILED = "failed"


class ToolErrorPolicy(str, Enum):
    """How a failed tool call affects the turn."""

    FAIL_FAST = "fail_fast"
    DEGRADE = "degrade"


class ToolObserver:
    """Advisory tool-dispatch events. Failures in here never affect the loop."""

    def on_tool_start(self, call: ToolCallRequest) -> None:
        pass

    def on_tool_result(self, call: ToolCallRequest, content: str) -> None:
        pass

    def on_tool_error(self, call: ToolCallRequest, error: str) -> None:
        pass


def recursion_guard_message() -> str:
    return json.dumps(
        {"error": RECURSION_GUARD_ERROR, "suggestion": RECURSION_GUARD_SUGGESTION}
    )


class LoopResult:
    """The outcome of one completed turn."""

    def __init__(
        self,
        text: str,
        iterations: int = 0,
        tool_calls: Optional[list[ToolCallRequest]] = None,
        elapsed_seconds: float = 0.0,
    ):
        self.text = text
        self.iterations = iterations
        self.tool_calls = tool_calls or []
        self.elapsed_seconds = elapsed_seconds

    @property
    def used_tools(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def tool_names_used(self) -> list[str]:
        return list(dict.fromkeys(call.name for call in self.tool_calls))

    def __repr__(self) -> str:
        return (
            f"LoopResult(iterations={self.iterations}, "
            f"tool_calls={len(self.tool_calls)}, text_length={len(self.text)})"
        )


class AgenticLoop:
    """
    The bounded iterate-call-dispatch loop.

    One instance serves one agent: the top-level agent builds one with
    ``FAIL_FAST`` at depth 0, and the orchestrator builds a fresh one per
    subagent with ``DEGRADE`` at depth 1.
    """

    def __init__(
        self,
        client: ChatClient,
        executor: ToolExecutor,
        max_iterations: int = 5,
        error_policy: ToolErrorPolicy = ToolErrorPolicy.FAIL_FAST,
        delegate: Optional[DelegateFn] = None,
        delegation_depth: int = 0,
        max_delegation_depth: int = 1,
        observer: Optional[ToolObserver] = None,
    ):
        self._client = client
        self._executor = executor
        self._max_iterations = max(1, max_iterations)
        self._error_policy = error_policy
        self._delegate = delegate
        self._delegation_depth = delegation_depth
        self._max_delegation_depth = max_delegation_depth
        self._observer = observer
        self._state = LoopState.AWAITING_MODEL

        self._total_runs = 0
        self._total_iterations = 0
        self._total_tool_calls = 0

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def client(self) -> ChatClient:
        return self._client

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @property
    def error_policy(self) -> ToolErrorPolicy:
        return self._error_policy

    @property
    def delegation_depth(self) -> int:
        return self._delegation_depth

    @property
    def delegation_allowed(self) -> bool:
        return self._delegation_depth < self._max_delegation_depth

    async def run(self, conversation: Conversation, prompt: Optional[str] = None) -> LoopResult:
        """
        Run one turn to completion.

        If ``prompt`` is given it is appended as a ``user`` message first;
        otherwise the loop continues from the conversation as it stands.
        On failure the conversation keeps everything appended so far.

        Raises:
            IterationLimitExceeded: the model was still asking for tools
                after ``max_iterations`` chat calls.
            ToolNotFoundError / ToolExecutionError: a tool failed under the
                ``FAIL_FAST`` policy.
            ChatTransportError: the chat endpoint failed.
        """
        self._total_runs += 1
        start_time = time.monotonic()
        all_tool_calls: list[ToolCallRequest] = []

        if prompt is not None:
            conversation.append(Message.user(prompt))

        logger.info(
            "agentic_loop.starting",
            message_count=len(conversation),
            depth=self._delegation_depth,
            policy=self._error_policy.value,
        )

        self._state = LoopState.AWAITING_MODEL
        try:
            for iteration in range(1, self._max_iterations + 1):
                self._total_iterations += 1
                response = await self._client.send(conversation)

                if not response.has_tool_calls:
                    conversation.append(Message.assistant(response.content))
                    self._state = LoopState.DONE
                    logger.info(
                        "agentic_loop.complete",
                        iterations=iteration,
                        tool_calls=len(all_tool_calls),
                        response_length=len(response.content),
                    )
                    return LoopResult(
                        text=response.content,
                        iterations=iteration,
                        tool_calls=all_tool_calls,
                        elapsed_seconds=time.monotonic() - start_time,
                    )

                calls = response.tool_calls or []
                conversation.append(Message.assistant(response.content, calls))
                self._state = LoopState.DISPATCHING_TOOLS
                for index, call in enumerate(calls):
                    self._total_tool_calls += 1
                    all_tool_calls.append(call)
                    try:
                        await self._dispatch(conversation, call)
                    except AristeError:
                        for skipped in calls[index + 1:]:
                            conversation.append(Message.tool(SKIPPED_AFTER_FAILURE, skipped.id))
                        raise
                self._state = LoopState.AWAITING_MODEL

            logger.warning(
                "agentic_loop.max_iterations",
                max=self._max_iterations,
                tool_calls=len(all_tool_calls),
            )
            raise IterationLimitExceeded(self._max_iterations)
        except Exception:
            self._state = LoopState.FAILED
            raise

    async def run_turns(self, conversation: Conversation, max_turns: int) -> str:
        """
        Subagent variant: up to ``max_turns`` turns of up to ``max_iterations``
        iterations each.

        A turn that hits the iteration ceiling is not fatal here; the next turn
        picks up from the conversation as it stands. Returns the final text of
        the first turn that completes, else the last non-empty assistant text
        seen, else raises ``SubagentError``.
        """
        for turn in range(1, max(1, max_turns) + 1):
            try:
                result = await self.run(conversation)
            except IterationLimitExceeded:
                logger.info("agentic_loop.turn_exhausted", turn=turn, max_turns=max_turns)
                continue
            return result.text

        logger.warning("agentic_loop.max_turns", max_turns=max_turns)
        content = conversation.last_assistant_content()
        if content is None:
            raise SubagentError("Subagent: no response generated")
        return content

    # ---- dispatch ----

    async def _dispatch(self, conversation: Conversation, call: ToolCallRequest) -> None:
        self._invoke_callback("on_tool_start", call)

        if call.name == DELEGATION_TOOL_NAME and not self.delegation_allowed:
            logger.warning(
                "agentic_loop.delegation_rejected",
                depth=self._delegation_depth,
                max_depth=self._max_delegation_depth,
            )
            content = recursion_guard_message()
            conversation.append(Message.tool(content, call.id))
            self._invoke_callback("on_tool_result", call, content)
            return

        if call.name == DELEGATION_TOOL_NAME and self._delegate is not None:
            try:
                content = await self._delegate(call)
            except SubagentError as e:
                self._handle_failure(conversation, call, ToolExecutionError(call.name, str(e)))
                return
            except AristeError as e:
                # transport and decode failures stay fatal under every policy
                error_text = str(ToolExecutionError(call.name, str(e)))
                conversation.append(Message.tool(error_text, call.id))
                self._invoke_callback("on_tool_error", call, error_text)
                raise
            conversation.append(Message.tool(content, call.id))
            self._invoke_callback("on_tool_result", call, content)
            return

        result = await self._executor.execute(call)
        conversation.append(Message.tool(result.content, call.id))
        logger.debug(
            "agentic_loop.tool_executed",
            tool=call.name,
            success=result.success,
        )
        if result.success:
            self._invoke_callback("on_tool_result", call, result.content)
            return

        if result.not_found:
            error: Exception = ToolNotFoundError(call.name)
        else:
            error = ToolExecutionError(call.name, result.error or "unknown error")
        self._invoke_callback("on_tool_error", call, str(error))
        if self._error_policy is ToolErrorPolicy.FAIL_FAST:
            raise error

    def _handle_failure(
        self,
        conversation: Conversation,
        call: ToolCallRequest,
        error: ToolExecutionError,
    ) -> None:
        conversation.append(Message.tool(str(error), call.id))
        self._invoke_callback("on_tool_error", call, str(error))
        if self._error_policy is ToolErrorPolicy.FAIL_FAST:
            raise error

    def _invoke_callback(self, name: str, *args: Any) -> None:
        """Run observer hooks without letting their failures crash the loop."""
        if self._observer is None:
            return
        try:
            getattr(self._observer, name)(*args)
        except Exception as callback_error:
            logger.warning(
                "agentic_loop.callback_failed",
                callback=name,
                error=str(callback_error),
            )

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_runs": self._total_runs,
            "total_iterations": self._total_iterations,
            "total_tool_calls": self._total_tool_calls,
        }
