"""
Error taxonomy for the agent runtime.

Errors the model can plausibly recover from (unknown tool, a failing tool
inside a delegated task) are normally turned into tool-result content before
they ever become exceptions. The classes here are what escapes to the caller
when that is not possible: transport failures, exhausted ceilings, and the
fail-fast tool policy of the top-level loop.
"""

from __future__ import annotations


class AristeError(Exception):
    """Base class for all runtime errors raised by Ariste."""


class ChatTransportError(AristeError):
    """The chat endpoint could not be reached or answered with an error status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        # seconds the endpoint asked us to wait (Retry-After), if any
        self.retry_after = retry_after


class StreamDecodeError(AristeError):
    """A stream chunk could not be decoded (strict decoding mode only)."""


class ToolNotFoundError(AristeError):
    """The model asked for a tool that is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolExecutionError(AristeError):
    """A tool ran and failed, or rejected its arguments."""

    def __init__(self, tool_name: str, detail: str):
        super().__init__(f"Tool execution error: {detail}")
        self.tool_name = tool_name
        self.detail = detail


class IterationLimitExceeded(AristeError):
    """The per-turn tool-call iteration ceiling was reached."""

    def __init__(self, max_iterations: int):
        super().__init__("Too many tool call iterations")
        self.max_iterations = max_iterations


class SubagentError(AristeError):
    """A subagent could not produce a result."""


class DelegationDepthExceeded(SubagentError):
    """A subagent tried to spawn another subagent."""

    def __init__(self, depth: int, max_depth: int):
        super().__init__(
            f"Subagents cannot spawn additional subagents "
            f"(depth {depth}, max {max_depth})"
        )
        self.depth = depth
        self.max_depth = max_depth
