"""
Tool Executor: runs one requested tool call and captures the outcome.

The executor is the boundary between "the model asked for something" and
"something ran". For each call it:

1. Looks the tool up by exact name
2. Checks the arguments are a JSON object matching the tool's schema
3. Runs the handler (async handlers inline, sync handlers on a worker thread
   so a blocking tool never stalls other agents sharing the event loop)
4. Truncates oversized output
5. Captures every failure into a ``ToolExecutionResult``

The executor never raises for tool-level problems. Whether a failed result
aborts the turn or is shown to the model is the agent loop's decision.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from ariste.tools.registry import ToolRegistry
from ariste.types import ToolCallRequest

logger = structlog.get_logger(__name__)


@dataclass
class ToolExecutionResult:
    """
    The result of executing a tool: success or failure.

    ``content`` is what goes into the ``tool`` message sent back to the model.
    """
    tool_call_id: str
    tool_name: str
    success: bool
    result: Optional[str] = None
    error: Optional[str] = None
    not_found: bool = False
    execution_time: float = 0.0

    @property
    def content(self) -> str:
        if self.success:
            return self.result or ""
        if self.not_found:
            return f"Tool not found: {self.tool_name}"
        return f"Tool execution error: {self.error}"


# JSON Schema type -> Python types (for lightweight validation)
_JSON_TYPE_MAP: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def validate_tool_input(schema: dict[str, Any], tool_input: Any) -> Optional[str]:
    """
    Lightweight JSON Schema validation for tool inputs.

    Checks the input is an object, required fields are present, basic type
    constraints hold and ``enum`` values match. Returns an error message
    string on failure, or None if the input is valid.
    """
    if not isinstance(tool_input, dict):
        return f"Tool arguments must be a JSON object, got {type(tool_input).__name__}"

    required = schema.get("required", [])
    properties = schema.get("properties", {})

    missing = [name for name in required if name not in tool_input]
    if missing:
        return f"Missing required parameter(s): {', '.join(missing)}"

    for name, value in tool_input.items():
        prop_schema = properties.get(name)
        if not isinstance(prop_schema, dict):
            continue
        expected_type = prop_schema.get("type")
        py_types = _JSON_TYPE_MAP.get(expected_type) if expected_type else None
        if py_types is not None:
            # bool is a subclass of int, but JSON booleans are distinct
            if isinstance(value, bool) and expected_type in ("integer", "number"):
                return f"Parameter '{name}' expected {expected_type}, got boolean"
            if not isinstance(value, py_types):
                return (
                    f"Parameter '{name}' expected {expected_type}, "
                    f"got {type(value).__name__}"
                )
        allowed = prop_schema.get("enum")
        if allowed and value not in allowed:
            return (
                f"Parameter '{name}' must be one of: "
                f"{', '.join(str(v) for v in allowed)}"
            )

    return None


def _stringify(result: Any) -> str:
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    try:
        return json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(result)


class ToolExecutor:
    """Executes tool calls against a registry with timeouts and observability."""

    def __init__(
        self,
        registry: ToolRegistry,
        default_timeout: Optional[float] = None,
        max_output_length: int = 25000,
        max_concurrent_sync: int = 8,
    ):
        self._registry = registry
        self._default_timeout = default_timeout
        self._max_output_length = max_output_length
        self._max_concurrent_sync = max(1, int(max_concurrent_sync))
        self._sync_slot: Optional[asyncio.BoundedSemaphore] = None

        self._total_executions = 0
        self._total_successes = 0
        self._total_failures = 0

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def _failure(self, call: ToolCallRequest, error: str, **extra: Any) -> ToolExecutionResult:
        self._total_failures += 1
        return ToolExecutionResult(
            tool_call_id=call.id,
            tool_name=call.name,
            success=False,
            error=error,
            **extra,
        )

    async def execute(self, call: ToolCallRequest) -> ToolExecutionResult:
        """Execute a single tool call and return its captured outcome."""
        start_time = time.monotonic()
        self._total_executions += 1

        tool_def = self._registry.get(call.name)
        if tool_def is None or not tool_def.enabled:
            logger.warning("tool_executor.not_found", tool_name=call.name, tool_call_id=call.id)
            return self._failure(call, f"Tool not found: {call.name}", not_found=True)

        handler = tool_def.handler
        if handler is None:
            return self._failure(call, f"No handler registered for tool: {call.name}")

        validation_error = validate_tool_input(tool_def.parameters, call.arguments)
        if validation_error:
            logger.info(
                "tool_executor.invalid_arguments",
                tool_name=call.name,
                error=validation_error,
            )
            return self._failure(call, validation_error)

        logger.info(
            "tool_executor.executing",
            tool_name=call.name,
            tool_call_id=call.id,
            input_keys=list(call.arguments.keys()),
        )

        timeout = tool_def.timeout if tool_def.timeout is not None else self._default_timeout
        try:
            if inspect.iscoroutinefunction(handler):
                raw = await asyncio.wait_for(handler(**call.arguments), timeout=timeout)
            else:
                raw = await self._execute_sync_handler(handler, call.arguments, timeout)
        except asyncio.TimeoutError:
            logger.warning("tool_executor.timeout", tool_name=call.name, timeout=timeout)
            return self._failure(
                call,
                f"Tool execution timed out after {timeout}s",
                execution_time=time.monotonic() - start_time,
            )
        except Exception as e:
            error_detail = str(e) or type(e).__name__
            logger.warning(
                "tool_executor.error",
                tool_name=call.name,
                error_type=type(e).__name__,
                error=error_detail,
            )
            return self._failure(
                call, error_detail, execution_time=time.monotonic() - start_time
            )

        result = _stringify(raw)
        if len(result) > self._max_output_length:
            keep = self._max_output_length - 100
            result = (
                result[:keep]
                + f"\n\n[Output truncated: {len(result)} chars total, showing first {keep}]"
            )

        elapsed = time.monotonic() - start_time
        self._total_successes += 1
        logger.info(
            "tool_executor.success",
            tool_name=call.name,
            elapsed=round(elapsed, 3),
            result_length=len(result),
        )
        return ToolExecutionResult(
            tool_call_id=call.id,
            tool_name=call.name,
            success=True,
            result=result,
            execution_time=elapsed,
        )

    async def _execute_sync_handler(
        self,
        handler: Callable[..., Any],
        tool_input: dict[str, Any],
        timeout: Optional[float],
    ) -> Any:
        """
        Execute a synchronous handler in a dedicated daemon thread.

        A handler that overruns its timeout is abandoned, not killed; its
        slot is released so it cannot starve later calls.
        """
        if self._sync_slot is None:
            self._sync_slot = asyncio.BoundedSemaphore(self._max_concurrent_sync)
        slot = self._sync_slot
        await asyncio.wait_for(slot.acquire(), timeout=timeout)

        loop = asyncio.get_running_loop()
        done = asyncio.Event()
        result_box: dict[str, Any] = {}
        released = threading.Event()

        def _release() -> None:
            if not released.is_set():
                released.set()
                slot.release()

        def _invoke() -> None:
            try:
                result_box["result"] = handler(**tool_input)
            except Exception as exc:
                result_box["error"] = exc
            finally:
                try:
                    loop.call_soon_threadsafe(_release)
                    loop.call_soon_threadsafe(done.set)
                except RuntimeError:
                    # loop closed while the handler was still running
                    pass

        try:
            threading.Thread(target=_invoke, daemon=True).start()
        except RuntimeError:
            _release()
            raise

        try:
            await asyncio.wait_for(done.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            _release()
            raise

        if "error" in result_box:
            raise result_box["error"]
        return result_box.get("result")

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_executions": self._total_executions,
            "successes": self._total_successes,
            "failures": self._total_failures,
        }
