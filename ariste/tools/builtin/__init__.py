"""
Built-in tools that ship with Ariste.

``calculator`` is an ordinary tool: a schema plus a handler the executor runs.
``task`` is the delegation tool: it has a schema so the model can ask for it,
but no handler. The agent loop intercepts it and routes the request to the
subagent orchestrator instead of executing it generically.
"""

from __future__ import annotations

from ariste.orchestration.models import SubagentRole
from ariste.tools.builtin.calculator import calculate
from ariste.tools.registry import ToolDefinition, ToolRegistry

DELEGATION_TOOL_NAME = "task"


def calculator_tool() -> ToolDefinition:
    return ToolDefinition(
        name="calculator",
        description="Perform basic mathematical calculations (+, -, *, /)",
        parameters={
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": (
                        "Mathematical expression to evaluate "
                        "(e.g., '2 + 3', '10 * 5', '100 / 4')"
                    ),
                },
            },
            "required": ["expression"],
        },
        handler=calculate,
        category="math",
    )


def delegation_tool() -> ToolDefinition:
    return ToolDefinition(
        name=DELEGATION_TOOL_NAME,
        description=(
            "Launch a specialized subagent to handle complex, multi-step tasks "
            "autonomously. The subagent starts from a fresh conversation, works "
            "on the task on its own and returns its final answer. Subagents "
            "cannot launch further subagents."
        ),
        parameters={
            "type": "object",
            "properties": {
                "subagent_type": {
                    "type": "string",
                    "description": "The type of subagent to launch",
                    "enum": SubagentRole.names(),
                },
                "description": {
                    "type": "string",
                    "description": "A short description (3-5 words) of what the agent will do",
                },
                "prompt": {
                    "type": "string",
                    "description": "The detailed task for the agent to perform",
                },
                "include_tools": {
                    "type": "boolean",
                    "description": (
                        "Whether the subagent may use tools itself (default false). "
                        "Ignored for roles that never use tools."
                    ),
                },
            },
            "required": ["subagent_type", "description", "prompt"],
        },
        category="orchestration",
    )


def register_builtin_tools(registry: ToolRegistry, *, delegation: bool = True) -> None:
    """Register all built-in tools with the registry."""
    registry.register(calculator_tool())
    if delegation:
        registry.register(delegation_tool())
