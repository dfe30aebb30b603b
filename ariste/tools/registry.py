"""
Tool Registry: the catalog of capabilities an agent can offer the model.

Every tool is registered here with its JSON Schema parameter definition,
description, and execution handler. The registry serves two purposes:

1. DISCOVERY: building the ``tools`` array sent with each chat request, in
   the function-calling shape the endpoint expects.

2. DISPATCH: mapping the ``name`` of a requested tool call to the handler
   that runs it (see ``ariste.tools.executor``).

Registration happens once at startup. After that the registry is only read,
so a single instance is safely shared by the top-level agent and every
concurrently running subagent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ToolDefinition:
    """
    A registered tool with its schema, description, and handler.

    ``parameters`` is the JSON Schema object sent to the model verbatim.
    ``handler`` receives the decoded arguments as keyword arguments and
    returns the result text; it may be sync or async. A tool with no handler
    is a structural tool (the delegation tool) that the agent loop intercepts
    before dispatch.
    """
    name: str
    description: str
    parameters: dict[str, Any]
    handler: Optional[Callable[..., Any]] = None
    category: str = "general"
    enabled: bool = True
    timeout: Optional[float] = None       # seconds; None = executor default

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool name must not be empty")
        schema = dict(self.parameters or {})
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        self.parameters = schema

    def to_api_format(self) -> dict[str, Any]:
        """
        Convert to the shape that goes into the request's ``tools`` array:

        {"type": "function",
         "function": {"name": ..., "description": ..., "parameters": {...}}}
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """
    Ordered registry of the tools available to an agent.

    Iteration order is registration order, and that order is preserved in the
    ``tools`` array sent to the model.
    """

    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: ToolDefinition, *, allow_override: bool = False) -> None:
        """Register a tool, blocking accidental name collisions by default."""
        if tool.name in self._tools and not allow_override:
            raise ValueError(
                f"Tool '{tool.name}' is already registered. "
                "Use allow_override=True for an explicit replacement."
            )
        self._tools[tool.name] = tool
        logger.debug("tool_registry.registered", name=tool.name, category=tool.category)

    def unregister(self, name: str) -> bool:
        if name in self._tools:
            del self._tools[name]
            logger.debug("tool_registry.unregistered", name=name)
            return True
        return False

    def get(self, name: str) -> Optional[ToolDefinition]:
        """Look up a tool by exact name."""
        return self._tools.get(name)

    def get_api_tools(self, exclude: Iterable[str] = ()) -> list[dict[str, Any]]:
        """Generate the ``tools`` array for a chat request."""
        excluded = set(exclude)
        return [
            tool.to_api_format()
            for tool in self._tools.values()
            if tool.enabled and tool.name not in excluded
        ]

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[dict[str, Any]]:
        """List all registered tools with metadata."""
        return [
            {
                "name": tool.name,
                "category": tool.category,
                "enabled": tool.enabled,
                "structural": tool.handler is None,
            }
            for tool in self._tools.values()
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
