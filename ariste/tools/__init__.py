"""Tool system — what the model can ask the runtime to do."""
from ariste.tools.executor import ToolExecutionResult, ToolExecutor
from ariste.tools.registry import ToolDefinition, ToolRegistry

__all__ = ["ToolRegistry", "ToolDefinition", "ToolExecutor", "ToolExecutionResult"]
