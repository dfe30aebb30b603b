"""
Ariste — a tool-using agent runtime over a chat-completion endpoint.

A single streaming chat endpoint is turned into a multi-turn assistant that
can call tools and delegate bounded sub-tasks to independently configured
subagents.

Layers (bottom to top):
    1. Transport decoder and chat client (api/)
    2. Conversation state and shared types
    3. Tool registry and executor (tools/)
    4. Agentic loop (harness/)
    5. Subagent orchestration (orchestration/)
    6. Agent facade and CLI
"""

__version__ = "0.1.0"
