"""
Subagent Orchestration — delegating bounded tasks to fresh agents.

A subagent is an ephemeral agentic loop with its own conversation and its own
chat client. It shares nothing mutable with its parent and cannot delegate
further. Several subagents can run concurrently; their results come back in
the order they were requested.
"""

from __future__ import annotations

from ariste.orchestration.models import (
    ROLE_PROFILES,
    RoleProfile,
    SubagentResult,
    SubagentRole,
    SubagentTask,
)

__all__ = [
    "ROLE_PROFILES",
    "RoleProfile",
    "SubagentResult",
    "SubagentRole",
    "SubagentTask",
]
