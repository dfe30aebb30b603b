"""
Orchestration data models: the language of delegation.

These models define the contract between a parent agent and the subagents it
delegates to. ``SubagentRole`` and its ``RoleProfile`` are static
configuration. ``SubagentTask`` describes *what* to do, ``SubagentResult``
describes *what happened*.
"""

from __future__ import annotations

import itertools
import json
import time
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TASK_COMPLETE_BANNER = "=== Subagent Task Complete ==="


class SubagentRole(str, Enum):
    """The closed set of subagent roles a task can be delegated to."""

    GENERAL_PURPOSE = "general-purpose"
    EXPLORE = "explore"
    PLAN = "plan"
    CODE_REVIEW = "code-review"
    TEST_RUNNER = "test-runner"

    @classmethod
    def parse(cls, value: "str | SubagentRole") -> "SubagentRole":
        """Resolve a role name, case-insensitively. Raises ValueError if unknown."""
        if isinstance(value, SubagentRole):
            return value
        normalized = str(value).strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        raise ValueError(
            f"Unknown subagent type '{value}'. Valid types are: "
            f"{', '.join(cls.names())}"
        )

    @classmethod
    def names(cls) -> list[str]:
        return [role.value for role in cls]


class RoleProfile(BaseModel):
    """What a role is, how it is primed, and whether it may use tools."""

    model_config = ConfigDict(frozen=True)

    role: SubagentRole
    description: str
    system_prompt: Optional[str] = None
    uses_tools: bool = True


ROLE_PROFILES: dict[SubagentRole, RoleProfile] = {
    SubagentRole.GENERAL_PURPOSE: RoleProfile(
        role=SubagentRole.GENERAL_PURPOSE,
        description="General-purpose agent for complex tasks",
    ),
    SubagentRole.EXPLORE: RoleProfile(
        role=SubagentRole.EXPLORE,
        description="Fast agent for exploring codebases",
        system_prompt=(
            "You are a codebase exploration agent. Your goal is to quickly find "
            "files, search code, and answer questions about the codebase "
            "structure. Be thorough but efficient in your exploration."
        ),
    ),
    SubagentRole.PLAN: RoleProfile(
        role=SubagentRole.PLAN,
        description="Software architect agent for designing implementation plans",
        system_prompt=(
            "You are a software architect agent. Your goal is to design "
            "implementation plans by exploring the codebase and providing "
            "step-by-step plans. Focus on: 1) Understanding existing patterns, "
            "2) Identifying critical files, 3) Considering architectural trade-offs."
        ),
        uses_tools=False,
    ),
    SubagentRole.CODE_REVIEW: RoleProfile(
        role=SubagentRole.CODE_REVIEW,
        description="Code reviewer agent for analyzing code quality",
        system_prompt=(
            "You are a code reviewer agent. Your goal is to analyze code quality, "
            "identify potential bugs, suggest improvements, and ensure best "
            "practices. Focus on: correctness, performance, security, and "
            "maintainability."
        ),
    ),
    SubagentRole.TEST_RUNNER: RoleProfile(
        role=SubagentRole.TEST_RUNNER,
        description="Test runner agent for testing and validation",
        system_prompt=(
            "You are a test runner agent. Your goal is to design and execute "
            "tests, validate functionality, and report issues. Be thorough in "
            "testing edge cases and providing actionable feedback."
        ),
    ),
}


def role_profile(role: "str | SubagentRole") -> RoleProfile:
    return ROLE_PROFILES[SubagentRole.parse(role)]


class SubagentTask(BaseModel):
    """One delegation request. Consumed by the call that runs it."""

    role: SubagentRole = SubagentRole.GENERAL_PURPOSE
    description: str
    prompt: str
    include_context: bool = False
    include_tools: bool = False
    model: str = ""  # empty = orchestrator default

    @property
    def profile(self) -> RoleProfile:
        return ROLE_PROFILES[self.role]

    @property
    def uses_tools(self) -> bool:
        return self.include_tools and self.profile.uses_tools

    def task_statement(self) -> str:
        return f"Task: {self.description}\n\nDetails:\n{self.prompt}"


_subagent_ids = itertools.count(1)


def next_subagent_id() -> int:
    """Process-wide, monotonically increasing subagent execution id."""
    return next(_subagent_ids)


class SubagentResult(BaseModel):
    """Execution record of one subagent task, from pending to a final status."""

    id: int = Field(default_factory=next_subagent_id)
    task: SubagentTask
    status: Literal["pending", "running", "completed", "failed"] = "pending"
    model: str = ""
    used_tools: bool = False
    result_text: str = ""
    error: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def mark_running(self) -> None:
        self.status = "running"
        self.started_at = time.monotonic()

    def mark_completed(self, text: str) -> None:
        self.status = "completed"
        self.result_text = text
        self.finished_at = time.monotonic()

    def mark_failed(self, error: str) -> None:
        self.status = "failed"
        self.error = error
        self.finished_at = time.monotonic()

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    @property
    def duration_ms(self) -> int:
        if self.started_at is None:
            return 0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return int((end - self.started_at) * 1000)

    def to_report(self) -> str:
        """Format the result block handed back to the parent conversation."""
        payload = {
            "task": self.task.description,
            "agent_type": self.task.profile.description,
            "model": self.model,
            "duration_ms": self.duration_ms,
            "used_tools": self.used_tools,
        }
        if self.succeeded:
            payload["result"] = self.result_text
        else:
            payload["error"] = self.error or "Subagent failed"
        return f"{TASK_COMPLETE_BANNER}\n{json.dumps(payload, indent=2, ensure_ascii=False)}"
