# ariste/config.py
"""
Configuration for the Ariste agent runtime.

All configuration flows through this module. Values are loaded from environment
variables (via .env file) and validated with Pydantic. ``AristeConfig`` is built
once at startup and handed explicitly to the chat client, the agent loop and
the subagent orchestrator; nothing re-reads settings mid-conversation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


# Resolve .env relative to the project root (one level above ariste/ package),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

DEFAULT_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_CHAT_PATH = "/api/chat"
DEFAULT_MODEL = "qwen3"


class ChatConfig(BaseSettings):
    """Configuration for the chat-completion endpoint."""

    provider: str = Field("ollama", alias="ARISTE_PROVIDER")
    base_url: str = Field(DEFAULT_BASE_URL, alias="ARISTE_BASE_URL")
    chat_path: str = Field(DEFAULT_CHAT_PATH, alias="ARISTE_CHAT_PATH")
    model: str = Field(DEFAULT_MODEL, alias="ARISTE_MODEL")
    stream: bool = Field(True, alias="ARISTE_STREAM")
    think: bool = Field(False, alias="ARISTE_THINK")
    verbose: bool = Field(True, alias="ARISTE_VERBOSE")
    lenient_decoding: bool = Field(True, alias="ARISTE_LENIENT_DECODING")
    # None = wait for the endpoint indefinitely
    request_timeout_seconds: Optional[float] = Field(
        None, alias="ARISTE_REQUEST_TIMEOUT_SECONDS"
    )
    retry_max_retries: int = Field(2, alias="ARISTE_RETRY_MAX_RETRIES")
    retry_base_delay: float = Field(0.5, alias="ARISTE_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(8.0, alias="ARISTE_RETRY_MAX_DELAY")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize(self) -> "ChatConfig":
        self.provider = self.provider.strip().lower() or "ollama"
        self.base_url = (self.base_url.strip() or DEFAULT_BASE_URL).rstrip("/")
        path = self.chat_path.strip() or DEFAULT_CHAT_PATH
        self.chat_path = path if path.startswith("/") else f"/{path}"
        self.model = self.model.strip() or DEFAULT_MODEL
        if self.request_timeout_seconds is not None:
            self.request_timeout_seconds = max(1.0, float(self.request_timeout_seconds))
        self.retry_max_retries = max(0, int(self.retry_max_retries))
        self.retry_base_delay = max(0.0, float(self.retry_base_delay))
        self.retry_max_delay = max(self.retry_base_delay, float(self.retry_max_delay))
        return self

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.chat_path}"


class LoopConfig(BaseSettings):
    """Configuration for the tool-calling loop and tool dispatch."""

    max_tool_iterations: int = Field(5, alias="ARISTE_MAX_TOOL_ITERATIONS")
    tool_default_timeout: Optional[float] = Field(None, alias="ARISTE_TOOL_DEFAULT_TIMEOUT")
    tool_max_output_length: int = Field(25000, alias="ARISTE_TOOL_MAX_OUTPUT_LENGTH")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "LoopConfig":
        self.max_tool_iterations = max(1, int(self.max_tool_iterations))
        if self.tool_default_timeout is not None:
            self.tool_default_timeout = max(0.01, float(self.tool_default_timeout))
        self.tool_max_output_length = max(100, int(self.tool_max_output_length))
        return self


class OrchestrationConfig(BaseSettings):
    """Configuration for subagent spawning and fan-out."""

    max_turns: int = Field(10, alias="ARISTE_SUBAGENT_MAX_TURNS")
    context_messages: int = Field(10, alias="ARISTE_SUBAGENT_CONTEXT_MESSAGES")
    max_concurrent_subagents: int = Field(5, alias="ARISTE_MAX_CONCURRENT_SUBAGENTS")
    max_delegation_depth: int = Field(1, alias="ARISTE_MAX_DELEGATION_DEPTH")
    subagent_model: str = Field("", alias="ARISTE_SUBAGENT_MODEL")  # empty = parent model

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "OrchestrationConfig":
        self.max_turns = max(1, int(self.max_turns))
        self.context_messages = max(0, int(self.context_messages))
        self.max_concurrent_subagents = max(1, int(self.max_concurrent_subagents))
        self.max_delegation_depth = max(1, int(self.max_delegation_depth))
        self.subagent_model = self.subagent_model.strip()
        return self


class AristeConfig:
    """
    Master configuration that composes all subsystem configs.

    This is the single source of truth. Every component receives its config
    from here.
    """

    def __init__(
        self,
        chat: Optional[ChatConfig] = None,
        loop: Optional[LoopConfig] = None,
        orchestration: Optional[OrchestrationConfig] = None,
    ):
        self.chat = chat or ChatConfig()
        self.loop = loop or LoopConfig()
        self.orchestration = orchestration or OrchestrationConfig()

    def __repr__(self) -> str:
        return (
            f"AristeConfig(provider={self.chat.provider}, url={self.chat.url}, "
            f"model={self.chat.model}, max_iterations={self.loop.max_tool_iterations}, "
            f"subagent_turns={self.orchestration.max_turns})"
        )
