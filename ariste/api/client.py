"""
Chat Client: sends a message history to the chat endpoint and returns the
decoded response.

One client instance carries one configuration: endpoint, model, streaming and
reasoning flags, and an optional set of tool schemas. Clients are never
mutated after construction. A caller that needs a different configuration
(a subagent without tools, another model) derives a new client with
``with_tools`` / ``without_tools`` / ``with_model``.

The HTTP layer is httpx. A custom ``transport`` can be injected, which is how
the test suite substitutes ``httpx.MockTransport`` for a live endpoint.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence, Union

import httpx
import structlog

from ariste.api.decoder import StreamDecoder, StreamObserver
from ariste.config import ChatConfig
from ariste.conversation import Conversation
from ariste.errors import ChatTransportError
from ariste.harness.retry import RetryConfig, with_retries
from ariste.types import DecodedResponse, Message

logger = structlog.get_logger(__name__)

MessageSource = Union[Conversation, Sequence[Message]]


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a ``Retry-After`` header; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class ChatClient:
    """Client for an Ollama-style ``/api/chat`` endpoint."""

    def __init__(
        self,
        config: ChatConfig,
        tools: Optional[Iterable[dict[str, Any]]] = None,
        observer: Optional[StreamObserver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        model: Optional[str] = None,
    ):
        self._config = config
        self._tools: tuple[dict[str, Any], ...] = tuple(tools or ())
        self._observer = observer if config.verbose else None
        self._transport = transport
        self._model = model or config.model
        self._retry_config = RetryConfig(
            max_retries=config.retry_max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    # ---- derived clients ----

    def _derive(self, **overrides: Any) -> "ChatClient":
        params: dict[str, Any] = {
            "config": self._config,
            "tools": self._tools,
            "observer": self._observer,
            "transport": self._transport,
            "model": self._model,
        }
        params.update(overrides)
        return ChatClient(**params)

    def with_tools(self, tools: Iterable[dict[str, Any]]) -> "ChatClient":
        return self._derive(tools=tuple(tools))

    def without_tools(self) -> "ChatClient":
        return self._derive(tools=())

    def with_model(self, model: str) -> "ChatClient":
        return self._derive(model=model or self._model)

    def with_observer(self, observer: Optional[StreamObserver]) -> "ChatClient":
        return self._derive(observer=observer)

    # ---- properties ----

    @property
    def config(self) -> ChatConfig:
        return self._config

    @property
    def model(self) -> str:
        return self._model

    @property
    def tools(self) -> tuple[dict[str, Any], ...]:
        return self._tools

    @property
    def has_tools(self) -> bool:
        return bool(self._tools)

    @property
    def tool_names(self) -> list[str]:
        return [t.get("function", {}).get("name", "") for t in self._tools]

    # ---- requests ----

    def build_payload(self, messages: MessageSource) -> dict[str, Any]:
        """Build the JSON request body for one chat call."""
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [message.to_api_format() for message in messages],
            "stream": self._config.stream,
            "think": self._config.think,
        }
        if self._tools:
            payload["tools"] = list(self._tools)
        return payload

    async def send(self, messages: MessageSource) -> DecodedResponse:
        """
        Send the full message history and return the decoded reply.

        Raises:
            ChatTransportError: the endpoint was unreachable, answered with a
                non-success status, or reported an error mid-stream.
            StreamDecodeError: a chunk could not be decoded (strict mode only).
        """
        payload = self.build_payload(messages)
        logger.info(
            "chat_client.request",
            url=self._config.url,
            model=self._model,
            messages=len(payload["messages"]),
            tools=len(self._tools),
        )

        async def _attempt() -> DecodedResponse:
            return await self._post(payload)

        response = await with_retries(_attempt, config=self._retry_config)
        logger.info(
            "chat_client.response",
            model=self._model,
            content_chars=len(response.content),
            tool_calls=len(response.tool_calls or ()),
        )
        return response

    async def send_prompt(self, prompt: str) -> DecodedResponse:
        """Convenience wrapper: send a single user message."""
        return await self.send([Message.user(prompt)])

    async def _post(self, payload: dict[str, Any]) -> DecodedResponse:
        url = self._config.url
        timeout = httpx.Timeout(self._config.request_timeout_seconds)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=timeout) as http:
                async with http.stream("POST", url, json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ChatTransportError(
                            f"Chat endpoint returned HTTP {response.status_code}: "
                            f"{body[:200]}",
                            status_code=response.status_code,
                            retry_after=parse_retry_after(response.headers.get("retry-after")),
                        )
                    decoder = StreamDecoder(
                        observer=self._observer,
                        lenient=self._config.lenient_decoding,
                    )
                    return await decoder.decode(response.aiter_bytes())
        except httpx.HTTPError as e:
            raise ChatTransportError(f"Chat request to {url} failed: {e}") from e

    def __repr__(self) -> str:
        return (
            f"ChatClient(url={self._config.url}, model={self._model}, "
            f"tools={len(self._tools)})"
        )
