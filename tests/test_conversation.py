"""Tests for ariste.conversation and the message value types."""

from __future__ import annotations

import dataclasses

import pytest

from ariste.conversation import Conversation, recent_context
from ariste.types import Message, Role, ToolCallRequest


def _request(call_id: str, name: str = "echo") -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name=name, arguments={})


class TestMessage:
    def test_messages_are_immutable(self):
        message = Message.user("hi")
        with pytest.raises(dataclasses.FrozenInstanceError):
            message.content = "changed"

    def test_assistant_without_calls_has_none(self):
        assert Message.assistant("done").tool_calls is None

    def test_tool_call_from_api_keeps_id(self):
        request = ToolCallRequest.from_api(
            {"id": "abc", "function": {"name": "echo", "arguments": {"text": "x"}}}
        )
        assert request == ToolCallRequest(id="abc", name="echo", arguments={"text": "x"})

    def test_undecodable_string_arguments_are_kept(self):
        request = ToolCallRequest.from_api({"function": {"name": "echo", "arguments": "{oops"}})
        assert request.arguments == "{oops"


class TestAppendOrdering:
    def test_messages_keep_insertion_order(self):
        conversation = Conversation()
        conversation.append(Message.system("sys"))
        conversation.append(Message.user("q"))
        conversation.append(Message.assistant("a"))
        assert [m.role for m in conversation] == [Role.SYSTEM, Role.USER, Role.ASSISTANT]
        assert len(conversation) == 3

    def test_tool_result_must_answer_preceding_request(self):
        conversation = Conversation()
        conversation.append(Message.user("q"))
        conversation.append(Message.assistant("", [_request("c1"), _request("c2")]))
        conversation.append(Message.tool("r1", "c1"))
        conversation.append(Message.tool("r2", "c2"))
        assert conversation.last.tool_call_id == "c2"

    def test_tool_result_with_unknown_id_is_rejected(self):
        conversation = Conversation()
        conversation.append(Message.assistant("", [_request("c1")]))
        with pytest.raises(ValueError, match="does not answer"):
            conversation.append(Message.tool("r", "other"))

    def test_tool_result_without_request_is_rejected(self):
        conversation = Conversation([Message.user("q")])
        with pytest.raises(ValueError):
            conversation.append(Message.tool("r", "c1"))

    def test_messages_snapshot_is_a_tuple(self):
        conversation = Conversation([Message.user("q")])
        snapshot = conversation.messages
        conversation.append(Message.assistant("a"))
        assert len(snapshot) == 1

    def test_last_assistant_content_skips_empty(self):
        conversation = Conversation()
        conversation.append(Message.assistant("first"))
        conversation.append(Message.user("again"))
        conversation.append(Message.assistant("", [_request("c1")]))
        assert conversation.last_assistant_content() == "first"

    def test_clear_drops_history(self):
        conversation = Conversation([Message.user("q"), Message.assistant("a")])
        conversation.clear()
        assert len(conversation) == 0
        assert conversation.last is None


class TestRecentContext:
    def test_takes_at_most_limit_and_drops_system(self):
        messages = [Message.system("sys")]
        messages += [Message.user(f"u{i}") for i in range(15)]
        context = recent_context(messages, 10)
        assert [m.content for m in context] == [f"u{i}" for i in range(5, 15)]

    def test_system_messages_inside_window_are_dropped(self):
        messages = [Message.user("a"), Message.system("sys"), Message.user("b")]
        assert [m.content for m in recent_context(messages, 10)] == ["a", "b"]

    def test_orphaned_tool_results_are_dropped(self):
        messages = [
            Message.user("q"),
            Message.assistant("", [_request("c1")]),
            Message.tool("r1", "c1"),
            Message.assistant("answer"),
        ]
        context = recent_context(messages, 2)
        assert [m.role for m in context] == [Role.ASSISTANT]

    def test_context_can_seed_a_fresh_conversation(self):
        source = Conversation()
        source.append(Message.user("q"))
        source.append(Message.assistant("", [_request("c1")]))
        source.append(Message.tool("r1", "c1"))
        source.append(Message.assistant("answer"))
        fresh = Conversation([Message.system("role prompt")])
        fresh.extend(source.recent_context(10))
        assert len(fresh) == 5

    def test_zero_limit_gives_nothing(self):
        assert recent_context([Message.user("q")], 0) == []
