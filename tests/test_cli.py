"""Tests for ariste/cli/ — Click-based CLI commands."""

from __future__ import annotations

import json

import pytest
import structlog
from click.testing import CliRunner

from ariste.agent import Agent
from ariste.cli.app import build_config, cli
from ariste.cli.formatters import ConsoleObserver, build_table, get_console
from ariste.errors import ChatTransportError

from conftest import ScriptedClient, reply


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _patch_agent(monkeypatch, registry, client: ScriptedClient) -> None:
    def _build(obj):
        return Agent(obj["config"], registry=registry, client=client)

    monkeypatch.setattr("ariste.cli.app.build_agent", _build)


class TestBuildConfig:
    def test_overrides(self) -> None:
        config = build_config(model="llama3", base_url="http://box:1234/", think=True)
        assert config.chat.model == "llama3"
        assert config.chat.url == "http://box:1234/api/chat"
        assert config.chat.think is True

    def test_no_overrides_keeps_defaults(self) -> None:
        assert build_config().chat.think is False


class TestRoles:
    def test_table(self, runner) -> None:
        result = runner.invoke(cli, ["--no-color", "roles"], obj={})
        assert result.exit_code == 0
        assert "code-review" in result.output
        assert "test-runner" in result.output

    def test_json(self, runner) -> None:
        result = runner.invoke(cli, ["--json", "roles"], obj={})
        assert result.exit_code == 0
        roles = json.loads(result.output)
        assert [r["name"] for r in roles][:2] == ["general-purpose", "explore"]
        plan = next(r for r in roles if r["name"] == "plan")
        assert plan["uses_tools"] is False


class TestAsk:
    def test_quiet_prints_answer(self, runner, monkeypatch, registry) -> None:
        _patch_agent(monkeypatch, registry, ScriptedClient([reply("42")]))
        result = runner.invoke(cli, ["-q", "ask", "meaning of life?"], obj={})
        assert result.exit_code == 0
        assert result.output.strip() == "42"

    def test_json_output(self, runner, monkeypatch, registry) -> None:
        _patch_agent(monkeypatch, registry, ScriptedClient([reply("hi")]))
        result = runner.invoke(cli, ["--json", "ask", "hello"], obj={})
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["text"] == "hi"
        assert payload["iterations"] == 1
        assert payload["tools_used"] == []

    def test_error_becomes_click_exception(self, runner, monkeypatch, registry) -> None:
        def _fail(client, history):
            raise ChatTransportError("endpoint down")

        _patch_agent(monkeypatch, registry, ScriptedClient(responder=_fail))
        result = runner.invoke(cli, ["-q", "ask", "hello"], obj={})
        assert result.exit_code == 1
        assert "endpoint down" in result.output


class TestDelegate:
    def test_prints_report(self, runner, monkeypatch, registry) -> None:
        _patch_agent(monkeypatch, registry, ScriptedClient([reply("found it")]))
        result = runner.invoke(cli, ["-q", "delegate", "Explore", "find", "look for it"], obj={})
        assert result.exit_code == 0
        assert result.output.startswith("=== Subagent Task Complete ===")
        assert '"result": "found it"' in result.output

    def test_unknown_role_is_rejected_by_click(self, runner) -> None:
        result = runner.invoke(cli, ["delegate", "wizard", "d", "p"], obj={})
        assert result.exit_code == 2


class TestSwarm:
    def test_runs_tasks_from_file(self, runner, monkeypatch, registry, tmp_path) -> None:
        tasks_file = tmp_path / "tasks.json"
        tasks_file.write_text(json.dumps([
            {"role": "explore", "description": "one", "prompt": "p"},
            {"role": "plan", "description": "two", "prompt": "p"},
        ]))

        def _respond(client, history):
            return reply(history[-1].content.split("\n", 1)[0])

        _patch_agent(monkeypatch, registry, ScriptedClient(responder=_respond))
        result = runner.invoke(cli, ["--json", "swarm", str(tasks_file)], obj={})

        assert result.exit_code == 0
        records = json.loads(result.output)
        assert [r["result_text"] for r in records] == ["Task: one", "Task: two"]
        assert all(r["status"] == "completed" for r in records)

    def test_invalid_file_is_reported(self, runner, tmp_path) -> None:
        tasks_file = tmp_path / "tasks.json"
        tasks_file.write_text(json.dumps([{"role": "wizard"}]))
        result = runner.invoke(cli, ["swarm", str(tasks_file)], obj={})
        assert result.exit_code == 1
        assert "Invalid tasks file" in result.output


class TestFormatters:
    def test_get_console(self) -> None:
        assert get_console(no_color=True) is not None

    def test_build_table(self) -> None:
        table = build_table("Roles", ["Role", "Tools"], [["plan", "no"]])
        assert table.row_count == 1

    def test_console_observer_renders_events(self) -> None:
        console = get_console(no_color=True)
        observer = ConsoleObserver(console)
        with console.capture() as capture:
            observer.on_content("Hello")
            observer.on_stream_end()
        assert "Hello" in capture.get()
        assert observer.streamed is True


class TestLogging:
    def test_commands_configure_logging_off_stdout(self, runner, monkeypatch, registry) -> None:
        _patch_agent(monkeypatch, registry, ScriptedClient([reply("clean")]))
        result = runner.invoke(cli, ["--json", "ask", "hello"], obj={})
        assert result.exit_code == 0
        assert structlog.is_configured()
        # the whole of stdout is one JSON document, with no log lines mixed in
        assert json.loads(result.output)["text"] == "clean"
