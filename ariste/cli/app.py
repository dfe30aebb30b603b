"""CLI application — Click-based one-shot commands for Ariste.

The interactive REPL is not part of this package; every command here runs a
single turn or a single delegation and exits.
"""

from __future__ import annotations

import asyncio
import functools
import json
from pathlib import Path
from typing import Any, Optional

import click
from pydantic import TypeAdapter, ValidationError

from ariste.agent import Agent
from ariste.cli.formatters import ConsoleObserver, build_table, get_console
from ariste.config import AristeConfig, ChatConfig
from ariste.errors import AristeError
from ariste.orchestration.models import ROLE_PROFILES, SubagentRole, SubagentTask


def async_cmd(func):
    """Decorator to run an async Click command via asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def build_config(
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    think: Optional[bool] = None,
) -> AristeConfig:
    """Load configuration once, applying command-line overrides on top."""
    overrides: dict[str, Any] = {}
    if model:
        overrides["model"] = model
    if base_url:
        overrides["base_url"] = base_url
    if think is not None:
        overrides["think"] = think
    return AristeConfig(chat=ChatConfig(**overrides))


def build_agent(obj: dict[str, Any]) -> Agent:
    console = get_console(no_color=obj["no_color"])
    observer = None if obj["quiet"] or obj["json"] else ConsoleObserver(console)
    return Agent(
        obj["config"],
        stream_observer=observer,
        tool_observer=observer,
        orchestration_observer=observer,
    )


@click.group()
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output")
@click.option("--quiet", "-q", is_flag=True, help="Only print the final answer")
@click.option("--no-color", is_flag=True, help="Disable ANSI colors")
@click.option("--model", "-m", default=None, help="Model name (overrides ARISTE_MODEL)")
@click.option("--base-url", default=None, help="Chat endpoint base URL (overrides ARISTE_BASE_URL)")
@click.option("--think/--no-think", default=None, help="Ask the model to reason before answering")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    no_color: bool,
    model: Optional[str],
    base_url: Optional[str],
    think: Optional[bool],
) -> None:
    """Ariste - a tool-using agent with delegating subagents."""
    from ariste.main import configure_logging

    # Log events go through stdlib logging, never to the command's stdout.
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["json"] = json_output
    ctx.obj["quiet"] = quiet
    ctx.obj["no_color"] = no_color
    ctx.obj["config"] = build_config(model=model, base_url=base_url, think=think)


@cli.command("ask")
@click.argument("prompt")
@click.pass_obj
@async_cmd
async def ask_cmd(obj: dict[str, Any], prompt: str) -> None:
    """Run one turn and print the final answer."""
    agent = build_agent(obj)
    try:
        result = await agent.invoke(prompt)
    except AristeError as e:
        raise click.ClickException(str(e)) from None

    if obj["json"]:
        click.echo(json.dumps({
            "text": result.text,
            "iterations": result.iterations,
            "tools_used": result.tool_names_used,
            "elapsed_seconds": round(result.elapsed_seconds, 3),
        }, indent=2, ensure_ascii=False))
    elif obj["quiet"] or not agent.config.chat.verbose:
        click.echo(result.text)


@cli.command("delegate")
@click.argument("role", type=click.Choice(SubagentRole.names(), case_sensitive=False))
@click.argument("description")
@click.argument("prompt")
@click.option("--tools", "include_tools", is_flag=True, help="Let the subagent use tools")
@click.pass_obj
@async_cmd
async def delegate_cmd(
    obj: dict[str, Any],
    role: str,
    description: str,
    prompt: str,
    include_tools: bool,
) -> None:
    """Hand one task to a subagent and print its report."""
    agent = build_agent(obj)
    try:
        report = await agent.spawn_task(role, description, prompt, include_tools=include_tools)
    except AristeError as e:
        raise click.ClickException(str(e)) from None
    click.echo(report)


@cli.command("swarm")
@click.argument("tasks_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--all-or-nothing", is_flag=True, help="Fail if any task fails")
@click.pass_obj
@async_cmd
async def swarm_cmd(obj: dict[str, Any], tasks_file: Path, all_or_nothing: bool) -> None:
    """Run the subagent tasks listed in a JSON file concurrently.

    The file holds a list of objects with ``role``, ``description``,
    ``prompt`` and optionally ``include_tools``.
    """
    try:
        tasks = TypeAdapter(list[SubagentTask]).validate_json(tasks_file.read_bytes())
    except ValidationError as e:
        raise click.ClickException(f"Invalid tasks file: {e}") from None

    agent = build_agent(obj)
    try:
        results = await agent.spawn_tasks(tasks, all_or_nothing=all_or_nothing)
    except AristeError as e:
        raise click.ClickException(str(e)) from None

    if obj["json"]:
        click.echo(json.dumps(
            [r.model_dump(mode="json", exclude={"started_at", "finished_at"}) for r in results],
            indent=2,
            ensure_ascii=False,
        ))
        return
    for result in results:
        click.echo(result.to_report())


@cli.command("roles")
@click.pass_obj
def roles_cmd(obj: dict[str, Any]) -> None:
    """List the subagent roles."""
    if obj["json"]:
        click.echo(json.dumps(
            [
                {
                    "name": profile.role.value,
                    "description": profile.description,
                    "uses_tools": profile.uses_tools,
                    "system_prompt": profile.system_prompt,
                }
                for profile in ROLE_PROFILES.values()
            ],
            indent=2,
        ))
        return
    rows = [
        [profile.role.value, profile.description, "yes" if profile.uses_tools else "no"]
        for profile in ROLE_PROFILES.values()
    ]
    get_console(no_color=obj["no_color"]).print(
        build_table("Subagent roles", ["Role", "Description", "Tools"], rows)
    )
