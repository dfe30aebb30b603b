"""CLI formatters — a Rich console observer and table helpers."""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ariste.api.decoder import StreamObserver
from ariste.harness.loop import ToolObserver
from ariste.orchestration.models import SubagentResult, SubagentTask
from ariste.orchestration.orchestrator import OrchestrationObserver
from ariste.types import ToolCallRequest

_PREVIEW_CHARS = 300


def get_console(no_color: bool = False) -> Console:
    """Get a Rich Console, optionally with color disabled."""
    return Console(no_color=no_color, highlight=False)


def _preview(text: str) -> str:
    text = text.strip()
    if len(text) > _PREVIEW_CHARS:
        return text[:_PREVIEW_CHARS] + "..."
    return text


class ConsoleObserver(StreamObserver, ToolObserver, OrchestrationObserver):
    """Renders streaming text, tool calls and subagent progress to a console."""

    def __init__(self, console: Console, show_thinking: bool = True):
        self._console = console
        self._show_thinking = show_thinking
        self.streamed = False

    # ---- stream ----

    def on_thinking_start(self) -> None:
        if self._show_thinking:
            self._console.print("[dim]thinking...[/dim]")

    def on_thinking_line(self, line: str) -> None:
        if self._show_thinking:
            self._console.print(f"[dim]  {escape(line)}[/dim]")

    def on_content(self, fragment: str) -> None:
        self.streamed = True
        self._console.print(fragment, end="", markup=False)

    def on_stream_end(self) -> None:
        if self.streamed:
            self._console.print()

    # ---- tools ----

    def on_tool_start(self, call: ToolCallRequest) -> None:
        if isinstance(call.arguments, dict) and "description" in call.arguments:
            detail = f'"{call.arguments["description"]}"'
        else:
            detail = str(call.arguments)
        self._console.print(f"[cyan]> {escape(call.name)}[/cyan] [dim]{escape(_preview(detail))}[/dim]")

    def on_tool_result(self, call: ToolCallRequest, content: str) -> None:
        self._console.print(f"[dim]{escape(_preview(content))}[/dim]")

    def on_tool_error(self, call: ToolCallRequest, error: str) -> None:
        self._console.print(f"[red]! {escape(call.name)}: {escape(error)}[/red]")

    # ---- subagents ----

    def on_subagent_start(self, result: SubagentResult) -> None:
        self._console.print(
            f"[magenta]Spawning {escape(result.task.profile.description)} subagent:[/magenta] "
            f"{escape(result.task.description)}"
        )

    def on_subagent_complete(self, result: SubagentResult) -> None:
        seconds = result.duration_ms / 1000
        if result.succeeded:
            self._console.print(f"[green]Subagent completed in {seconds:.2f}s[/green]")
        else:
            self._console.print(
                f"[red]Subagent failed after {seconds:.2f}s: {escape(result.error or '')}[/red]"
            )

    def on_swarm_start(self, tasks: Sequence[SubagentTask]) -> None:
        self._console.print(f"[magenta]Spawning {len(tasks)} subagent tasks concurrently...[/magenta]")

    def on_swarm_complete(self, results: Sequence[SubagentResult], elapsed_seconds: float) -> None:
        self._console.print(
            f"[green]All {len(results)} subagent tasks finished in {elapsed_seconds:.2f}s[/green]"
        )


def build_table(title: str, columns: list[str], rows: list[list[Any]]) -> Table:
    """Build a Rich table with standard styling."""
    table = Table(title=title, show_header=True, header_style="bold")
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*(str(v) for v in row))
    return table
