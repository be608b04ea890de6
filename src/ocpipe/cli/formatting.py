"""Rich formatting helpers for the ocpipe CLI.

Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ocpipe.prompts.predict import dump_json

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ocpipe.models.state import BaseState


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def format_checkpoint_table(rows: Sequence[tuple[str, BaseState | None]], console: Console) -> None:
    """Display checkpoints as (session id, state) rows."""
    if not rows:
        console.print("[dim]No checkpoints.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Session", style="yellow")
    table.add_column("Phase", style="cyan")
    table.add_column("Steps", justify="right", style="green")
    table.add_column("Started")

    for session_id, state in rows:
        if state is None:
            table.add_row(escape(session_id), "-", "-", "-")
            continue
        table.add_row(
            escape(session_id),
            escape(state.phase),
            str(len(state.steps)),
            state.started_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


def format_state(name: str, state: BaseState, console: Console, *, verbose: bool = False) -> None:
    """Display a state summary followed by its steps."""
    console.print(f"[bold]{escape(name)}[/bold] [yellow]{escape(state.session_id)}[/yellow]")
    console.print(f"  Phase:         [cyan]{escape(state.phase)}[/cyan]")
    console.print(f"  Started:       {state.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
    console.print(f"  Agent session: {escape(state.agent_session_id or '-')}")
    console.print(f"  Steps:         {len(state.steps)}")
    if state.sub_pipelines:
        names = ", ".join(record.name for record in state.sub_pipelines)
        console.print(f"  Sub-pipelines: {escape(names)}")

    if not state.steps:
        console.print("[dim]No steps recorded.[/dim]")
        return

    console.print()
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Step", style="cyan")
    table.add_column("Attempt", justify="right")
    table.add_column("Duration", justify="right", style="green")
    table.add_column("Model")
    table.add_column("Session", style="yellow")

    for i, record in enumerate(state.steps, start=1):
        result = record.result
        table.add_row(
            str(i),
            escape(record.step_name),
            str(result.attempt),
            f"{result.duration:.0f}ms",
            escape(str(result.model)),
            escape(result.session_id or "-"),
        )
    console.print(table)

    if verbose:
        for i, record in enumerate(state.steps, start=1):
            console.print()
            console.print(f"[cyan]Step {i}: {escape(record.step_name)}[/cyan]")
            console.print(escape(dump_json(record.result.data)), highlight=False)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
