"""ocpipe show -- show one checkpointed run."""

from __future__ import annotations

import click

from ocpipe.cli.formatting import format_error, format_state, get_console


@click.command()
@click.argument("name")
@click.argument("session_id")
@click.option("-v", "--verbose", is_flag=True, help="Print each step's data as JSON.")
@click.pass_context
def show(ctx: click.Context, name: str, session_id: str, verbose: bool) -> None:
    """Show the state of pipeline NAME at SESSION_ID."""
    from ocpipe.checkpoint import CheckpointStore

    console = get_console()
    try:
        state = CheckpointStore(ctx.obj["checkpoint_dir"]).load(name, session_id)
        if state is None:
            format_error(f"No checkpoint for {name}/{session_id}", console)
            raise SystemExit(1)
        format_state(name, state, console, verbose=verbose)
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
