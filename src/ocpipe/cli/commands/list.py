"""ocpipe list -- show the checkpoints of a pipeline."""

from __future__ import annotations

import click

from ocpipe.cli.formatting import format_checkpoint_table, format_error, get_console


@click.command("list")
@click.argument("name")
@click.pass_context
def list_checkpoints(ctx: click.Context, name: str) -> None:
    """List checkpoints for pipeline NAME, newest first.

    Unreadable checkpoint files are listed with blank columns.
    """
    from ocpipe.checkpoint import CheckpointStore
    from ocpipe.exceptions import CheckpointError

    console = get_console()
    try:
        store = CheckpointStore(ctx.obj["checkpoint_dir"])
        rows = []
        for path in store.list(name):
            try:
                state = store.load_path(path)
            except CheckpointError:
                state = None
            rows.append((store.session_id_of(name, path), state))
        format_checkpoint_table(rows, console)
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
