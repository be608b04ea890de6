"""ocpipe CLI -- inspect pipeline checkpoints from the terminal.

This module is NEVER imported from ocpipe/__init__.py.
It is only loaded via the ``ocpipe`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

try:
    import click
except ImportError:
    raise ImportError(
        "CLI dependencies not installed. Install with: pip install ocpipe[cli]"
    ) from None


@click.group()
@click.option(
    "--checkpoint-dir",
    default="./ckpt",
    envvar="OCPIPE_CHECKPOINT_DIR",
    show_default=True,
    help="Directory holding checkpoint files.",
)
@click.pass_context
def cli(ctx: click.Context, checkpoint_dir: str) -> None:
    """ocpipe: inspect checkpointed pipeline runs."""
    ctx.ensure_object(dict)
    ctx.obj["checkpoint_dir"] = checkpoint_dir


# Register subcommands after cli group is defined
from ocpipe.cli.commands.list import list_checkpoints  # noqa: E402
from ocpipe.cli.commands.show import show  # noqa: E402

cli.add_command(list_checkpoints)
cli.add_command(show)
