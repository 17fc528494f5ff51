"""bury / unbury commands — hide a PR until it changes."""

from __future__ import annotations

import click
from rich.console import Console

console = Console()


@click.command("bury")
@click.option("--url", required=True, help="URL of the pull request.")
@click.pass_context
def bury_cmd(ctx, url: str):
    """Push a PR to the bottom of the list.

    The PR resurfaces by itself as soon as it is updated on GitHub.
    """
    if not ctx.obj["store"].bury(url):
        raise click.UsageError(f"No stored PR with URL {url}.")
    console.print(f"[green]Buried {url}[/green]")


@click.command("unbury")
@click.option("--url", required=True, help="URL of the pull request.")
@click.pass_context
def unbury_cmd(ctx, url: str):
    """Undo `prpulse bury`."""
    if not ctx.obj["store"].unbury(url):
        raise click.UsageError(f"No stored PR with URL {url}.")
    console.print(f"[green]Unburied {url}[/green]")
