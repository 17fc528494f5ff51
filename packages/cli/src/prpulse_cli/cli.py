"""CLI entry point for prpulse.

Commands:
  serve    — poll GitHub in the background and serve the dashboard API
  prs      — print the ranked PRs from the store
  bury     — push a PR to the bottom until it changes
  unbury   — undo bury
  login    — validate a GitHub token and store it
  logout   — forget the stored token
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console

from prpulse_cli.commands.bury import bury_cmd, unbury_cmd
from prpulse_cli.commands.login import login_cmd, logout_cmd
from prpulse_cli.commands.prs import prs_cmd
from prpulse_cli.commands.serve import serve_cmd

console = Console()


def _version() -> str:
    try:
        return importlib.metadata.version("prpulse")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _build_store(config: dict):
    """Instantiate the configured store from .prpulse.yml settings.

    Store selection:
      store: demo   → DemoStore   (sample data, nothing persisted)
      (default)     → SQLiteStore (store_path, or the per-user cache dir)

    This factory lives in cli.py so neither prpulse_core nor prpulse_store
    know about the CLI config format.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "demo":
        from prpulse_store.demo import DemoStore

        return DemoStore()

    if store_type != "sqlite":
        console.print(f"[yellow]Unknown store {store_type!r}, using sqlite.[/yellow]")

    from prpulse_store.sqlite import SQLiteStore, default_db_path

    return SQLiteStore(db_path=config.get("store_path") or default_db_path())


@click.group()
@click.version_option(version=_version(), prog_name="prpulse")
@click.option(
    "--config",
    "config_path",
    default=".prpulse.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRPULSE_CONFIG",
)
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
@click.option("--demo", is_flag=True, help="Use the demo store with sample PRs.")
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str, demo: bool):
    """Rank the GitHub pull requests that need your attention."""
    from prpulse_core.config import load_config

    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path, cli_overrides={"store": "demo" if demo else None})
    except ValueError as e:
        raise click.UsageError(str(e))

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.obj["version"] = _version()
    ctx.call_on_close(store.close)


main.add_command(serve_cmd)
main.add_command(prs_cmd)
main.add_command(bury_cmd)
main.add_command(unbury_cmd)
main.add_command(login_cmd)
main.add_command(logout_cmd)
