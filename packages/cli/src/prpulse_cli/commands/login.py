"""login / logout commands — manage the stored GitHub token.

`prpulse serve` never reads tokens from the environment: it polls with the
credential stored here. After a client error (revoked or expired token)
polling stops for good, and running `prpulse login` with a new token and
restarting `serve` is how it is brought back.
"""

from __future__ import annotations

import click
from rich.console import Console

from prpulse_core.config import validate_username
from prpulse_core.errors import FetchError
from prpulse_core.gh.pull_requests import viewer

console = Console()


@click.command("login")
@click.option("--token", default=None, help="GitHub personal access token. Defaults to GITHUB_PAT/GITHUB_TOKEN or gh CLI.")
@click.option("--user", "username", default=None, help="GitHub username. Looked up from the token when omitted.")
@click.pass_context
def login_cmd(ctx, token: str | None, username: str | None):
    """Validate a GitHub token and store it for polling."""
    from prpulse_cli.auth import resolve_github_token

    token = token or resolve_github_token()
    if not token:
        token = click.prompt("GitHub personal access token", hide_input=True)

    # Always ask GitHub: it proves the token works and tells us when it expires.
    try:
        login, expires_at = viewer(token)
    except FetchError as e:
        raise click.UsageError(f"Could not validate the token with GitHub: {e}")

    username = username or ctx.obj["config"].get("github_user") or login
    try:
        validate_username(username)
    except ValueError as e:
        raise click.UsageError(str(e))
    if username != login:
        console.print(f"[yellow]Token belongs to {login}, scoring PRs for {username}.[/yellow]")

    ctx.obj["store"].store_credential(token, username, expires_at=expires_at)
    console.print(f"[green]Logged in as [bold]{username}[/bold][/green]")
    if expires_at is not None:
        console.print(f"[dim]Token expires {expires_at:%Y-%m-%d}.[/dim]")


@click.command("logout")
@click.pass_context
def logout_cmd(ctx):
    """Forget the stored GitHub token."""
    ctx.obj["store"].clear_credential()
    console.print("[green]Logged out.[/green]")
