"""prs command — display the ranked PRs from the store."""

from __future__ import annotations

from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

from prpulse_core.scoring import rank_pull_requests

console = Console()

_STATUS_STYLE = {
    "APPROVED": "green",
    "CHANGES_REQUESTED": "red",
    "REVIEW_REQUIRED": "yellow",
}


@click.command("prs")
@click.option("--min-points", type=click.IntRange(-999, 999), default=-999, show_default=True, help="Hide PRs scoring below this.")
@click.option("--reasons", "show_reasons", is_flag=True, help="Show why each PR got its score.")
@click.option("--user", "username", default=None, help="Score for this GitHub user instead of the stored one.")
@click.pass_context
def prs_cmd(ctx, min_points: int, show_reasons: bool, username: str | None):
    """Show stored PRs, most urgent first.

    Reads whatever `prpulse serve` fetched last; it does not query GitHub.
    """
    store = ctx.obj["store"]
    config = ctx.obj["config"]

    if username is None:
        credential = store.get_credential()
        username = credential.username if credential else config.get("github_user")
    if not username:
        from prpulse_store.demo import DEMO_USERNAME, DemoStore

        if not isinstance(store, DemoStore):
            raise click.UsageError("No GitHub user known. Run `prpulse login` or pass --user.")
        username = DEMO_USERNAME

    state = store.list_pull_requests()
    ranked = [(pr, s) for pr, s in rank_pull_requests(state.pull_requests, username, datetime.now(timezone.utc)) if s.total >= min_points]
    if not ranked:
        console.print("[yellow]No pull requests found.[/yellow]")
        return

    last = state.last_fetched.strftime("%Y-%m-%d %H:%M") if state.last_fetched else "never"
    table = Table(title=f"Pull requests for {username} (fetched {last})", show_header=True, header_style="bold cyan")
    table.add_column("Points", justify="right", width=7)
    table.add_column("Repo", max_width=24)
    table.add_column("Title", max_width=50)
    table.add_column("Author", max_width=16)
    table.add_column("Status", width=18)
    table.add_column("Threads", justify="right", width=8)
    if show_reasons:
        table.add_column("Reasons")

    for pr, score in ranked:
        style = _STATUS_STYLE.get(pr.review_status, "white")
        title = pr.title[:50]
        if pr.is_draft:
            title = f"[dim]{title} (draft)[/dim]"
        row = [
            f"[bold]{score.total}[/bold]",
            f"{pr.repo_owner}/{pr.repo_name}",
            title,
            pr.author,
            f"[{style}]{pr.review_status or '-'}[/{style}]",
            f"{pr.threads_actionable}/{pr.threads_waiting}",
        ]
        if show_reasons:
            row.append("\n".join(score.reasons))
        table.add_row(*row)

    console.print(table)
