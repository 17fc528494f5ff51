"""serve command — background polling plus the dashboard API."""

from __future__ import annotations

import logging
from datetime import timedelta

import click
from rich.console import Console

from prpulse_core.gh.pull_requests import fetch_pull_requests
from prpulse_core.metrics import PulseMetrics
from prpulse_core.refresher import RefreshOrchestrator
from prpulse_core.scheduler import PollScheduler

console = Console()
logger = logging.getLogger(__name__)


@click.command("serve")
@click.option("--host", default=None, help="Interface to bind the dashboard to. Overrides config file.")
@click.option("--port", type=int, default=None, help="Dashboard port. Overrides config file.")
@click.option(
    "--interval",
    "interval_minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Refresh PRs every N minutes. Overrides config file.",
)
@click.pass_context
def serve_cmd(ctx, host: str | None, port: int | None, interval_minutes: int | None):
    """Poll GitHub for your PRs and serve the ranked list over HTTP.

    Run `prpulse login` first so there is a token to poll with; without one
    the dashboard only shows what is already stored.
    """
    import uvicorn

    from prpulse_cli.dashboard import create_app
    from prpulse_store.demo import DEMO_USERNAME, DemoStore

    config = ctx.obj["config"]
    store = ctx.obj["store"]
    host = host or config["host"]
    port = port or config["port"]
    interval = timedelta(minutes=interval_minutes or config["interval_minutes"])

    if store.get_credential() is None and not isinstance(store, DemoStore):
        console.print("[yellow]No GitHub token stored, run `prpulse login`. Serving stored PRs only.[/yellow]")

    ignored = tuple(config["ignored_commenters"])

    def fetch(token: str, username: str, timeout: float):
        return fetch_pull_requests(token, username, timeout=timeout, ignored_commenters=ignored)

    metrics = PulseMetrics()
    scheduler = PollScheduler(
        interval,
        max_multiplier=float(config["max_backoff_multiplier"]),
        cooldown_threshold=int(config["backoff_cooldown"]),
        metrics=metrics,
    )
    orchestrator = RefreshOrchestrator(
        scheduler,
        store,
        fetch=fetch,
        min_fetch_spacing=timedelta(seconds=config["min_fetch_spacing_seconds"]),
        fetch_timeout=float(config["fetch_timeout_seconds"]),
        metrics=metrics,
    )
    orchestrator.start()

    app = create_app(
        store,
        scheduler=scheduler,
        orchestrator=orchestrator,
        username=DEMO_USERNAME if isinstance(store, DemoStore) else config.get("github_user"),
        golden_dir=config["golden_dir"] if config["golden"] else None,
        version=ctx.obj.get("version", "unknown"),
        metrics=metrics,
    )

    logger.info("Starting dashboard at http://%s:%d (refresh every %s)", host, port, interval)
    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    finally:
        scheduler.stop()
