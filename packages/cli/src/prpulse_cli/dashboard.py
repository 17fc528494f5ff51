"""Dashboard JSON API.

Serves the ranked PRs and the polling state, and accepts manual refreshes
and bury/unbury requests. Scores are computed on every read and never
stored. PR ids in paths are the URL-safe base64 of the PR URL.

Endpoints:
  GET  /health
  GET  /api/v0/prs?minPoints=N
  GET  /api/v0/status
  GET  /metrics
  POST /api/v0/prs/refresh
  POST /api/v0/prs/{pr_id}/bury | unbury | golden
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request, Response, status

from prpulse_core.golden import GoldenCase, save_golden_case
from prpulse_core.models import format_timestamp, to_dict
from prpulse_core.scoring import rank_pull_requests

if TYPE_CHECKING:
    from prpulse_core.metrics import PulseMetrics
    from prpulse_core.refresher import RefreshOrchestrator
    from prpulse_core.scheduler import PollScheduler
    from prpulse_store.base import BaseStore

logger = logging.getLogger(__name__)

MIN_POINTS_FLOOR = -999
MIN_POINTS_CEILING = 999

router = APIRouter()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def encode_pr_id(url: str) -> str:
    return base64.urlsafe_b64encode(url.encode()).decode().rstrip("=")


def decode_pr_id(pr_id: str) -> str:
    """Inverse of encode_pr_id; raises ValueError on anything that isn't one."""
    try:
        raw = base64.b64decode(pr_id + "=" * (-len(pr_id) % 4), altchars=b"-_", validate=True)
        return raw.decode()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"invalid PR id {pr_id!r}") from e


def _parse_min_points(raw: str | None) -> int:
    """Out-of-range or malformed values fall back to the floor."""
    if raw is None:
        return MIN_POINTS_FLOOR
    try:
        value = int(raw)
    except ValueError:
        return MIN_POINTS_FLOOR
    if value < MIN_POINTS_FLOOR or value > MIN_POINTS_CEILING:
        return MIN_POINTS_FLOOR
    return value


def _current_username(request: Request) -> str:
    credential = request.app.state.store.get_credential()
    if credential is not None:
        return credential.username
    return request.app.state.username or ""


@router.get("/health")
def health() -> dict[str, Any]:
    return {"status": "healthy", "timestamp": _utcnow().isoformat()}


@router.get("/api/v0/prs")
def list_prs(request: Request, min_points: str | None = Query(default=None, alias="minPoints")) -> list[dict[str, Any]]:
    """Stored PRs, highest score first, dropping those below ``minPoints``."""
    state = request.app.state
    threshold = _parse_min_points(min_points)
    ranked = rank_pull_requests(state.store.list_pull_requests().pull_requests, _current_username(request), state.clock())

    return [
        {
            **to_dict(pr),
            "id": encode_pr_id(pr.url),
            "score": {"total": score.total, "reasons": score.reasons},
        }
        for pr, score in ranked
        if score.total >= threshold
    ]


@router.get("/api/v0/status")
def polling_status(request: Request) -> dict[str, Any]:
    state = request.app.state
    scheduler: PollScheduler | None = state.scheduler
    orchestrator: RefreshOrchestrator | None = state.orchestrator
    rate_limited_until = state.store.get_rate_limit_until()

    return {
        "username": _current_username(request),
        "interval_seconds": scheduler.current_interval().total_seconds() if scheduler else None,
        "base_interval_seconds": scheduler.base_interval.total_seconds() if scheduler else None,
        "backoff_multiplier": scheduler.multiplier if scheduler else None,
        "last_fetched": format_timestamp(state.store.get_last_fetch_time()) or None,
        "rate_limited_until": format_timestamp(rate_limited_until) or None,
        "halted": orchestrator.halted if orchestrator else False,
        "halted_reason": orchestrator.halted_reason if orchestrator else None,
    }


@router.get("/metrics")
def metrics(request: Request) -> Response:
    pulse_metrics: PulseMetrics | None = request.app.state.metrics
    if pulse_metrics is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="metrics are disabled")
    body, content_type = pulse_metrics.render()
    return Response(content=body, media_type=content_type)


@router.post("/api/v0/prs/refresh", status_code=status.HTTP_202_ACCEPTED)
def refresh(request: Request) -> dict[str, Any]:
    scheduler: PollScheduler | None = request.app.state.scheduler
    if scheduler is None or scheduler.stopped:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="polling is stopped")
    scheduler.request_refresh()
    return {"status": "refresh requested"}


@router.post("/api/v0/prs/{pr_id}/{action}")
def pr_action(request: Request, pr_id: str, action: str) -> Response:
    state = request.app.state
    try:
        url = decode_pr_id(pr_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid PR id")

    if action in ("bury", "unbury"):
        toggle = state.store.bury if action == "bury" else state.store.unbury
        if not toggle(url):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"PR {url} not found")
        logger.info("%s PR %s", "Buried" if action == "bury" else "Unburied", url)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    if action == "golden":
        if state.golden_dir is None:
            # nothing to see here
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        pr = state.store.get_pull_request(url)
        if pr is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"PR {url} not found")
        path = save_golden_case(GoldenCase.capture(pr, _current_username(request), state.clock()), state.golden_dir)
        return Response(content=str(path), media_type="text/plain")

    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown action {action!r}")


def create_app(
    store: BaseStore,
    scheduler: PollScheduler | None = None,
    orchestrator: RefreshOrchestrator | None = None,
    username: str | None = None,
    golden_dir: str | Path | None = None,
    clock: Callable[[], datetime] = _utcnow,
    version: str = "unknown",
    metrics: PulseMetrics | None = None,
) -> FastAPI:
    """Build the dashboard app around already-running collaborators.

    ``username`` is only used while no credential is stored (demo mode).
    """
    app = FastAPI(title="prpulse", version=version)
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.orchestrator = orchestrator
    app.state.username = username
    app.state.golden_dir = golden_dir
    app.state.clock = clock
    app.state.metrics = metrics
    app.include_router(router)
    return app
