"""The refresh loop.

Waits for PollScheduler signals and, when allowed, fetches PRs from GitHub,
classifies their review threads and replaces the stored PRs. Exactly one
fetch is in flight at a time: the loop is the scheduler's only consumer and
fetches synchronously.

Per signal, in order:
  1. no credential configured          → skip the cycle
  2. persisted rate-limit window active → skip the cycle
  3. last fetch less than a minute ago  → skip (guards against bursts of
     manual refreshes, whatever the backoff state)
  4. fetch, then branch on the outcome:
       RateLimited → persist the window, back off 2x
       ClientError → stop the scheduler for good; a new credential is needed
       ServerError → back off 1.5x
       success     → classify, carry over buried flags, store
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from prpulse_core.classifier import classify_pull_request
from prpulse_core.errors import ClientError, RateLimited, ServerError
from prpulse_core.gh.pull_requests import fetch_pull_requests

if TYPE_CHECKING:
    from prpulse_core.metrics import PulseMetrics
    from prpulse_core.models import PullRequest
    from prpulse_core.scheduler import PollScheduler
    from prpulse_store.base import BaseStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_FETCH_SPACING = timedelta(seconds=59)
DEFAULT_FETCH_TIMEOUT = 60.0

# fetch(token, username, timeout) -> list[PullRequest]
Fetcher = Callable[[str, str, float], "list[PullRequest]"]


class RefreshResult(enum.Enum):
    SKIPPED_NO_CREDENTIAL = "skipped_no_credential"
    SKIPPED_RATE_LIMITED = "skipped_rate_limited"
    SKIPPED_TOO_SOON = "skipped_too_soon"
    REFRESHED = "refreshed"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    HALTED = "halted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def apply_buried(prs: list[PullRequest], buried: dict[str, datetime]) -> None:
    """Carry the buried flag over to freshly fetched PRs.

    A bury only holds while the PR is unchanged: if its last_updated moved
    past the snapshot taken when it was buried, it resurfaces.
    """
    for pr in prs:
        snapshot = buried.get(pr.url)
        if snapshot is None:
            continue
        if pr.last_updated > snapshot:
            logger.info("PR %s changed since it was buried, unburying", pr.url)
            continue
        pr.buried = True


class RefreshOrchestrator:
    def __init__(
        self,
        scheduler: PollScheduler,
        store: BaseStore,
        fetch: Fetcher = fetch_pull_requests,
        min_fetch_spacing: timedelta = DEFAULT_MIN_FETCH_SPACING,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
        metrics: PulseMetrics | None = None,
    ):
        self._scheduler = scheduler
        self._store = store
        self._fetch = fetch
        self._min_fetch_spacing = min_fetch_spacing
        self._fetch_timeout = fetch_timeout
        self._clock = clock
        self._metrics = metrics
        self._thread: threading.Thread | None = None
        self.halted_reason: str | None = None

    @property
    def halted(self) -> bool:
        return self.halted_reason is not None

    def start(self) -> threading.Thread:
        """Run the loop on a daemon thread and return it."""
        if self._thread is not None:
            raise RuntimeError("refresh loop already started")
        self._thread = threading.Thread(target=self.run, name="prpulse-refresh", daemon=True)
        self._thread.start()
        return self._thread

    def run(self) -> None:
        """Refresh on every scheduler signal until the scheduler is stopped."""
        logger.info("Refresh loop started, polling every %s", self._scheduler.current_interval())
        while self._scheduler.wait_for_signal():
            try:
                self.refresh()
            except Exception:
                # a bug or a broken store must not end polling for good
                logger.exception("Unexpected error during refresh, backing off")
                self._scheduler.on_server_error()
        logger.info("Refresh loop finished")

    def refresh(self) -> RefreshResult:
        """Run one refresh cycle and report what happened."""
        credential = self._store.get_credential()
        if credential is None:
            logger.info("No GitHub token configured, skipping refresh")
            return RefreshResult.SKIPPED_NO_CREDENTIAL

        now = self._clock()
        if self._store.is_rate_limit_active(now):
            logger.info("Rate limit still active, skipping refresh")
            return RefreshResult.SKIPPED_RATE_LIMITED

        last_fetched = self._store.get_last_fetch_time()
        if last_fetched is not None and now - last_fetched < self._min_fetch_spacing:
            logger.info("Last fetch was at %s, too recent, skipping refresh", last_fetched.isoformat())
            return RefreshResult.SKIPPED_TOO_SOON

        try:
            prs = self._fetch(credential.token, credential.username, self._fetch_timeout)
        except RateLimited as e:
            logger.warning("Rate limited until %s", e.unblock_at.isoformat())
            self._observe_fetch("rate_limited")
            self._store.set_rate_limit_until(e.unblock_at)
            self._scheduler.on_rate_limited()
            return RefreshResult.RATE_LIMITED
        except ClientError as e:
            logger.error("Client error when querying GitHub, giving up: %s", e)
            self._observe_fetch("client_error")
            self.halted_reason = str(e) or type(e).__name__
            self._scheduler.stop()
            return RefreshResult.HALTED
        except ServerError as e:
            logger.warning("Server error when querying GitHub: %s", e)
            self._observe_fetch("server_error")
            self._scheduler.on_server_error()
            return RefreshResult.SERVER_ERROR

        self._observe_fetch("success")
        self._scheduler.on_success()

        for pr in prs:
            pr.threads_actionable, pr.threads_waiting = classify_pull_request(pr, credential.username)
        apply_buried(prs, self._store.get_buried())

        self._store.replace_pull_requests(prs, fetched_at=self._clock())
        if self._metrics is not None:
            self._metrics.observe_pull_requests(pr.url for pr in prs)
        return RefreshResult.REFRESHED

    def _observe_fetch(self, result: str) -> None:
        if self._metrics is not None:
            self._metrics.observe_fetch(result)
