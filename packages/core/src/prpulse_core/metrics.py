"""Prometheus metrics for the polling pipeline.

One PulseMetrics owns its own CollectorRegistry, so a process (or a test)
can build as many as it likes without tripping duplicate registration. The
scheduler, the refresh loop and the dashboard all take it as an optional
collaborator; passing None turns metrics off.

Exposed series:
  prpulse_poll_interval_seconds       gauge, effective polling interval
  prpulse_backoff_multiplier          gauge, 1.0 when healthy
  prpulse_github_requests_total       counter, by result
  prpulse_rate_limit_events_total     counter
  prpulse_prs_tracked                 gauge, PRs in the last successful fetch
  prpulse_prs_seen_total              counter, distinct PR URLs since startup
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import timedelta

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest

FETCH_RESULTS = ("success", "rate_limited", "client_error", "server_error")


class PulseMetrics:
    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.poll_interval_seconds = Gauge(
            "prpulse_poll_interval_seconds",
            "Current polling interval in seconds (grows while backing off).",
            registry=self.registry,
        )
        self.backoff_multiplier = Gauge(
            "prpulse_backoff_multiplier",
            "Current backoff multiplier (1.0 = normal, >1.0 = backing off).",
            registry=self.registry,
        )
        self.github_requests = Counter(
            "prpulse_github_requests",
            "Outgoing GitHub API requests by result.",
            ["result"],
            registry=self.registry,
        )
        self.rate_limit_events = Counter(
            "prpulse_rate_limit_events",
            "Rate limit events from GitHub.",
            registry=self.registry,
        )
        self.prs_tracked = Gauge(
            "prpulse_prs_tracked",
            "Number of PRs currently tracked.",
            registry=self.registry,
        )
        self.prs_seen = Counter(
            "prpulse_prs_seen",
            "Unique PRs seen since startup.",
            registry=self.registry,
        )

        # pre-create every label so all results render as 0 before the first fetch
        for result in FETCH_RESULTS:
            self.github_requests.labels(result=result)

        self._seen_lock = threading.Lock()
        self._seen: set[str] = set()

    def observe_schedule(self, interval: timedelta, multiplier: float) -> None:
        self.poll_interval_seconds.set(interval.total_seconds())
        self.backoff_multiplier.set(multiplier)

    def observe_fetch(self, result: str) -> None:
        self.github_requests.labels(result=result).inc()
        if result == "rate_limited":
            self.rate_limit_events.inc()

    def observe_pull_requests(self, urls: Iterable[str]) -> None:
        urls = list(urls)
        with self._seen_lock:
            self.prs_tracked.set(len(urls))
            for url in urls:
                if url not in self._seen:
                    self._seen.add(url)
                    self.prs_seen.inc()

    def value(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Current value of one sample, e.g. ``value("prpulse_prs_seen_total")``."""
        return self.registry.get_sample_value(name, labels or {})

    def render(self) -> tuple[bytes, str]:
        """Prometheus text exposition and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
