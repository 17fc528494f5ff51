"""Store-level records.

The pull requests themselves are prpulse_core.models.PullRequest; these are
the extra things only the persistence layer knows about.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from prpulse_core.models import PullRequest


@dataclass
class Credential:
    """The active GitHub personal access token and the login it belongs to."""

    token: str
    username: str
    expires_at: datetime | None = None  # None for tokens that never expire


@dataclass
class StoredState:
    """What the dashboard reads: the last fetched PRs and when they were fetched."""

    pull_requests: list[PullRequest] = field(default_factory=list)
    last_fetched: datetime | None = None
