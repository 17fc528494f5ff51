"""Demo store — fixed sample PRs, for screenshots and trying out the dashboard.

Nothing is ever written and there is no credential, so the refresh loop
skips every cycle and the sample data is all the dashboard ever shows.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from prpulse_core.models import PullRequest
from prpulse_store.base import BaseStore
from prpulse_store.models import StoredState

if TYPE_CHECKING:
    from prpulse_store.models import Credential

DEMO_USERNAME = "octocat"


def _sample_prs(now: datetime) -> list[PullRequest]:
    # urls double as ids and must be unique
    return [
        PullRequest(
            url="https://github.com/octocat/api/pull/1",
            title="feat: Scaffolding script for a new service",
            author=DEMO_USERNAME,
            repo_name="api",
            repo_owner="octocat",
            last_updated=now,
            threads_actionable=3,
            threads_waiting=2,
            additions=32,
            deletions=15,
        ),
        PullRequest(
            url="https://github.com/octocat/infrastructure/pull/2",
            title="chore: update license",
            author="hubot",
            repo_name="infrastructure",
            repo_owner="octocat",
            is_draft=True,
            last_updated=now,
            additions=32,
            deletions=15,
        ),
        PullRequest(
            url="https://github.com/octocat/web/pull/3",
            title="feature: add settings for maximum minutes of idling",
            author="monalisa",
            repo_name="web",
            repo_owner="octocat",
            review_status="APPROVED",
            is_draft=True,
            last_updated=now,
            additions=32,
            deletions=15,
        ),
    ]


class DemoStore(BaseStore):
    """Serves sample data and discards every write."""

    def __init__(self):
        # the sample data counts as fetched once, when the store is built
        self._loaded_at = datetime.now(timezone.utc)

    def get_credential(self) -> Credential | None:
        return None

    def store_credential(self, token: str, username: str, expires_at: datetime | None = None) -> None:
        pass  # intentional no-op

    def clear_credential(self) -> None:
        pass

    def set_rate_limit_until(self, until: datetime) -> None:
        pass

    def get_rate_limit_until(self) -> datetime | None:
        return None

    def clear_rate_limit(self) -> None:
        pass

    def replace_pull_requests(self, prs: list[PullRequest], fetched_at: datetime | None = None) -> None:
        pass

    def list_pull_requests(self) -> StoredState:
        return StoredState(pull_requests=_sample_prs(self._loaded_at), last_fetched=self._loaded_at)

    def get_pull_request(self, url: str) -> PullRequest | None:
        for pr in self.list_pull_requests().pull_requests:
            if pr.url == url:
                return pr
        return None

    def get_last_fetch_time(self) -> datetime | None:
        return self._loaded_at

    def get_buried(self) -> dict[str, datetime]:
        return {}

    def bury(self, url: str) -> bool:
        return self.get_pull_request(url) is not None

    def unbury(self, url: str) -> bool:
        return self.get_pull_request(url) is not None
