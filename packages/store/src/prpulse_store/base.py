"""Abstract store interface.

The refresh loop, the dashboard and the CLI depend on BaseStore, not on a
concrete backend, so the live SQLite store and the demo store are
swappable without touching any caller.

Implementations must serialize their own access: the refresh thread and
dashboard request threads call into the same store concurrently, and callers
do not lock around multi-step sequences.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prpulse_core.models import PullRequest
    from prpulse_store.models import Credential, StoredState


class BaseStore(ABC):
    """Pluggable persistence for credentials, rate-limit state and fetched PRs."""

    # ------------------------------------------------------------------ #
    # Credentials                                                          #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def get_credential(self) -> Credential | None:
        """Return the active credential, or None when none is configured."""

    @abstractmethod
    def store_credential(self, token: str, username: str, expires_at: datetime | None = None) -> None:
        """Make ``token`` the active credential, deactivating any previous one."""

    @abstractmethod
    def clear_credential(self) -> None:
        """Deactivate the active credential, if any."""

    # ------------------------------------------------------------------ #
    # Rate limiting                                                        #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def set_rate_limit_until(self, until: datetime) -> None:
        """Persist the time before which GitHub must not be queried."""

    @abstractmethod
    def get_rate_limit_until(self) -> datetime | None:
        """Return the persisted rate-limit window end, or None."""

    def is_rate_limit_active(self, now: datetime) -> bool:
        """True while ``now`` is before the persisted window end.

        An expired window is cleared as a side effect.
        """
        until = self.get_rate_limit_until()
        if until is None:
            return False
        if now < until:
            return True
        self.clear_rate_limit()
        return False

    @abstractmethod
    def clear_rate_limit(self) -> None:
        """Forget the persisted rate-limit window."""

    # ------------------------------------------------------------------ #
    # Pull requests                                                        #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def replace_pull_requests(self, prs: list[PullRequest], fetched_at: datetime | None = None) -> None:
        """Replace the stored PRs wholesale and record the fetch time."""

    @abstractmethod
    def list_pull_requests(self) -> StoredState:
        """Return the stored PRs and the last fetch time. Never raises for an empty store."""

    @abstractmethod
    def get_pull_request(self, url: str) -> PullRequest | None:
        """Return one stored PR by URL, or None."""

    @abstractmethod
    def get_last_fetch_time(self) -> datetime | None:
        """Return when PRs were last stored, or None if never."""

    @abstractmethod
    def get_buried(self) -> dict[str, datetime]:
        """Return ``{url: last_updated when buried}`` for every buried PR."""

    @abstractmethod
    def bury(self, url: str) -> bool:
        """Bury a stored PR. Returns False if no PR with that URL is stored."""

    @abstractmethod
    def unbury(self, url: str) -> bool:
        """Unbury a stored PR. Returns False if no PR with that URL is stored."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional; the default is a no-op so callers can always call close().
        """
