"""Pull request domain models.

Shared by the classifier, the scoring rules and every store backend. A
PullRequest is both what the GitHub layer returns and what the store
persists, so it must carry everything needed to rank it against other PRs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Stand-in for timestamps GitHub sent us that we could not parse.
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ThreadComment:
    """One comment inside a review thread."""

    author: str = ""
    reactors: set[str] = field(default_factory=set)


@dataclass
class ReviewThread:
    """A review conversation attached to a PR (a line comment and its replies)."""

    is_resolved: bool = False
    is_outdated: bool = False
    is_collapsed: bool = False
    comments: list[ThreadComment] = field(default_factory=list)


@dataclass
class PullRequest:
    """An open pull request involving the acting user.

    ``threads`` is only populated right after a fetch; it is consumed by the
    classifier and never persisted. ``threads_actionable`` and
    ``threads_waiting`` are recomputed wholesale on every fetch.
    """

    url: str = ""
    title: str = ""
    author: str = ""
    repo_name: str = ""
    repo_owner: str = ""
    repo_url: str = ""
    review_status: str = ""  # "APPROVED" | "CHANGES_REQUESTED" | "REVIEW_REQUIRED" | ""
    is_draft: bool = False
    additions: int = 0
    deletions: int = 0
    last_updated: datetime = ZERO_TIME
    last_commenter: str = ""
    review_requested_from: list[str] = field(default_factory=list)
    threads_actionable: int = 0
    threads_waiting: int = 0
    buried: bool = False
    raw_json: str | None = None
    threads: list[ReviewThread] = field(default_factory=list, repr=False, compare=False)


def parse_timestamp(value: str | None, context: str = "") -> datetime:
    """Parse an ISO-8601 timestamp from GitHub into an aware UTC datetime.

    Malformed input is not fatal: it is logged and ZERO_TIME is returned so
    the rest of the batch can still be processed.
    """
    if not value:
        return ZERO_TIME
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Could not parse time %r (%s)", value, context)
        return ZERO_TIME
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str:
    if value is None or value == ZERO_TIME:
        return ""
    return value.astimezone(timezone.utc).isoformat()


def to_dict(pr: PullRequest) -> dict:
    """Serialize the persisted fields of a PR (threads are left out)."""
    return {
        "url": pr.url,
        "title": pr.title,
        "author": pr.author,
        "repo_name": pr.repo_name,
        "repo_owner": pr.repo_owner,
        "repo_url": pr.repo_url,
        "review_status": pr.review_status,
        "is_draft": pr.is_draft,
        "additions": pr.additions,
        "deletions": pr.deletions,
        "last_updated": format_timestamp(pr.last_updated),
        "last_commenter": pr.last_commenter,
        "review_requested_from": list(pr.review_requested_from),
        "threads_actionable": pr.threads_actionable,
        "threads_waiting": pr.threads_waiting,
        "buried": pr.buried,
    }


def from_dict(d: dict) -> PullRequest:
    return PullRequest(
        url=d.get("url", ""),
        title=d.get("title", ""),
        author=d.get("author", ""),
        repo_name=d.get("repo_name", ""),
        repo_owner=d.get("repo_owner", ""),
        repo_url=d.get("repo_url", ""),
        review_status=d.get("review_status", ""),
        is_draft=bool(d.get("is_draft", False)),
        additions=d.get("additions", 0),
        deletions=d.get("deletions", 0),
        last_updated=parse_timestamp(d.get("last_updated"), context=d.get("url", "")),
        last_commenter=d.get("last_commenter", ""),
        review_requested_from=list(d.get("review_requested_from", [])),
        threads_actionable=d.get("threads_actionable", 0),
        threads_waiting=d.get("threads_waiting", 0),
        buried=bool(d.get("buried", False)),
    )
