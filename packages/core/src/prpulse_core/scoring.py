"""Urgency scoring for pull requests.

Every PR gets a total and a list of human-readable reasons, each prefixed
with the signed amount it contributed ("+50: ...", "-10: ..."). The rules
should be revisited often and the amounts tweaked; the totals are what the
dashboard sorts on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from prpulse_core.models import ZERO_TIME, PullRequest

_OWN_STALE_AFTER = timedelta(days=14)
_DRAFT_STALE_AFTER = timedelta(days=5)
BURIED_PENALTY = 1000


@dataclass
class Score:
    total: int = 0
    reasons: list[str] = field(default_factory=list)

    def add(self, points: int, reason: str) -> None:
        self.total += points
        self.reasons.append(f"+{points}: {reason}")

    def remove(self, points: int, reason: str) -> None:
        self.total -= points
        self.reasons.append(f"-{points}: {reason}")


def _score_own(pr: PullRequest, username: str, now: datetime, score: Score) -> None:
    if pr.review_status == "APPROVED":
        score.add(100, "Own PR is approved, should be a simple merge")

    if pr.review_status == "CHANGES_REQUESTED":
        score.add(50, "Someone wants you to change something")

    if pr.last_commenter and pr.last_commenter != username:
        score.add(10, f"Someone else commented last ({pr.last_commenter})")

    if pr.is_draft:
        score.remove(10, "PR is my draft")

    if not pr.review_requested_from:
        # nobody will look at a PR without reviewers
        score.add(10, "You should add reviewers")

    if pr.last_updated < now - _OWN_STALE_AFTER:
        score.add(11, "Your PR has not been updated in a while, you should take actions")


def _score_others(pr: PullRequest, now: datetime, score: Score) -> None:
    if pr.review_status == "APPROVED":
        score.remove(100, "PR is someone else's and is approved")

    if pr.review_status == "CHANGES_REQUESTED":
        # the author already has work to do
        score.remove(100, "Changes are already requested")

    if pr.is_draft:
        if pr.last_updated < now - _DRAFT_STALE_AFTER:
            # an old draft is most likely used as "work in progress"
            score.remove(70, "PR is someone else's old draft")
        else:
            score.remove(10, "PR is someone else's draft")

    diff = abs(pr.additions) + abs(pr.deletions)
    if diff < 50:
        score.add(50, f"PR is small, {diff} loc changed is <50")
    elif diff < 150:
        score.add(30, f"PR is smallish, {diff} loc changed is <150")
    elif diff <= 300:
        score.add(20, f"PR is bigger, {diff} loc changed is <=300")
    else:
        score.add(10, f"PR is bigish, {diff} loc changed is >300")


def score_pull_request(pr: PullRequest, username: str, now: datetime | None) -> Score:
    """Score ``pr`` from the point of view of ``username`` at time ``now``.

    ``now`` must be a real clock reading; a missing one is a caller bug and
    raises ValueError rather than silently scoring against year 1.

    Reasons are sorted so that additions render before subtractions. The
    buried penalty is appended after sorting and therefore always comes last.
    """
    if now is None or now == ZERO_TIME:
        raise ValueError("now is unset, score_pull_request() needs a valid time")

    score = Score()

    if pr.author == username:
        _score_own(pr, username, now, score)
    else:
        # someone else's PR, or ours while the username is unknown
        _score_others(pr, now, score)

    if pr.threads_actionable > 0:
        # flat, scaling by thread count would go overboard
        score.add(80, f"Someone asked us something, or reacted to our comment ({pr.threads_actionable} comments)")

    if pr.threads_waiting > 0:
        score.remove(10, f"Someone should respond to our comments ({pr.threads_waiting} comments)")

    score.reasons.sort()

    if pr.buried:
        score.remove(BURIED_PENALTY, "PR is buried")

    return score


def rank_pull_requests(
    prs: list[PullRequest], username: str, now: datetime
) -> list[tuple[PullRequest, Score]]:
    """Score every PR and order them highest total first.

    Ties are broken by recency: the most recently updated PR comes first.
    """
    scored = [(pr, score_pull_request(pr, username, now)) for pr in prs]
    scored.sort(key=lambda item: (-item[1].total, -item[0].last_updated.timestamp()))
    return scored
