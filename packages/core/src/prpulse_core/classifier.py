"""Review-thread classification.

Counts, per PR, the review threads that need something from the acting user
("actionable") and the ones where the user has spoken and is waiting on the
other party ("waiting"). Pure functions, safe to call from any thread.
"""

from __future__ import annotations

from collections.abc import Iterable

from prpulse_core.models import PullRequest, ReviewThread, ThreadComment


def _reacted(comment: ThreadComment, username: str) -> bool:
    return username in comment.reactors


def _someone_else_reacted(comment: ThreadComment, username: str) -> bool:
    return any(login != username for login in comment.reactors)


def classify_threads(threads: Iterable[ReviewThread], author: str, username: str) -> tuple[int, int]:
    """Return ``(actionable, waiting)`` for the threads of a PR written by ``author``.

    Resolved, outdated, collapsed and empty threads are skipped. For the
    rest, the first matching rule wins:

    1. Own PR, someone else has the last word and we haven't reacted to it.
    2. Own PR, we have the last word and someone else reacted to it.
    3. Someone else's PR and we have the last word: the owner should reply
       or resolve, so we are waiting.
    4. We started the thread, someone else has the last word and we haven't
       reacted to it.

    A thread someone else started, where we commented in the middle and
    someone else has the last word, is not counted.
    """
    own_pr = author == username
    actionable = 0
    waiting = 0

    for thread in threads:
        if thread.is_resolved or thread.is_outdated or thread.is_collapsed:
            continue
        if not thread.comments:
            continue

        last = thread.comments[-1]
        i_commented_last = last.author == username
        i_reacted_last = _reacted(last, username)

        if own_pr and not i_commented_last and not i_reacted_last:
            actionable += 1
        elif own_pr and i_commented_last and _someone_else_reacted(last, username):
            actionable += 1
        elif not own_pr and i_commented_last:
            waiting += 1
        elif thread.comments[0].author == username and not i_commented_last and not i_reacted_last:
            actionable += 1

    return actionable, waiting


def classify_pull_request(pr: PullRequest | None, username: str) -> tuple[int, int]:
    """Classify the freshly fetched threads of ``pr``; ``None`` counts as empty."""
    if pr is None:
        return 0, 0
    return classify_threads(pr.threads, pr.author, username)
