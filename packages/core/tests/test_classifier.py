"""Tests for review-thread classification."""

from prpulse_core.classifier import classify_pull_request, classify_threads
from prpulse_core.models import PullRequest, ReviewThread, ThreadComment

ME = "me"
OTHER = "alice"
THIRD = "bob"


def comment(author, *reactors):
    return ThreadComment(author=author, reactors=set(reactors))


def thread(*comments, resolved=False, outdated=False, collapsed=False):
    return ReviewThread(is_resolved=resolved, is_outdated=outdated, is_collapsed=collapsed, comments=list(comments))


class TestEmptyInput:
    def test_no_threads(self):
        assert classify_threads([], ME, ME) == (0, 0)

    def test_threads_without_comments_are_skipped(self):
        assert classify_threads([thread(), thread()], ME, ME) == (0, 0)

    def test_empty_pull_request(self):
        assert classify_pull_request(PullRequest(), ME) == (0, 0)

    def test_none_pull_request(self):
        assert classify_pull_request(None, ME) == (0, 0)


class TestSkippedThreads:
    def test_resolved_outdated_collapsed_are_skipped(self):
        threads = [
            thread(comment(OTHER), resolved=True),
            thread(comment(OTHER), outdated=True),
            thread(comment(OTHER), collapsed=True),
        ]
        assert classify_threads(threads, ME, ME) == (0, 0)


class TestOwnPullRequest:
    def test_someone_else_commented_last(self):
        assert classify_threads([thread(comment(ME), comment(OTHER))], ME, ME) == (1, 0)

    def test_someone_else_commented_last_but_i_reacted(self):
        assert classify_threads([thread(comment(ME), comment(OTHER, ME))], ME, ME) == (0, 0)

    def test_i_commented_last_and_they_reacted(self):
        assert classify_threads([thread(comment(OTHER), comment(ME, OTHER))], ME, ME) == (1, 0)

    def test_i_commented_last_without_reactions(self):
        assert classify_threads([thread(comment(OTHER), comment(ME))], ME, ME) == (0, 0)

    def test_i_commented_last_and_only_i_reacted(self):
        assert classify_threads([thread(comment(OTHER), comment(ME, ME))], ME, ME) == (0, 0)

    def test_own_pr_never_counts_waiting(self):
        threads = [thread(comment(ME)), thread(comment(OTHER), comment(ME))]
        assert classify_threads(threads, ME, ME) == (0, 0)


class TestSomeoneElsesPullRequest:
    def test_i_commented_last_is_waiting(self):
        assert classify_threads([thread(comment(OTHER), comment(ME))], OTHER, ME) == (0, 1)

    def test_i_started_thread_and_they_replied(self):
        assert classify_threads([thread(comment(ME), comment(OTHER))], OTHER, ME) == (1, 0)

    def test_i_started_thread_and_reacted_to_reply(self):
        assert classify_threads([thread(comment(ME), comment(OTHER, ME))], OTHER, ME) == (0, 0)

    def test_i_commented_in_the_middle_only(self):
        threads = [thread(comment(THIRD), comment(ME), comment(OTHER))]
        assert classify_threads(threads, OTHER, ME) == (0, 0)

    def test_thread_i_was_never_part_of(self):
        assert classify_threads([thread(comment(THIRD), comment(OTHER))], OTHER, ME) == (0, 0)

    def test_single_comment_thread_by_me_is_waiting(self):
        # first and last comment are both mine: rule 3 wins over rule 4
        assert classify_threads([thread(comment(ME))], OTHER, ME) == (0, 1)


class TestSums:
    def test_counts_add_up_across_threads(self):
        threads = [
            thread(comment(ME), comment(OTHER)),  # actionable (I started it)
            thread(comment(OTHER), comment(ME)),  # waiting
            thread(comment(OTHER), comment(ME)),  # waiting
            thread(comment(OTHER), resolved=True),
            thread(),
        ]
        assert classify_threads(threads, OTHER, ME) == (1, 2)

    def test_classify_pull_request_uses_author(self):
        pr = PullRequest(author=ME, threads=[thread(comment(OTHER)), thread(comment(OTHER), comment(ME, THIRD))])
        assert classify_pull_request(pr, ME) == (2, 0)
