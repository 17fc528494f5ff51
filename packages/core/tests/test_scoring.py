"""Tests for PR scoring and ranking."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from prpulse_core.models import ZERO_TIME, PullRequest
from prpulse_core.scoring import Score, rank_pull_requests, score_pull_request

ME = "me"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def own_pr(**kwargs):
    defaults = {"url": "https://github.com/o/r/pull/1", "author": ME, "last_updated": NOW, "review_requested_from": ["alice"]}
    defaults.update(kwargs)
    return PullRequest(**defaults)


def others_pr(**kwargs):
    defaults = {"url": "https://github.com/o/r/pull/2", "author": "alice", "last_updated": NOW}
    defaults.update(kwargs)
    return PullRequest(**defaults)


class TestScore:
    def test_add_and_remove_render_signed_reasons(self):
        s = Score()
        s.add(10, "ten")
        s.remove(3, "three")
        assert s.total == 7
        assert s.reasons == ["+10: ten", "-3: three"]


class TestPreconditions:
    def test_missing_clock_raises(self):
        with pytest.raises(ValueError):
            score_pull_request(own_pr(), ME, None)

    def test_zero_clock_raises(self):
        with pytest.raises(ValueError):
            score_pull_request(own_pr(), ME, ZERO_TIME)


class TestOwnPullRequest:
    def test_approved(self):
        s = score_pull_request(own_pr(review_status="APPROVED"), ME, NOW)
        assert s.total == 100
        assert s.reasons == ["+100: Own PR is approved, should be a simple merge"]

    def test_stale_only(self):
        s = score_pull_request(own_pr(last_updated=NOW - timedelta(days=15)), ME, NOW)
        assert s.total == 11

    def test_nothing_to_do(self):
        assert score_pull_request(own_pr(), ME, NOW).total == 0

    def test_changes_requested(self):
        assert score_pull_request(own_pr(review_status="CHANGES_REQUESTED"), ME, NOW).total == 50

    def test_someone_else_commented_last(self):
        s = score_pull_request(own_pr(last_commenter="alice"), ME, NOW)
        assert s.total == 10
        assert s.reasons == ["+10: Someone else commented last (alice)"]

    def test_i_commented_last(self):
        assert score_pull_request(own_pr(last_commenter=ME), ME, NOW).total == 0

    def test_draft(self):
        assert score_pull_request(own_pr(is_draft=True), ME, NOW).total == -10

    def test_no_reviewers(self):
        s = score_pull_request(own_pr(review_requested_from=[]), ME, NOW)
        assert s.total == 10
        assert s.reasons == ["+10: You should add reviewers"]

    def test_exactly_fourteen_days_is_not_stale(self):
        assert score_pull_request(own_pr(last_updated=NOW - timedelta(days=14)), ME, NOW).total == 0

    def test_size_does_not_matter_for_own(self):
        assert score_pull_request(own_pr(additions=5000), ME, NOW).total == 0


class TestOthersPullRequest:
    @pytest.mark.parametrize(
        "additions,deletions,expected",
        [(10, 5, 50), (49, 0, 50), (50, 0, 30), (100, 49, 30), (150, 0, 20), (200, 100, 20), (301, 0, 10)],
    )
    def test_size_bonus(self, additions, deletions, expected):
        assert score_pull_request(others_pr(additions=additions, deletions=deletions), ME, NOW).total == expected

    def test_negative_counts_use_absolute_values(self):
        s = score_pull_request(others_pr(additions=-100, deletions=-60), ME, NOW)
        assert s.total == 20

    def test_approved(self):
        assert score_pull_request(others_pr(review_status="APPROVED"), ME, NOW).total == -50

    def test_changes_requested(self):
        assert score_pull_request(others_pr(review_status="CHANGES_REQUESTED"), ME, NOW).total == -50

    def test_fresh_draft(self):
        assert score_pull_request(others_pr(is_draft=True), ME, NOW).total == 40

    def test_old_draft(self):
        pr = others_pr(is_draft=True, last_updated=NOW - timedelta(days=6))
        assert score_pull_request(pr, ME, NOW).total == -20

    def test_smaller_never_scores_lower(self):
        sizes = [0, 1, 49, 50, 51, 149, 150, 151, 299, 300, 301, 1000]
        for small in sizes:
            for large in sizes:
                if small > large:
                    continue
                s_small = score_pull_request(others_pr(additions=small), ME, NOW).total
                s_large = score_pull_request(others_pr(additions=large), ME, NOW).total
                assert s_small >= s_large, (small, large)


class TestThreadsAndBuried:
    def test_actionable_is_flat(self):
        one = score_pull_request(own_pr(threads_actionable=1), ME, NOW)
        many = score_pull_request(own_pr(threads_actionable=9), ME, NOW)
        assert one.total == many.total == 80

    def test_waiting(self):
        assert score_pull_request(others_pr(threads_waiting=2), ME, NOW).total == 40

    def test_additions_sorted_before_subtractions(self):
        pr = own_pr(is_draft=True, review_status="APPROVED", threads_waiting=1, threads_actionable=1)
        s = score_pull_request(pr, ME, NOW)
        assert s.reasons == sorted(s.reasons)
        signs = [r[0] for r in s.reasons]
        assert signs == sorted(signs)  # "+" < "-"

    def test_buried_penalty_applied_after_sorting(self):
        pr = own_pr(buried=True, review_status="APPROVED", is_draft=True)
        s = score_pull_request(pr, ME, NOW)
        assert s.total == 100 - 10 - 1000
        assert s.reasons[-1] == "-1000: PR is buried"
        assert s.reasons[:-1] == sorted(s.reasons[:-1])

    def test_buried_always_sinks_below_unburied(self):
        best = own_pr(review_status="APPROVED", threads_actionable=1, review_requested_from=[], last_commenter="alice")
        worst = others_pr(review_status="APPROVED", is_draft=True, last_updated=NOW - timedelta(days=30), threads_waiting=1)
        buried = score_pull_request(replace(best, buried=True), ME, NOW).total
        assert buried < score_pull_request(worst, ME, NOW).total


class TestRank:
    def test_orders_by_total_then_recency(self):
        old = others_pr(url="old", last_updated=NOW - timedelta(days=1))
        new = others_pr(url="new", last_updated=NOW)
        top = own_pr(url="top", review_status="APPROVED")
        ranked = rank_pull_requests([old, top, new], ME, NOW)
        assert [pr.url for pr, _ in ranked] == ["top", "new", "old"]

    def test_empty(self):
        assert rank_pull_requests([], ME, NOW) == []
