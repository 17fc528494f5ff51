"""Tests for the refresh loop."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from prpulse_core.errors import ClientError, RateLimited, ServerError
from prpulse_core.models import PullRequest, ReviewThread, ThreadComment
from prpulse_core.refresher import RefreshOrchestrator, RefreshResult, apply_buried
from prpulse_core.scheduler import PollScheduler
from prpulse_store.sqlite import SQLiteStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
URL = "https://github.com/o/r/pull/1"


def _make_pr(url=URL, last_updated=NOW - timedelta(hours=1), **kwargs) -> PullRequest:
    return PullRequest(url=url, title="Fix it", author="alice", last_updated=last_updated, **kwargs)


@pytest.fixture
def store():
    s = SQLiteStore(":memory:")
    s.store_credential("tok", "me")
    yield s
    s.close()


@pytest.fixture
def scheduler():
    return MagicMock(spec=PollScheduler)


def _orchestrator(scheduler, store, fetch, now=NOW):
    return RefreshOrchestrator(scheduler, store, fetch=fetch, clock=lambda: now)


# ---------------------------------------------------------------------------
# Skips
# ---------------------------------------------------------------------------


class TestSkips:
    def test_no_credential(self, scheduler):
        store = SQLiteStore(":memory:")
        fetch = MagicMock()
        assert _orchestrator(scheduler, store, fetch).refresh() is RefreshResult.SKIPPED_NO_CREDENTIAL
        fetch.assert_not_called()

    def test_rate_limit_window_active(self, scheduler, store):
        store.set_rate_limit_until(NOW + timedelta(minutes=5))
        fetch = MagicMock()
        assert _orchestrator(scheduler, store, fetch).refresh() is RefreshResult.SKIPPED_RATE_LIMITED
        fetch.assert_not_called()
        scheduler.on_success.assert_not_called()

    def test_expired_rate_limit_window_is_cleared(self, scheduler, store):
        store.set_rate_limit_until(NOW - timedelta(seconds=1))
        fetch = MagicMock(return_value=[])
        assert _orchestrator(scheduler, store, fetch).refresh() is RefreshResult.REFRESHED
        assert store.get_rate_limit_until() is None

    def test_fetched_too_recently(self, scheduler, store):
        store.replace_pull_requests([], fetched_at=NOW - timedelta(seconds=30))
        fetch = MagicMock()
        assert _orchestrator(scheduler, store, fetch).refresh() is RefreshResult.SKIPPED_TOO_SOON
        fetch.assert_not_called()

    def test_fetched_a_minute_ago_is_allowed(self, scheduler, store):
        store.replace_pull_requests([], fetched_at=NOW - timedelta(seconds=60))
        fetch = MagicMock(return_value=[])
        assert _orchestrator(scheduler, store, fetch).refresh() is RefreshResult.REFRESHED

    def test_no_credential_checked_before_rate_limit(self, scheduler):
        store = SQLiteStore(":memory:")
        store.set_rate_limit_until(NOW + timedelta(minutes=5))
        assert _orchestrator(scheduler, store, MagicMock()).refresh() is RefreshResult.SKIPPED_NO_CREDENTIAL


# ---------------------------------------------------------------------------
# Fetch outcomes
# ---------------------------------------------------------------------------


class TestFetchOutcomes:
    def test_passes_credential_and_timeout_to_fetch(self, scheduler, store):
        fetch = MagicMock(return_value=[])
        RefreshOrchestrator(scheduler, store, fetch=fetch, fetch_timeout=12.5, clock=lambda: NOW).refresh()
        fetch.assert_called_once_with("tok", "me", 12.5)

    def test_rate_limited_persists_window_and_backs_off(self, scheduler, store):
        until = NOW + timedelta(minutes=30)
        fetch = MagicMock(side_effect=RateLimited(until))
        assert _orchestrator(scheduler, store, fetch).refresh() is RefreshResult.RATE_LIMITED
        assert store.get_rate_limit_until() == until
        scheduler.on_rate_limited.assert_called_once()
        scheduler.stop.assert_not_called()

    def test_rate_limited_skips_next_cycle(self, scheduler, store):
        fetch = MagicMock(side_effect=RateLimited(NOW + timedelta(minutes=30)))
        orch = _orchestrator(scheduler, store, fetch)
        orch.refresh()
        assert orch.refresh() is RefreshResult.SKIPPED_RATE_LIMITED
        assert fetch.call_count == 1

    def test_client_error_halts_polling(self, scheduler, store):
        fetch = MagicMock(side_effect=ClientError("GitHub response code 401"))
        orch = _orchestrator(scheduler, store, fetch)
        assert orch.refresh() is RefreshResult.HALTED
        scheduler.stop.assert_called_once()
        assert orch.halted is True
        assert "401" in orch.halted_reason

    def test_server_error_backs_off(self, scheduler, store):
        fetch = MagicMock(side_effect=ServerError("GitHub response code 502"))
        orch = _orchestrator(scheduler, store, fetch)
        assert orch.refresh() is RefreshResult.SERVER_ERROR
        scheduler.on_server_error.assert_called_once()
        scheduler.stop.assert_not_called()
        assert orch.halted is False

    def test_failed_fetch_leaves_stored_prs_alone(self, scheduler, store):
        store.replace_pull_requests([_make_pr()], fetched_at=NOW - timedelta(hours=1))
        fetch = MagicMock(side_effect=ServerError("boom"))
        _orchestrator(scheduler, store, fetch).refresh()
        assert [pr.url for pr in store.list_pull_requests().pull_requests] == [URL]
        assert store.get_last_fetch_time() == NOW - timedelta(hours=1)

    def test_success_classifies_and_stores(self, scheduler, store):
        pr = _make_pr(
            threads=[
                ReviewThread(comments=[ThreadComment("me"), ThreadComment("alice")]),
                ReviewThread(comments=[ThreadComment("alice"), ThreadComment("me")]),
            ]
        )
        fetch = MagicMock(return_value=[pr])
        assert _orchestrator(scheduler, store, fetch).refresh() is RefreshResult.REFRESHED

        scheduler.on_success.assert_called_once()
        stored = store.get_pull_request(URL)
        assert stored.threads_actionable == 1
        assert stored.threads_waiting == 1
        assert store.get_last_fetch_time() == NOW

    def test_success_replaces_previous_prs(self, scheduler, store):
        store.replace_pull_requests([_make_pr(url="https://github.com/o/r/pull/old")], fetched_at=NOW - timedelta(hours=1))
        fetch = MagicMock(return_value=[_make_pr()])
        _orchestrator(scheduler, store, fetch).refresh()
        assert [pr.url for pr in store.list_pull_requests().pull_requests] == [URL]


# ---------------------------------------------------------------------------
# Buried carry-over
# ---------------------------------------------------------------------------


class TestBuried:
    def test_unchanged_pr_stays_buried(self, scheduler, store):
        store.replace_pull_requests([_make_pr()], fetched_at=NOW - timedelta(hours=1))
        assert store.bury(URL) is True

        fetch = MagicMock(return_value=[_make_pr()])
        _orchestrator(scheduler, store, fetch).refresh()
        assert store.get_pull_request(URL).buried is True

    def test_updated_pr_resurfaces(self, scheduler, store):
        store.replace_pull_requests([_make_pr()], fetched_at=NOW - timedelta(hours=1))
        store.bury(URL)

        fetch = MagicMock(return_value=[_make_pr(last_updated=NOW - timedelta(minutes=5))])
        _orchestrator(scheduler, store, fetch).refresh()
        assert store.get_pull_request(URL).buried is False

    def test_snapshot_survives_several_refreshes(self, scheduler, store):
        store.replace_pull_requests([_make_pr()], fetched_at=NOW - timedelta(hours=3))
        store.bury(URL)
        for hours_ago in (2, 1):
            fetch = MagicMock(return_value=[_make_pr()])
            _orchestrator(scheduler, store, fetch, now=NOW - timedelta(hours=hours_ago)).refresh()
        assert store.get_buried() == {URL: NOW - timedelta(hours=1)}

    def test_apply_buried_ignores_unknown_urls(self):
        pr = _make_pr()
        apply_buried([pr], {"https://github.com/o/r/pull/9": NOW})
        assert pr.buried is False

    def test_apply_buried_equal_timestamp_stays_buried(self):
        pr = _make_pr(last_updated=NOW)
        apply_buried([pr], {URL: NOW})
        assert pr.buried is True


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


class TestRun:
    def test_refreshes_once_per_signal_until_stopped(self, scheduler, store):
        scheduler.wait_for_signal.side_effect = [True, True, False]
        orch = _orchestrator(scheduler, store, MagicMock(return_value=[]))
        orch.refresh = MagicMock()
        orch.run()
        assert orch.refresh.call_count == 2

    def test_unexpected_error_backs_off_and_keeps_looping(self, scheduler, store):
        scheduler.wait_for_signal.side_effect = [True, True, False]
        orch = _orchestrator(scheduler, store, MagicMock(return_value=[]))
        orch.refresh = MagicMock(side_effect=[AttributeError("boom"), RefreshResult.REFRESHED])
        orch.run()
        assert orch.refresh.call_count == 2
        scheduler.on_server_error.assert_called_once()

    def test_start_twice_raises(self, scheduler, store):
        scheduler.wait_for_signal.return_value = False
        orch = _orchestrator(scheduler, store, MagicMock())
        orch.start().join(timeout=5)
        with pytest.raises(RuntimeError):
            orch.start()

    def test_halts_the_real_scheduler(self, store):
        scheduler = PollScheduler(timedelta(minutes=5))
        fetch = MagicMock(side_effect=ClientError("bad credentials"))
        orch = RefreshOrchestrator(scheduler, store, fetch=fetch, clock=lambda: NOW)
        thread = orch.start()
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert scheduler.stopped is True
        assert orch.halted_reason == "bad credentials"

    def test_survives_unexpected_fetch_error_with_real_scheduler(self, store):
        scheduler = PollScheduler(timedelta(milliseconds=50))
        fetch = MagicMock(side_effect=[AttributeError("boom"), []])
        orch = RefreshOrchestrator(scheduler, store, fetch=fetch, clock=lambda: NOW)
        thread = orch.start()
        try:
            deadline = time.monotonic() + 3
            while store.get_last_fetch_time() is None and time.monotonic() < deadline:
                time.sleep(0.01)
            assert fetch.call_count == 2
            assert thread.is_alive()
            assert orch.halted is False
            assert store.get_last_fetch_time() == NOW
        finally:
            scheduler.stop()
            thread.join(timeout=5)
        assert not thread.is_alive()
