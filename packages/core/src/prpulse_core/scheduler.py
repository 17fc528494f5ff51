"""Adaptive polling schedule.

PollScheduler owns the polling timer and decides when the refresh loop may
talk to GitHub next. Consumers block on wait_for_signal(); manual refreshes
go through request_refresh(). Fetch outcomes are fed back through
on_success(), on_rate_limited() and on_server_error(), which stretch or
shrink the interval:

- a rate limit doubles the interval immediately,
- a server error multiplies it by 1.5,
- both are capped at ``max_multiplier`` times the base interval,
- recovery is slow: ``cooldown_threshold`` successes in a row halve the
  multiplier again, and any backoff event forgets partial recovery.

The multiplier lives in memory only; a restart polls at the base interval.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prpulse_core.metrics import PulseMetrics

logger = logging.getLogger(__name__)

DEFAULT_MAX_MULTIPLIER = 4.0
DEFAULT_COOLDOWN_THRESHOLD = 3


class PollScheduler:
    """Emits "time to refresh" signals from a background timer thread.

    The first signal is emitted right away so the first refresh happens at
    startup. At most one signal is pending at any time: a signal emitted
    while the previous one has not been consumed is dropped.

    Designed for exactly one consumer of wait_for_signal(); every other
    method is safe to call from any thread.
    """

    def __init__(
        self,
        base_interval: timedelta,
        max_multiplier: float = DEFAULT_MAX_MULTIPLIER,
        cooldown_threshold: int = DEFAULT_COOLDOWN_THRESHOLD,
        metrics: PulseMetrics | None = None,
    ):
        if base_interval <= timedelta(0):
            raise ValueError(f"base_interval must be positive, got {base_interval}")
        if max_multiplier < 1.0:
            raise ValueError(f"max_multiplier must be >= 1.0, got {max_multiplier}")

        self._base_interval = base_interval
        self._max_multiplier = max_multiplier
        self._cooldown_threshold = cooldown_threshold
        self._multiplier = 1.0
        self._consecutive_ok = 0
        self._metrics = metrics

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._signal_pending = False
        self._refresh_requested = False
        self._stopped = False
        self._sync_gauges_locked()

        self._thread = threading.Thread(target=self._run, name="prpulse-scheduler", daemon=True)
        self._thread.start()

    # ------------------------------------------------------------------ #
    # Consumer side                                                        #
    # ------------------------------------------------------------------ #

    def wait_for_signal(self) -> bool:
        """Block until it is time to refresh.

        Returns True for a refresh signal, False once stop() has been
        called. After a stop, every call returns False, even if a signal
        was still pending.
        """
        with self._cond:
            while not self._signal_pending and not self._stopped:
                self._cond.wait()
            if self._stopped:
                return False
            self._signal_pending = False
            return True

    def request_refresh(self) -> None:
        """Ask for a refresh now, without waiting for the timer.

        Never blocks on the timer. If a manual refresh is already pending
        this is a no-op. The timer restarts from the moment the refresh is
        emitted, so a manual refresh pushes the next automatic one back by a
        full interval.
        """
        with self._cond:
            if self._stopped or self._refresh_requested:
                return
            self._refresh_requested = True
            self._cond.notify_all()

    def stop(self) -> None:
        """Stop the timer and release the consumer. Safe to call repeatedly."""
        with self._cond:
            if self._stopped:
                return
            self._stopped = True
            self._cond.notify_all()
        logger.info("Poll scheduler stopped")

    @property
    def stopped(self) -> bool:
        with self._lock:
            return self._stopped

    # ------------------------------------------------------------------ #
    # Fetch outcome feedback                                               #
    # ------------------------------------------------------------------ #

    def on_rate_limited(self) -> None:
        with self._lock:
            self._back_off_locked(2.0)
            interval = self._current_interval_locked()
        logger.warning("Rate limited by GitHub, backing off to %s", interval)

    def on_server_error(self) -> None:
        with self._lock:
            self._back_off_locked(1.5)
            interval = self._current_interval_locked()
        logger.warning("Server error from GitHub, backing off to %s", interval)

    def on_success(self) -> None:
        with self._lock:
            self._consecutive_ok += 1
            if self._consecutive_ok < self._cooldown_threshold or self._multiplier <= 1.0:
                return
            self._multiplier = max(self._multiplier / 2, 1.0)
            self._consecutive_ok = 0
            self._sync_gauges_locked()
            interval = self._current_interval_locked()
        logger.info("GitHub is healthy again, polling every %s", interval)

    # ------------------------------------------------------------------ #
    # Introspection                                                        #
    # ------------------------------------------------------------------ #

    @property
    def base_interval(self) -> timedelta:
        return self._base_interval

    @property
    def multiplier(self) -> float:
        with self._lock:
            return self._multiplier

    def current_interval(self) -> timedelta:
        """Effective polling interval: base interval times the backoff multiplier."""
        with self._lock:
            return self._current_interval_locked()

    # ------------------------------------------------------------------ #
    # Internals (call with the lock held where the name says so)           #
    # ------------------------------------------------------------------ #

    def _back_off_locked(self, factor: float) -> None:
        self._consecutive_ok = 0
        self._multiplier = min(self._multiplier * factor, self._max_multiplier)
        self._sync_gauges_locked()

    def _current_interval_locked(self) -> timedelta:
        return self._base_interval * self._multiplier

    def _sync_gauges_locked(self) -> None:
        if self._metrics is not None:
            self._metrics.observe_schedule(self._current_interval_locked(), self._multiplier)

    def _emit_locked(self) -> None:
        # capacity 1: drop the signal if the previous one is still pending
        if not self._signal_pending:
            self._signal_pending = True
            self._cond.notify_all()

    def _run(self) -> None:
        with self._cond:
            self._emit_locked()
            deadline = time.monotonic() + self._current_interval_locked().total_seconds()

            while not self._stopped:
                if self._refresh_requested:
                    self._refresh_requested = False
                    logger.debug("Manual refresh requested")
                else:
                    remaining = deadline - time.monotonic()
                    if remaining > 0:
                        self._cond.wait(remaining)
                        continue

                self._emit_locked()
                deadline = time.monotonic() + self._current_interval_locked().total_seconds()
