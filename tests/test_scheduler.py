"""
Unit tests for PollScheduler pacing and lifecycle.
"""
import threading
import time
from unittest.mock import patch, MagicMock

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from access_exporter.metrics import CycleResult, Reconciler
from access_exporter.scheduler import PollScheduler
from access_exporter.scheduler.scheduler import STARTUP_JITTER_FRACTION

BASE = 60.0


def _scheduler(errors=0, interval=BASE):
    reconciler = MagicMock()
    reconciler.consecutive_errors = errors
    reconciler.run_cycle.return_value = CycleResult(cluster_name="test-cluster", duration=0.1)
    scheduler = PollScheduler(reconciler, interval_seconds=interval)
    scheduler._scheduler = MagicMock()
    return scheduler


class TestComputeNextInterval:
    """Tests for backoff and jitter."""

    @pytest.mark.parametrize("errors,multiplier", [
        (0, 1),
        (1, 2),
        (2, 4),
        (3, 8),
        (4, 8),
        (10, 8),
    ])
    def test_within_ten_percent_of_backed_off_interval(self, errors, multiplier):
        scheduler = _scheduler(errors=errors)
        nominal = BASE * multiplier

        for _ in range(200):
            interval = scheduler.compute_next_interval()
            assert nominal * 0.9 <= interval <= nominal * 1.1

    def test_jitter_extremes(self):
        scheduler = _scheduler(errors=1)

        with patch('access_exporter.scheduler.scheduler.random.uniform', return_value=0.1):
            assert scheduler.compute_next_interval() == pytest.approx(BASE * 2 * 1.1)
        with patch('access_exporter.scheduler.scheduler.random.uniform', return_value=-0.1):
            assert scheduler.compute_next_interval() == pytest.approx(BASE * 2 * 0.9)

    def test_multiplier_never_exceeds_eight(self):
        scheduler = _scheduler(errors=1000)

        with patch('access_exporter.scheduler.scheduler.random.uniform', return_value=0.0):
            assert scheduler.compute_next_interval() == pytest.approx(BASE * 8)

    def test_reads_live_error_count(self):
        scheduler = _scheduler(errors=0)

        with patch('access_exporter.scheduler.scheduler.random.uniform', return_value=0.0):
            assert scheduler.compute_next_interval() == pytest.approx(BASE)
            scheduler.reconciler.consecutive_errors = 2
            assert scheduler.compute_next_interval() == pytest.approx(BASE * 4)

    def test_uses_real_reconciler_error_count(self, source, metrics):
        reconciler = Reconciler(source, metrics)
        reconciler.record_failure()
        scheduler = PollScheduler(reconciler, interval_seconds=BASE)

        with patch('access_exporter.scheduler.scheduler.random.uniform', return_value=0.0):
            assert scheduler.compute_next_interval() == pytest.approx(BASE * 2)


class TestPollScheduler:
    """Tests for the scheduling lifecycle."""

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PollScheduler(MagicMock(), interval_seconds=0)

    def test_start_arms_first_poll_with_startup_jitter(self):
        scheduler = _scheduler()

        with patch('access_exporter.scheduler.scheduler.random.uniform', return_value=3.0) as uniform:
            scheduler.start()

        uniform.assert_called_once_with(0, BASE * STARTUP_JITTER_FRACTION)
        scheduler._scheduler.start.assert_called_once()
        scheduler._scheduler.add_job.assert_called_once()
        assert scheduler.is_running()
        scheduler.reconciler.run_cycle.assert_not_called()

    def test_start_is_idempotent(self):
        scheduler = _scheduler()
        scheduler.start()
        scheduler.start()

        scheduler._scheduler.start.assert_called_once()

    def test_poll_runs_cycle_and_rearms(self):
        scheduler = _scheduler()
        scheduler.start()

        scheduler._poll()

        scheduler.reconciler.run_cycle.assert_called_once()
        assert scheduler._scheduler.add_job.call_count == 2

    def test_stop_prevents_further_polls(self):
        scheduler = _scheduler()
        scheduler.start()
        scheduler.stop()

        scheduler._poll()

        scheduler.reconciler.run_cycle.assert_not_called()
        scheduler._scheduler.shutdown.assert_called_once_with(wait=False)
        assert not scheduler.is_running()

    def test_stop_during_cycle_finishes_cycle_without_rearming(self):
        scheduler = _scheduler()
        result = CycleResult(cluster_name="test-cluster", duration=0.1)

        def cycle():
            scheduler.stop()
            return result

        scheduler.reconciler.run_cycle.side_effect = cycle
        scheduler.start()

        scheduler._poll()

        scheduler.reconciler.run_cycle.assert_called_once()
        assert scheduler._scheduler.add_job.call_count == 1

    def test_unexpected_cycle_error_counts_as_failure(self):
        scheduler = _scheduler()
        scheduler.reconciler.run_cycle.side_effect = RuntimeError("boom")
        scheduler.start()

        scheduler._poll()

        scheduler.reconciler.record_failure.assert_called_once()
        assert scheduler._scheduler.add_job.call_count == 2

    def test_trigger_collection_does_not_rearm(self):
        scheduler = _scheduler()

        scheduler.trigger_collection()

        scheduler.reconciler.run_cycle.assert_called_once()
        scheduler._scheduler.add_job.assert_not_called()

    def test_run_until_stops_when_event_set(self):
        scheduler = _scheduler()
        stop_event = threading.Event()
        stop_event.set()

        scheduler.run_until(stop_event)

        scheduler._scheduler.start.assert_called_once()
        scheduler._scheduler.shutdown.assert_called_once_with(wait=False)
        assert not scheduler.is_running()

    def test_restart_after_stop_uses_fresh_scheduler(self):
        scheduler = _scheduler()
        stopped = scheduler._scheduler
        scheduler.start()
        scheduler.stop()

        scheduler.start()

        assert scheduler._scheduler is not stopped
        assert isinstance(scheduler._scheduler, BackgroundScheduler)
        assert scheduler.is_running()
        scheduler.stop()


def _wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()


class TestPollSchedulerLoop:
    """Tests that drive the real APScheduler loop against the stub source."""

    INTERVAL = 0.2

    def _identity_calls(self, source):
        return source.calls.count('identity')

    def test_polls_repeatedly_until_stopped(self, source, reconciler):
        scheduler = PollScheduler(reconciler, interval_seconds=self.INTERVAL)
        scheduler.start()
        try:
            assert _wait_for(lambda: self._identity_calls(source) >= 3)
        finally:
            scheduler.stop()

        # Let a cycle that was already running finish.
        time.sleep(self.INTERVAL)
        calls_after_stop = self._identity_calls(source)
        time.sleep(self.INTERVAL * 3)

        assert self._identity_calls(source) == calls_after_stop
        assert not scheduler.is_running()

    def test_polling_resumes_after_restart(self, source, reconciler):
        scheduler = PollScheduler(reconciler, interval_seconds=self.INTERVAL)
        scheduler.start()
        try:
            assert _wait_for(lambda: self._identity_calls(source) >= 1)
        finally:
            scheduler.stop()
        time.sleep(self.INTERVAL)
        calls_after_stop = self._identity_calls(source)

        scheduler.start()
        try:
            assert _wait_for(lambda: self._identity_calls(source) >= calls_after_stop + 2)
        finally:
            scheduler.stop()

    def test_failing_source_keeps_polling_with_backoff(self, source, reconciler):
        source.identity_error = ConnectionError("refused")
        scheduler = PollScheduler(reconciler, interval_seconds=0.05)
        scheduler.start()
        try:
            assert _wait_for(lambda: reconciler.consecutive_errors >= 2)
        finally:
            scheduler.stop()
        assert reconciler.metrics.sample('up') == 0
