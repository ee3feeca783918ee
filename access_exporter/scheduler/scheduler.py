"""
Scheduler Module

This module drives periodic inventory collection. Every poll is a one-shot
APScheduler job; the next one is armed only after the current cycle has
finished, with a delay stretched by exponential backoff after failed cycles
and perturbed by jitter so that several exporters don't poll in lockstep.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import random
import threading

from access_exporter.metrics import Reconciler

logger = logging.getLogger(__name__)

# Backoff multiplier is 2 ** min(errors, MAX_BACKOFF_EXPONENT), i.e. at most 8x.
MAX_BACKOFF_EXPONENT = 3
JITTER_FRACTION = 0.1
# The first poll happens within the first quarter of the interval.
STARTUP_JITTER_FRACTION = 0.25


class PollScheduler:
    """Scheduler for periodic inventory collection with jitter and backoff."""

    def __init__(self, reconciler: Reconciler, interval_seconds: float = 60):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds

        self._scheduler = BackgroundScheduler()
        self._running = False
        # A shut down BackgroundScheduler cannot submit jobs again.
        self._shut_down = False
        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._pending_job = None

    def start(self) -> None:
        """Start the scheduler and arm the first poll after a random startup delay."""
        with self._state_lock:
            if self._running:
                return
            if self._shut_down:
                self._scheduler = BackgroundScheduler()
                self._shut_down = False
            self._scheduler.start()
            self._running = True
            delay = random.uniform(0, self.interval_seconds * STARTUP_JITTER_FRACTION)
            self._arm(delay)

        logger.info(f"Poll scheduler started with interval of {self.interval_seconds} seconds, "
                    f"first collection in {delay:.1f}s")

    def stop(self) -> None:
        """Stop polling. A cycle already running finishes, but no further poll is armed."""
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            self._pending_job = None
            self._scheduler.shutdown(wait=False)
            self._shut_down = True
        logger.info("Poll scheduler stopped")

    def run_until(self, stop_event: threading.Event) -> None:
        """Run until stop_event is set."""
        self.start()
        try:
            stop_event.wait()
        finally:
            self.stop()

    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running

    @property
    def next_run_time(self) -> Optional[datetime]:
        job = self._pending_job
        return job.next_run_time if job is not None else None

    def trigger_collection(self) -> None:
        """Manually run a collection cycle without re-arming the schedule."""
        self._collection_cycle()

    def compute_next_interval(self) -> float:
        """Return the delay in seconds before the next poll."""
        interval = float(self.interval_seconds)

        errors = self.reconciler.consecutive_errors
        if errors > 0:
            interval *= 2 ** min(errors, MAX_BACKOFF_EXPONENT)
            logger.debug(f"Applying backoff: consecutive_errors={errors}, interval={interval:.1f}s")

        return interval * (1 + random.uniform(-JITTER_FRACTION, JITTER_FRACTION))

    def _arm(self, delay: float) -> None:
        # A fresh job id per poll: APScheduler drops a finished date job on its
        # own schedule, which must not race with the job armed after it.
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        self._pending_job = self._scheduler.add_job(
            self._poll,
            trigger=DateTrigger(run_date=run_date),
            name='Inventory Collection Job',
            max_instances=1,
            misfire_grace_time=None
        )

    def _poll(self) -> None:
        if not self._running:
            return

        self._collection_cycle()

        with self._state_lock:
            if not self._running:
                return
            interval = self.compute_next_interval()
            self._arm(interval)
        logger.debug(f"Next collection in {interval:.1f}s")

    def _collection_cycle(self) -> None:
        """Execute a single collection cycle."""
        with self._cycle_lock:
            try:
                result = self.reconciler.run_cycle()
            except Exception:
                logger.exception("Collection cycle failed unexpectedly")
                self.reconciler.record_failure()
                return

        if result.ok:
            logger.info(f"Collection cycle completed for {result.cluster_name} in {result.duration:.2f}s")
        elif not result.identity_ok:
            logger.warning(f"Collection cycle aborted: control plane unreachable "
                           f"(consecutive errors: {self.reconciler.consecutive_errors})")
        else:
            logger.warning(f"Collection cycle completed with errors for "
                           f"{[k.value for k in result.failed_kinds]} "
                           f"(consecutive errors: {self.reconciler.consecutive_errors})")
