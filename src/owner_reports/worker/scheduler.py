"""Polling scheduler that claims report jobs and drives the retention sweep."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from owner_reports.worker.collaborators import ProgressSink
from owner_reports.worker.models import JobStatus
from owner_reports.worker.pipeline import ReportPipeline
from owner_reports.worker.repository import JobRepository
from owner_reports.worker.sweeper import RetentionSweeper

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 3600.0


@dataclass(slots=True)
class SchedulerTickSummary:
    """What happened during one poll iteration."""

    claimed: bool = False
    job_id: str | None = None
    job_status: JobStatus | None = None
    swept: bool = False
    purged: int = 0
    errors: int = 0


@dataclass(slots=True)
class SchedulerRunSummary:
    """Aggregate counters for CLI reporting."""

    iterations: int = 0
    processed: int = 0
    completed: int = 0
    failed: int = 0
    idle_polls: int = 0
    sweeps: int = 0
    purged: int = 0
    errors: int = 0

    def add(self, tick: SchedulerTickSummary) -> None:
        self.iterations += 1
        if tick.claimed:
            self.processed += 1
        else:
            self.idle_polls += 1
        if tick.job_status is JobStatus.COMPLETED:
            self.completed += 1
        elif tick.job_status is JobStatus.FAILED:
            self.failed += 1
        if tick.swept:
            self.sweeps += 1
        self.purged += tick.purged
        self.errors += tick.errors


class ReportScheduler:
    """Claims at most one job per poll and runs it to completion before the next.

    The sweep runs on its own timer, checked after every iteration whether or
    not a job was processed. Clock and sleep are injectable so the loop can be
    exercised without wall-clock waits.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobRepository,
        pipeline: ReportPipeline,
        sweeper: RetentionSweeper,
        worker_id: str,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        progress: ProgressSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.repository = repository
        self.pipeline = pipeline
        self.sweeper = sweeper
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.progress = progress
        self._clock = clock
        self._sleep = sleep or self._sleep_with_stop
        self._last_sweep_at: float | None = None
        self._stop_requested = False

    def run_once(self) -> SchedulerTickSummary:
        """One poll iteration: claim and run at most one job, then sweep if due."""

        tick = SchedulerTickSummary()
        try:
            job = self.repository.claim_next_pending(worker_id=self.worker_id)
            if job is not None:
                tick.claimed = True
                tick.job_id = job.job_id
                outcome = self.pipeline.run(job, progress=self.progress)
                tick.job_status = outcome.status
                if not outcome.store_write_ok:
                    tick.errors += 1
        except Exception:  # noqa: BLE001
            tick.errors += 1
            logger.exception("Worker iteration failed")

        if self._sweep_due():
            tick.swept = True
            try:
                summary = self.sweeper.sweep()
                tick.purged = summary.purged
            except Exception:  # noqa: BLE001
                tick.errors += 1
                logger.exception("Retention sweep failed")
            finally:
                self._last_sweep_at = self._clock()
        return tick

    def run_loop(self, *, max_iterations: int | None = None) -> SchedulerRunSummary:
        """Poll until stopped by a signal or `max_iterations` is reached."""

        aggregate = SchedulerRunSummary()
        logger.info(
            "Report worker %s started: poll=%ss sweep=%ss",
            self.worker_id,
            self.poll_interval_seconds,
            self.sweep_interval_seconds,
        )
        with self._signal_handlers():
            while True:
                aggregate.add(self.run_once())
                if self._stop_requested:
                    break
                if max_iterations is not None and aggregate.iterations >= max_iterations:
                    break
                self._sleep(self.poll_interval_seconds)
                if self._stop_requested:
                    break
        logger.info(
            "Report worker %s stopped after %d iteration(s)",
            self.worker_id,
            aggregate.iterations,
        )
        return aggregate

    def request_stop(self) -> None:
        self._stop_requested = True

    def _sweep_due(self) -> bool:
        if self._last_sweep_at is None:
            return True
        return self._clock() - self._last_sweep_at >= self.sweep_interval_seconds

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.info("Received %s; stopping after the current iteration", name)
            self.request_stop()

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
