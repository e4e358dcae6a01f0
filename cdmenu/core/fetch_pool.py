"""Fetch pool — fans fetch+evaluate out across every target of a tick.

At most ``max_workers`` fetches are in flight at once whatever the number
of targets.  Every fetch has its own time limit, measured from the moment
a worker actually starts it.  A timeout, transport error or any other
exception turns into an ``UNKNOWN`` status for that target only; nothing
raised by a fetch ever escapes ``run_tick``.

Results come back in configured target order, not completion order.
"""

from __future__ import annotations

import concurrent.futures
import logging
import math
import threading
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from cdmenu.bitbucket.fetcher import PipelineFetcher
from cdmenu.core.evaluator import evaluate
from cdmenu.errors import FetchError
from cdmenu.models.status import PipelineStatus, TargetStatus
from cdmenu.models.targets import Credentials, MonitoredTarget

logger = logging.getLogger(__name__)

MIN_WORKERS = 1
MAX_WORKERS = 16
DEFAULT_WORKERS = 6
DEFAULT_FETCH_TIMEOUT = 30.0
_POLL_SLICE = 0.05  # re-check cadence while jobs are still queued


class _FetchJob:
    """Bookkeeping for one target's fetch within a tick."""

    __slots__ = ("index", "target", "started_at")

    def __init__(self, index: int, target: MonitoredTarget) -> None:
        self.index = index
        self.target = target
        self.started_at: float | None = None


class FetchPool:
    """Bounded-parallelism fetch+evaluate for one tick.

    Parameters
    ----------
    fetcher:
        The remote run fetcher (``PipelineFetcher`` protocol).
    max_workers:
        Upper bound on concurrent in-flight fetches, clamped to 1..16.
    fetch_timeout:
        Seconds each individual fetch may take once started.
    """

    def __init__(
        self,
        fetcher: PipelineFetcher,
        max_workers: int = DEFAULT_WORKERS,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self._fetcher = fetcher
        self.max_workers = max(MIN_WORKERS, min(MAX_WORKERS, int(max_workers)))
        self.fetch_timeout = float(fetch_timeout)
        self._in_flight = 0
        self._peak_in_flight = 0
        self._counter_lock = threading.Lock()

    @property
    def peak_in_flight(self) -> int:
        """Highest number of simultaneous fetches observed so far."""
        return self._peak_in_flight

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def run_tick(
        self, targets: Sequence[MonitoredTarget], credentials: Credentials
    ) -> list[TargetStatus]:
        """Fetch and evaluate every target, returning one status each.

        Returns only once every target has a result: a CI-reported state,
        or ``UNKNOWN`` for fetch failures and timeouts.
        """
        if not targets:
            return []

        jobs = [_FetchJob(i, t) for i, t in enumerate(targets)]
        results: dict[int, PipelineStatus] = {}

        # Backstop for workers that never return: no job can legitimately
        # need longer than every wave of the pool timing out in turn.
        waves = math.ceil(len(jobs) / self.max_workers)
        tick_deadline = time.monotonic() + self.fetch_timeout * (waves + 1)

        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="cdmenu-fetch"
        )
        try:
            pending = {executor.submit(self._run_job, job, credentials): job for job in jobs}
            while pending:
                now = time.monotonic()
                wait_for = self._next_wait(pending.values(), now, tick_deadline)
                done, _ = concurrent.futures.wait(
                    pending, timeout=wait_for, return_when=concurrent.futures.FIRST_COMPLETED
                )
                for future in done:
                    job = pending.pop(future)
                    results[job.index] = self._collect(job, future)

                now = time.monotonic()
                for future, job in list(pending.items()):
                    expired = job.started_at is not None and now - job.started_at >= self.fetch_timeout
                    if expired or now >= tick_deadline:
                        del pending[future]
                        future.cancel()
                        logger.warning(
                            "Fetch for %s timed out after %.0fs", job.target.key, self.fetch_timeout
                        )
                        results[job.index] = PipelineStatus.unknown(
                            f"Timed out after {self.fetch_timeout:g}s",
                            pipeline_url=job.target.web_url,
                        )
        finally:
            # Abandon stuck workers instead of blocking the tick on them.
            executor.shutdown(wait=False, cancel_futures=True)

        return [TargetStatus(target=job.target, status=results[job.index]) for job in jobs]

    def _next_wait(self, jobs, now: float, tick_deadline: float) -> float:
        deadlines = [
            job.started_at + self.fetch_timeout for job in jobs if job.started_at is not None
        ]
        deadlines.append(tick_deadline)
        wait_for = max(0.0, min(deadlines) - now)
        if any(job.started_at is None for job in jobs):
            # A queued job may start at any moment; its clock must be seen.
            wait_for = min(wait_for, _POLL_SLICE)
        return wait_for

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _run_job(self, job: _FetchJob, credentials: Credentials) -> PipelineStatus:
        job.started_at = time.monotonic()
        with self._counter_lock:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
        try:
            return self.fetch_one(job.target, credentials)
        finally:
            with self._counter_lock:
                self._in_flight -= 1

    def fetch_one(self, target: MonitoredTarget, credentials: Credentials) -> PipelineStatus:
        """Fetch and evaluate a single target.  Never raises."""
        observed_at = datetime.now(timezone.utc)
        try:
            raw_run = self._fetcher.fetch_latest_run(target, credentials)
        except FetchError as exc:
            logger.warning("Failed to check pipeline %s: %s", target.key, exc)
            return evaluate(exc, target, observed_at=observed_at)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error checking pipeline %s", target.key)
            return PipelineStatus.unknown(
                f"Error: {exc}", observed_at=observed_at, pipeline_url=target.web_url
            )
        return evaluate(raw_run, target, observed_at=observed_at)

    def _collect(
        self, job: _FetchJob, future: concurrent.futures.Future[PipelineStatus]
    ) -> PipelineStatus:
        exc = future.exception()
        if exc is None:
            return future.result()
        logger.error("Fetch worker for %s crashed: %s", job.target.key, exc)
        return PipelineStatus.unknown(f"Error: {exc}", pipeline_url=job.target.web_url)
