"""Poll scheduler — decides *when* the engine ticks.

A single daemon thread waits on a wake event with the poll interval as
timeout.  Manual triggers set a pending flag and wake the thread; a
trigger that arrives while a tick is running is folded into exactly one
follow-up tick, so a burst of refresh clicks never queues up more than
one extra tick and never runs two ticks at once.
"""

from __future__ import annotations

import logging
import threading

from cdmenu.config import MonitorConfig
from cdmenu.core.engine import PollingEngine
from cdmenu.errors import ConfigurationError
from cdmenu.models.events import TickReport
from cdmenu.providers import validate_interval

logger = logging.getLogger(__name__)


class PollScheduler:
    """Timer-driven loop around a ``PollingEngine``.

    Parameters
    ----------
    engine:
        The engine to tick.
    settings:
        Process configuration (floor, initial delay, backoff).
    interval:
        Fixed poll interval in seconds.  When omitted, the interval is
        read from the engine's provider before every wait.
    """

    def __init__(
        self,
        engine: PollingEngine,
        *,
        settings: MonitorConfig | None = None,
        interval: int | None = None,
    ) -> None:
        settings = settings or MonitorConfig()
        self._engine = engine
        self.min_interval = settings.min_poll_interval_seconds
        self.default_interval = settings.default_poll_interval_seconds
        self.initial_delay = settings.initial_delay_seconds
        self.rate_limit_backoff = settings.rate_limit_backoff_seconds

        self._interval: int | None = None
        if interval is not None:
            self._interval = validate_interval(interval, self.min_interval)

        self._tick_lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending = False
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._ticks_run = 0

    @property
    def engine(self) -> PollingEngine:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks_run(self) -> int:
        return self._ticks_run

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="cdmenu-scheduler", daemon=True)
        self._thread.start()
        logger.info("Poll scheduler started (interval %ds)", self.current_interval())

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop.  An in-flight tick finishes before the thread exits."""
        self._stop.set()
        self._wake.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Scheduler thread did not stop within %ss", timeout)
                return
        self._thread = None
        self._stop.clear()
        logger.info("Poll scheduler stopped")

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def trigger_manual_tick(self) -> TickReport | None:
        """Request a tick now.

        With the loop running, the request is handed to the scheduler
        thread and ``None`` is returned.  Otherwise the tick runs in the
        caller's thread; ``None`` is then returned only when the request
        was folded into a tick another thread is running.
        """
        if self.is_running:
            with self._pending_lock:
                self._pending = True
                self._wake.set()
            return None
        return self._run_pending()

    def set_poll_interval(self, seconds: int) -> None:
        """Change the interval; applies from the next scheduled wait."""
        self._interval = validate_interval(seconds, self.min_interval)
        logger.info("Poll interval set to %ds", self._interval)

    def current_interval(self) -> int:
        if self._interval is not None:
            return self._interval
        interval = self._engine.provider.get_interval()
        try:
            return validate_interval(interval, self.min_interval)
        except ConfigurationError as exc:
            logger.warning("%s; using %ds", exc, self.default_interval)
            return self.default_interval

    def next_delay(self, report: TickReport | None) -> float:
        """Seconds to wait after *report* before the next natural tick."""
        interval = self.current_interval()
        if report is not None and report.rate_limited:
            backoff = self.rate_limit_backoff
            extra = interval if backoff is None else backoff
            if report.retry_after is not None:
                extra = max(extra, report.retry_after)
            logger.info("Backing off %.0fs after rate limiting", extra)
            return interval + extra
        return float(interval)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _loop(self) -> None:
        delay = float(self.initial_delay)
        while not self._stop.is_set():
            self._wake.wait(timeout=delay)
            if self._stop.is_set():
                break
            try:
                report = self._run_pending()
            except Exception:  # noqa: BLE001
                # Keep polling; the next tick gets a fresh configuration read.
                logger.exception("Tick failed unexpectedly")
                report = None
            delay = self.next_delay(report)

    def _run_pending(self) -> TickReport | None:
        """Run ticks while a request is pending, one at a time.

        The flag is raised before the lock is tried, and the holder checks
        it again after releasing, so a request is never lost between the
        two.
        """
        with self._pending_lock:
            self._pending = True
        report: TickReport | None = None
        while True:
            with self._pending_lock:
                if not self._pending or self._stop.is_set():
                    return report
            if not self._tick_lock.acquire(blocking=False):
                return report
            try:
                with self._pending_lock:
                    if not self._pending:
                        return report
                    self._pending = False
                    self._wake.clear()
                report = self._engine.run_tick()
                self._ticks_run += 1
            finally:
                self._tick_lock.release()
