"""Polling engine — runs one tick end to end and owns the shared state.

One tick:

1. Read a snapshot of the configuration (targets, credentials).
2. Fan fetch+evaluate out over the fetch pool.
3. Reduce the results into an ``AggregateStatus``.
4. Detect transitions against the previous tick's table, staging the
   next table off to the side.
5. Swap the table and aggregate in, then publish notifications and the
   aggregate.

The transition table and the latest aggregate are the only mutable state
shared with readers.  Both are replaced by reference under a small lock
once per completed tick, so a reader sees either the previous tick or the
new one, never a mix.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import datetime, timezone

from cdmenu.bitbucket.fetcher import PipelineFetcher
from cdmenu.config import MonitorConfig
from cdmenu.core.aggregate import compute_aggregate
from cdmenu.core.broadcaster import StatusBroadcaster
from cdmenu.core.fetch_pool import FetchPool
from cdmenu.core.transitions import (
    NotificationPolicy,
    TransitionRecord,
    TransitionTable,
    detect,
)
from cdmenu.errors import ConfigurationError
from cdmenu.models.events import (
    ConditionEvent,
    ConditionKind,
    NotificationEvent,
    TickOutcome,
    TickReport,
)
from cdmenu.models.status import AggregateStatus, TargetStatus
from cdmenu.models.targets import Credentials, MonitoredTarget
from cdmenu.providers import ConfigProvider

logger = logging.getLogger(__name__)


class PollingEngine:
    """Tick orchestration for the pipeline monitor.

    Parameters
    ----------
    provider:
        Source of targets and credentials, read once per tick.
    fetcher:
        Remote run fetcher handed to the fetch pool.
    settings:
        Process configuration.  Uses defaults if not provided.
    policy:
        Which optional transitions notify.  Defaults to the values in
        *settings*.
    broadcaster:
        Outbound channels.  A private one is created if not provided.
    pool:
        Pre-built fetch pool (tests inject one with short timeouts).
    """

    def __init__(
        self,
        provider: ConfigProvider,
        fetcher: PipelineFetcher,
        *,
        settings: MonitorConfig | None = None,
        policy: NotificationPolicy | None = None,
        broadcaster: StatusBroadcaster | None = None,
        pool: FetchPool | None = None,
    ) -> None:
        self._settings = settings or MonitorConfig()
        self.provider = provider
        self.policy = policy or NotificationPolicy(
            notify_on_unknown=self._settings.notify_on_unknown,
            notify_on_monitoring_recovery=self._settings.notify_on_monitoring_recovery,
        )
        self.broadcaster = broadcaster or StatusBroadcaster(self._settings.broadcast_queue_size)
        self.pool = pool or FetchPool(
            fetcher,
            max_workers=self._settings.max_concurrent_fetches,
            fetch_timeout=self._settings.fetch_timeout_seconds,
        )

        # Shared state, replaced by reference once per completed tick
        self._state_lock = threading.Lock()
        self._table = TransitionTable()
        self._aggregate = AggregateStatus.empty()

        # Tick bookkeeping (only touched while holding _tick_lock)
        self._tick_lock = threading.Lock()
        self._tick_id = 0
        self._condition = ConditionKind.OK
        self._consecutive_auth_failures = 0
        self._last_report: TickReport | None = None

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def get_current_aggregate_status(self) -> AggregateStatus:
        """Latest completed tick's aggregate.  No side effects."""
        with self._state_lock:
            return self._aggregate

    @property
    def transition_table(self) -> TransitionTable:
        with self._state_lock:
            return self._table

    def snapshot(self) -> tuple[TransitionTable, AggregateStatus]:
        """The table and aggregate of the same completed tick."""
        with self._state_lock:
            return self._table, self._aggregate

    @property
    def condition(self) -> ConditionKind:
        return self._condition

    @property
    def last_report(self) -> TickReport | None:
        return self._last_report

    @property
    def ticks_started(self) -> int:
        return self._tick_id

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def run_tick(self) -> TickReport:
        """Run one tick, or report ``SKIPPED_BUSY`` if one is already running."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Tick requested while another is running; skipping")
            return TickReport(
                tick_id=self._tick_id,
                outcome=TickOutcome.SKIPPED_BUSY,
                reason="A tick is already running",
            )
        try:
            report = self._run_tick_locked()
            self._last_report = report
            return report
        finally:
            self._tick_lock.release()

    def _run_tick_locked(self) -> TickReport:
        self._tick_id += 1
        tick_id = self._tick_id
        started_at = datetime.now(timezone.utc)

        targets = tuple(self.provider.get_monitored_targets())
        credentials = self.provider.get_credentials()
        try:
            credentials = self._require_configured(targets, credentials)
        except ConfigurationError as exc:
            logger.info("Skipping tick %d: %s", tick_id, exc)
            self._set_condition(ConditionKind.UNCONFIGURED, str(exc))
            return TickReport(
                tick_id=tick_id,
                outcome=TickOutcome.SKIPPED_UNCONFIGURED,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                reason=str(exc),
            )

        logger.debug("Tick %d: checking %d pipelines", tick_id, len(targets))
        results = self.pool.run_tick(targets, credentials)
        checked_at = datetime.now(timezone.utc)
        aggregate = compute_aggregate(results, checked_at)

        previous_table = self.transition_table
        notifications, staged = self._detect_transitions(previous_table, results)

        with self._state_lock:
            self._table = previous_table.successor(staged)
            self._aggregate = aggregate

        for event in notifications:
            self.broadcaster.notifications.publish(event)
        self.broadcaster.status.publish(aggregate)

        auth_failed = all(entry.status.auth_failed for entry in results)
        rate_limited = any(entry.status.rate_limited for entry in results)
        retry_after = max(
            (e.status.retry_after for e in results if e.status.retry_after is not None),
            default=None,
        )
        self._track_auth(auth_failed)
        if rate_limited:
            logger.warning("Tick %d was rate limited by the CI API", tick_id)

        logger.info(
            "Tick %d complete: %d pipelines, healthy=%s, %d notification(s)",
            tick_id,
            aggregate.total_monitored,
            aggregate.is_healthy,
            len(notifications),
        )
        return TickReport(
            tick_id=tick_id,
            outcome=TickOutcome.COMPLETED,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            aggregate=aggregate,
            notifications=notifications,
            auth_failed=auth_failed,
            rate_limited=rate_limited,
            retry_after=retry_after,
        )

    def _detect_transitions(
        self, table: TransitionTable, results: Sequence[TargetStatus]
    ) -> tuple[list[NotificationEvent], dict[str, TransitionRecord]]:
        notifications: list[NotificationEvent] = []
        staged: dict[str, TransitionRecord] = {}
        for entry in results:
            key = entry.target.key
            previous = table.get(key)
            event = detect(previous, entry.status, entry.target, self.policy)
            if event is not None:
                notifications.append(event)
            if previous is None:
                staged[key] = TransitionRecord.first(entry.status)
            else:
                staged[key] = previous.advance(entry.status)
        return notifications, staged

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    @staticmethod
    def _require_configured(
        targets: Sequence[MonitoredTarget], credentials: Credentials | None
    ) -> Credentials:
        if credentials is None:
            raise ConfigurationError("No credentials configured")
        if not targets:
            raise ConfigurationError("No pipelines selected for monitoring")
        return credentials

    def _track_auth(self, auth_failed: bool) -> None:
        if not auth_failed:
            self._consecutive_auth_failures = 0
            self._set_condition(ConditionKind.OK)
            return

        self._consecutive_auth_failures += 1
        if self._consecutive_auth_failures >= self._settings.auth_failure_threshold:
            logger.error(
                "Authentication failed for %d consecutive ticks; check username and app password",
                self._consecutive_auth_failures,
            )
        self._set_condition(
            ConditionKind.AUTHENTICATION_FAILED,
            "Authentication failed - check username and app password",
        )

    def _set_condition(self, kind: ConditionKind, message: str = "") -> None:
        if kind == self._condition:
            return
        self._condition = kind
        self.broadcaster.conditions.publish(
            ConditionEvent(
                kind=kind,
                message=message,
                consecutive_ticks=max(1, self._consecutive_auth_failures),
            )
        )
