"""Transient events emitted by the engine: notifications, conditions, tick reports."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cdmenu.models.status import AggregateStatus, PipelineStatus
from cdmenu.models.targets import MonitoredTarget


class TransitionKind(str, Enum):
    """Why a notification fired."""

    FAILED = "failed"
    RECOVERED = "recovered"
    PAUSED = "paused"
    SUCCEEDED = "succeeded"  # a paused run went on to finish successfully
    MONITORING_LOST = "monitoring_lost"
    MONITORING_RECOVERED = "monitoring_recovered"


class NotificationEvent(BaseModel):
    """A human-facing alert for one target's transition.  Never persisted."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    target: MonitoredTarget
    from_status: PipelineStatus
    to_status: PipelineStatus
    kind: TransitionKind
    title: str
    message: str
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConditionKind(str, Enum):
    """Whole-tick conditions surfaced to the presentation layer."""

    OK = "ok"
    UNCONFIGURED = "unconfigured"
    AUTHENTICATION_FAILED = "authentication_failed"


class ConditionEvent(BaseModel):
    """Published when the engine's whole-tick condition changes."""

    model_config = ConfigDict(frozen=True)

    kind: ConditionKind
    message: str = ""
    consecutive_ticks: int = 1
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TickOutcome(str, Enum):
    COMPLETED = "completed"
    SKIPPED_UNCONFIGURED = "skipped_unconfigured"
    SKIPPED_BUSY = "skipped_busy"


class TickReport(BaseModel):
    """What happened during one tick.

    ``aggregate`` is only set for completed ticks.  ``retry_after`` is the
    longest ``Retry-After`` the CI API sent during the tick, in seconds.
    """

    model_config = ConfigDict(frozen=True)

    tick_id: int
    outcome: TickOutcome
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    aggregate: AggregateStatus | None = None
    notifications: list[NotificationEvent] = []
    auth_failed: bool = False
    rate_limited: bool = False
    retry_after: float | None = None
    reason: str = ""

    @property
    def completed(self) -> bool:
        return self.outcome == TickOutcome.COMPLETED
