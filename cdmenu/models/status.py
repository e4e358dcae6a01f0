"""Normalized pipeline status models and the per-target state machine."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cdmenu.models.targets import MonitoredTarget


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineState(str, Enum):
    """Closed set of states a monitored target can be in."""

    NOT_STARTED = "not_started"  # implicit, before the first observation
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    PAUSED = "paused"
    UNKNOWN = "unknown"


# Evolution of a target between ticks.  UNKNOWN is reachable from every
# state (a fetch can always fail) and can lead anywhere once fetches succeed.
VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.NOT_STARTED: {PipelineState.IN_PROGRESS, PipelineState.UNKNOWN},
    PipelineState.IN_PROGRESS: {
        PipelineState.SUCCESS,
        PipelineState.FAILED,
        PipelineState.PAUSED,
        PipelineState.UNKNOWN,
    },
    PipelineState.PAUSED: {
        PipelineState.IN_PROGRESS,
        PipelineState.SUCCESS,
        PipelineState.FAILED,
        PipelineState.UNKNOWN,
    },
    PipelineState.SUCCESS: {PipelineState.IN_PROGRESS, PipelineState.UNKNOWN},
    PipelineState.FAILED: {PipelineState.IN_PROGRESS, PipelineState.UNKNOWN},
    PipelineState.UNKNOWN: {
        PipelineState.IN_PROGRESS,
        PipelineState.SUCCESS,
        PipelineState.FAILED,
        PipelineState.PAUSED,
        PipelineState.UNKNOWN,
    },
}

# States that describe a finished run; used for failure/recovery detection.
SETTLED_STATES: frozenset[PipelineState] = frozenset(
    {PipelineState.SUCCESS, PipelineState.FAILED}
)


class PipelineStatus(BaseModel):
    """Normalized result for one target at one observation.

    Only the evaluator builds these.  ``reason`` carries the failure reason
    for FAILED and the error reason for UNKNOWN; ``step_name`` is set only
    for PAUSED.
    """

    model_config = ConfigDict(frozen=True)

    state: PipelineState
    reason: str | None = None
    step_name: str | None = None
    observed_at: datetime = Field(default_factory=_utcnow)
    build_number: int | None = None
    pipeline_url: str | None = None
    auth_failed: bool = False
    rate_limited: bool = False
    retry_after: float | None = None

    # -- constructors ------------------------------------------------------

    @classmethod
    def success(cls, **extra) -> PipelineStatus:
        return cls(state=PipelineState.SUCCESS, **extra)

    @classmethod
    def failed(cls, reason: str, **extra) -> PipelineStatus:
        return cls(state=PipelineState.FAILED, reason=reason, **extra)

    @classmethod
    def in_progress(cls, **extra) -> PipelineStatus:
        return cls(state=PipelineState.IN_PROGRESS, **extra)

    @classmethod
    def paused(cls, step_name: str, **extra) -> PipelineStatus:
        return cls(state=PipelineState.PAUSED, step_name=step_name, **extra)

    @classmethod
    def unknown(cls, reason: str, **extra) -> PipelineStatus:
        return cls(state=PipelineState.UNKNOWN, reason=reason, **extra)

    # -- derived -----------------------------------------------------------

    @property
    def category(self) -> PipelineState | tuple[PipelineState, str | None]:
        """What a human would call "the same status".

        Two PAUSED observations are only the same category when they wait
        on the same step.
        """
        if self.state == PipelineState.PAUSED:
            return (self.state, self.step_name)
        return self.state

    @property
    def is_settled(self) -> bool:
        return self.state in SETTLED_STATES

    @property
    def is_problem(self) -> bool:
        """FAILED or UNKNOWN: the states that make the aggregate unhealthy."""
        return self.state in (PipelineState.FAILED, PipelineState.UNKNOWN)

    def describe(self) -> str:
        """Short human-readable label, e.g. ``paused (Deploy to prod)``."""
        label = self.state.value.replace("_", " ")
        if self.state == PipelineState.PAUSED and self.step_name:
            return f"{label} ({self.step_name})"
        if self.reason and self.state in (PipelineState.FAILED, PipelineState.UNKNOWN):
            return f"{label}: {self.reason}"
        return label


class TargetStatus(BaseModel):
    """A target paired with its status for one tick."""

    model_config = ConfigDict(frozen=True)

    target: MonitoredTarget
    status: PipelineStatus


class FailedPipeline(BaseModel):
    """Entry of ``AggregateStatus.failed_pipelines`` or ``unknown_pipelines``."""

    model_config = ConfigDict(frozen=True)

    target: MonitoredTarget
    reason: str
    state: PipelineState = PipelineState.FAILED


class AggregateStatus(BaseModel):
    """Reduced health snapshot over every monitored target.

    Derived from one tick's statuses and never stored independently of
    them.  ``is_healthy`` is True iff no target is FAILED or UNKNOWN.
    """

    model_config = ConfigDict(frozen=True)

    is_healthy: bool = True
    total_monitored: int = 0
    in_progress_count: int = 0
    paused_count: int = 0
    unknown_count: int = 0
    failed_pipelines: list[FailedPipeline] = []
    unknown_pipelines: list[FailedPipeline] = []
    pipeline_statuses: list[TargetStatus] = []
    last_checked: datetime | None = None

    @classmethod
    def empty(cls) -> AggregateStatus:
        """The value before any tick has completed."""
        return cls()

    @property
    def has_checked(self) -> bool:
        return self.last_checked is not None

    @property
    def failed_count(self) -> int:
        return len(self.failed_pipelines)

    def status_for(self, target: MonitoredTarget) -> PipelineStatus | None:
        """Look up the status of *target* in this snapshot."""
        for entry in self.pipeline_statuses:
            if entry.target.key == target.key:
                return entry.status
        return None
