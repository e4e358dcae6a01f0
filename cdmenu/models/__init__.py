"""cdmenu data models — all Pydantic v2, all frozen (immutable)."""

from cdmenu.models.events import (
    ConditionEvent,
    ConditionKind,
    NotificationEvent,
    TickOutcome,
    TickReport,
    TransitionKind,
)
from cdmenu.models.runs import PipelineStep, RawRun, RunResult, RunStage, RunState, RunTarget
from cdmenu.models.status import (
    SETTLED_STATES,
    VALID_TRANSITIONS,
    AggregateStatus,
    FailedPipeline,
    PipelineState,
    PipelineStatus,
    TargetStatus,
)
from cdmenu.models.targets import Credentials, MonitoredTarget

__all__ = [
    # targets
    "MonitoredTarget",
    "Credentials",
    # runs
    "RawRun",
    "RunState",
    "RunResult",
    "RunStage",
    "RunTarget",
    "PipelineStep",
    # status
    "PipelineState",
    "PipelineStatus",
    "TargetStatus",
    "FailedPipeline",
    "AggregateStatus",
    "VALID_TRANSITIONS",
    "SETTLED_STATES",
    # events
    "TransitionKind",
    "NotificationEvent",
    "ConditionKind",
    "ConditionEvent",
    "TickOutcome",
    "TickReport",
]
