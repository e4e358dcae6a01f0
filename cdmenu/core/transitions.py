"""Transition detector and the double-buffered transition table.

The detector decides whether a target's new status is worth telling a
human about.  It fires once per meaningful category change and never on a
repeated observation of the same category.  The first observation of a
target is always silent.

Failure/recovery detection compares *settled* states (SUCCESS or FAILED),
so a fix that passes through IN_PROGRESS between two ticks still produces
exactly one "recovered" notification, and a blip through UNKNOWN never
produces a duplicate "failed" one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict

from cdmenu.models.events import NotificationEvent, TransitionKind
from cdmenu.models.status import PipelineState, PipelineStatus
from cdmenu.models.targets import MonitoredTarget

logger = logging.getLogger(__name__)


class NotificationPolicy(BaseModel):
    """Which optional transitions are alert-worthy."""

    model_config = ConfigDict(frozen=True)

    notify_on_unknown: bool = False
    notify_on_monitoring_recovery: bool = False


class TransitionRecord(BaseModel):
    """What the engine remembers about one target between ticks."""

    model_config = ConfigDict(frozen=True)

    last: PipelineStatus
    known: PipelineStatus | None = None  # last observation that was not UNKNOWN
    settled: PipelineStatus | None = None  # last SUCCESS/FAILED observation

    def advance(self, current: PipelineStatus) -> TransitionRecord:
        return TransitionRecord(
            last=current,
            known=self.known if current.state == PipelineState.UNKNOWN else current,
            settled=current if current.is_settled else self.settled,
        )

    @classmethod
    def first(cls, current: PipelineStatus) -> TransitionRecord:
        return cls(last=current).advance(current)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def detect(
    previous: TransitionRecord | None,
    current: PipelineStatus,
    target: MonitoredTarget,
    policy: NotificationPolicy | None = None,
) -> NotificationEvent | None:
    """Return a notification for the transition, or ``None``.

    Parameters
    ----------
    previous:
        The target's record from the last completed tick, ``None`` on the
        first observation.
    current:
        The status evaluated in this tick.
    target:
        The target being evaluated, used for the message.
    policy:
        Optional transitions to enable.  Defaults to the quiet policy.
    """
    if previous is None:
        return None

    policy = policy or NotificationPolicy()
    last = previous.last
    if last.category == current.category:
        return None

    kind = _classify(previous, current, policy)
    if kind is None:
        return None

    title, message = format_message(kind, target, current)
    logger.info(
        "Transition for %s: %s -> %s (%s)",
        target.key,
        last.describe(),
        current.describe(),
        kind.value,
    )
    return NotificationEvent(
        target=target,
        from_status=last,
        to_status=current,
        kind=kind,
        title=title,
        message=message,
    )


def _classify(
    previous: TransitionRecord,
    current: PipelineStatus,
    policy: NotificationPolicy,
) -> TransitionKind | None:
    state = current.state

    if state == PipelineState.UNKNOWN:
        return TransitionKind.MONITORING_LOST if policy.notify_on_unknown else None

    last = previous.last
    if last.state == PipelineState.UNKNOWN:
        # Compare against what we last saw before losing sight of the target.
        baseline = previous.known
        if baseline is None or baseline.category == current.category:
            if policy.notify_on_monitoring_recovery:
                return TransitionKind.MONITORING_RECOVERED
            return None
        last = baseline

    if state == PipelineState.PAUSED:
        return TransitionKind.PAUSED

    if state == PipelineState.IN_PROGRESS:
        return None

    if state == PipelineState.FAILED:
        return TransitionKind.FAILED

    # state == SUCCESS
    if last.state == PipelineState.PAUSED:
        return TransitionKind.SUCCEEDED
    if last.state == PipelineState.FAILED:
        return TransitionKind.RECOVERED
    settled = previous.settled
    if settled is not None and settled.state == PipelineState.FAILED:
        return TransitionKind.RECOVERED
    return None


_TITLES: dict[TransitionKind, str] = {
    TransitionKind.FAILED: "Pipeline Failed",
    TransitionKind.RECOVERED: "Pipeline Fixed",
    TransitionKind.PAUSED: "Pipeline Paused",
    TransitionKind.SUCCEEDED: "Pipeline Succeeded",
    TransitionKind.MONITORING_LOST: "Pipeline Status Unavailable",
    TransitionKind.MONITORING_RECOVERED: "Pipeline Status Restored",
}


def format_message(
    kind: TransitionKind, target: MonitoredTarget, current: PipelineStatus
) -> tuple[str, str]:
    """Build the ``(title, body)`` pair shown to the user."""
    name = target.display_name
    if kind == TransitionKind.FAILED:
        body = f"{name} has failed"
        if current.reason:
            body += f": {current.reason}"
    elif kind == TransitionKind.RECOVERED:
        body = f"{name} is now healthy"
    elif kind == TransitionKind.PAUSED:
        body = f"{name} is waiting for approval: {current.step_name}"
    elif kind == TransitionKind.SUCCEEDED:
        body = f"{name} completed successfully"
    elif kind == TransitionKind.MONITORING_LOST:
        body = f"Could not check {name}: {current.reason}"
    else:
        body = f"{name} is {current.describe()}"

    if current.pipeline_url:
        body = f"{body}\n{current.pipeline_url}"
    return _TITLES[kind], body


# ---------------------------------------------------------------------------
# Double-buffered table
# ---------------------------------------------------------------------------


class TransitionTable:
    """Immutable, versioned map of ``target.key -> TransitionRecord``.

    The engine builds the next table off to the side during a tick and
    publishes it with a single reference swap, so no reader ever sees a
    half-updated tick.
    """

    __slots__ = ("_records", "_version")

    def __init__(
        self, records: Mapping[str, TransitionRecord] | None = None, version: int = 0
    ) -> None:
        self._records: Mapping[str, TransitionRecord] = MappingProxyType(dict(records or {}))
        self._version = version

    @property
    def version(self) -> int:
        return self._version

    def get(self, key: str) -> TransitionRecord | None:
        return self._records.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def keys(self) -> Iterable[str]:
        return self._records.keys()

    def successor(self, records: Mapping[str, TransitionRecord]) -> TransitionTable:
        """Return the next version holding exactly *records*.

        Targets absent from *records* (removed from the configuration) are
        forgotten; re-adding one later starts a fresh silent observation.
        """
        return TransitionTable(records, version=self._version + 1)
