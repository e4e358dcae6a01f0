"""Aggregate health calculator — pure reduction over one tick's statuses."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from cdmenu.models.status import (
    AggregateStatus,
    FailedPipeline,
    PipelineState,
    TargetStatus,
)


def compute_aggregate(
    results: Sequence[TargetStatus], last_checked: datetime
) -> AggregateStatus:
    """Reduce per-target statuses into an ``AggregateStatus``.

    *results* must already be in configured target order; that order is
    kept for ``failed_pipelines`` and ``unknown_pipelines`` so the display
    is deterministic whatever order the fetches completed in.  PAUSED and
    IN_PROGRESS targets do not make the aggregate unhealthy.  UNKNOWN
    targets do, but they are not CI failures and are kept out of
    ``failed_pipelines``.
    """
    failed: list[FailedPipeline] = []
    unknown: list[FailedPipeline] = []
    in_progress = paused = 0

    for entry in results:
        status = entry.status
        if status.state == PipelineState.IN_PROGRESS:
            in_progress += 1
        elif status.state == PipelineState.PAUSED:
            paused += 1
        elif status.state == PipelineState.FAILED:
            failed.append(
                FailedPipeline(
                    target=entry.target,
                    reason=status.reason or "Unknown",
                    state=PipelineState.FAILED,
                )
            )
        elif status.state == PipelineState.UNKNOWN:
            unknown.append(
                FailedPipeline(
                    target=entry.target,
                    reason=status.reason or "Status unavailable",
                    state=PipelineState.UNKNOWN,
                )
            )

    return AggregateStatus(
        is_healthy=not failed and not unknown,
        total_monitored=len(results),
        in_progress_count=in_progress,
        paused_count=paused,
        unknown_count=len(unknown),
        failed_pipelines=failed,
        unknown_pipelines=unknown,
        pipeline_statuses=list(results),
        last_checked=last_checked,
    )
