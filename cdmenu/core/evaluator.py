"""Status evaluator — maps one raw pipeline run into a ``PipelineStatus``.

``evaluate`` is pure and total: every input, including malformed payloads,
fetch errors and "no runs found", maps to exactly one status.  Nothing here
raises; failures degrade to ``UNKNOWN``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from cdmenu.errors import AuthenticationError, FetchError, RateLimitError
from cdmenu.models.runs import RawRun
from cdmenu.models.status import PipelineStatus
from cdmenu.models.targets import MonitoredTarget

logger = logging.getLogger(__name__)

NO_RUNS_REASON = "No pipelines found"
DEFAULT_PAUSED_STEP = "paused"


def evaluate(
    raw_run: Any,
    target: MonitoredTarget | None = None,
    *,
    observed_at: datetime | None = None,
) -> PipelineStatus:
    """Evaluate the latest run of a target.

    Parameters
    ----------
    raw_run:
        A ``RawRun``, a raw API ``dict``, ``None`` (the target has no runs),
        or the ``FetchError`` raised while fetching it.
    target:
        Used to build the browser URL of the run.  Optional.
    observed_at:
        Observation timestamp.  Defaults to now (UTC).
    """
    observed_at = observed_at or datetime.now(timezone.utc)
    try:
        return _evaluate(raw_run, target, observed_at)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Could not evaluate pipeline run: %s", exc)
        return PipelineStatus.unknown(
            f"Malformed pipeline payload: {exc}", observed_at=observed_at
        )


def _evaluate(
    raw_run: Any, target: MonitoredTarget | None, observed_at: datetime
) -> PipelineStatus:
    if isinstance(raw_run, FetchError):
        return PipelineStatus.unknown(
            str(raw_run) or raw_run.category,
            observed_at=observed_at,
            auth_failed=isinstance(raw_run, AuthenticationError),
            rate_limited=isinstance(raw_run, RateLimitError),
            retry_after=getattr(raw_run, "retry_after", None),
            pipeline_url=target.web_url if target else None,
        )

    if raw_run is None:
        return PipelineStatus.unknown(
            NO_RUNS_REASON,
            observed_at=observed_at,
            pipeline_url=target.web_url if target else None,
        )

    run = _coerce(raw_run)
    if run is None:
        return PipelineStatus.unknown(
            f"Malformed pipeline payload: {type(raw_run).__name__}",
            observed_at=observed_at,
        )

    extra: dict[str, Any] = {
        "observed_at": observed_at,
        "build_number": run.build_number,
        "pipeline_url": _run_url(run, target),
    }

    if run.is_failed:
        reason = run.failed_step_name or run.state.result.name
        return PipelineStatus.failed(reason, **extra)

    if run.is_paused:
        return PipelineStatus.paused(_paused_step_name(run), **extra)

    if run.is_in_progress:
        return PipelineStatus.in_progress(**extra)

    if run.state.result is not None:
        # SUCCESSFUL, STOPPED and anything else that completed without
        # failing counts as healthy.
        return PipelineStatus.success(**extra)

    return PipelineStatus.unknown(
        f"Unrecognised pipeline state: {run.state.name}", **extra
    )


def _coerce(raw_run: Any) -> RawRun | None:
    if isinstance(raw_run, RawRun):
        return raw_run
    if isinstance(raw_run, dict):
        try:
            return RawRun.model_validate(raw_run)
        except ValidationError as exc:
            logger.debug("Pipeline payload failed validation: %s", exc)
            return None
    return None


def _paused_step_name(run: RawRun) -> str:
    if run.pending_step_name:
        return run.pending_step_name
    stage = run.state.stage
    if stage and stage.name and stage.name.upper() != "PAUSED":
        return stage.name
    return DEFAULT_PAUSED_STEP


def _run_url(run: RawRun, target: MonitoredTarget | None) -> str | None:
    if target is None:
        return None
    if run.build_number is None:
        return target.web_url
    return target.run_url(run.build_number)
