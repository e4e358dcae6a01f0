"""Raw pipeline run payloads as returned by the Bitbucket Pipelines API.

These models are the only place the remote payload shape is described.
Everything downstream of the evaluator works with ``PipelineStatus``.
Unknown fields are ignored so API additions never break parsing.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

FAILED_RESULTS: frozenset[str] = frozenset({"FAILED", "ERROR", "EXPIRED"})
RUNNING_STATES: frozenset[str] = frozenset({"IN_PROGRESS", "PENDING"})


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class RunResult(_Payload):
    """Result of a completed run: SUCCESSFUL, FAILED, STOPPED, EXPIRED, ERROR."""

    name: str


class RunStage(_Payload):
    """Stage info, present when a run is paused."""

    name: str | None = None
    stage_type: str | None = Field(default=None, alias="type")


class RunState(_Payload):
    name: str  # PENDING, IN_PROGRESS, COMPLETED
    # e.g. "pipeline_state_in_progress_paused" when waiting for a manual step
    state_type: str | None = Field(default=None, alias="type")
    result: RunResult | None = None
    stage: RunStage | None = None


class RunTarget(_Payload):
    ref_type: str | None = None
    ref_name: str | None = None


class StepState(_Payload):
    name: str | None = None
    state_type: str | None = Field(default=None, alias="type")
    result: RunResult | None = None


class PipelineStep(_Payload):
    """A single step of a pipeline run."""

    uuid: str = ""
    name: str | None = None
    state: StepState | None = None

    @property
    def is_pending(self) -> bool:
        """True when the step waits for a manual trigger."""
        if self.state is None:
            return False
        if self.state.name is not None:
            return self.state.name == "PENDING"
        if self.state.state_type is not None:
            return "pending" in self.state.state_type
        return False

    @property
    def is_failed(self) -> bool:
        if self.state is None or self.state.result is None:
            return False
        return self.state.result.name in FAILED_RESULTS


class RawRun(_Payload):
    """The latest pipeline run of a target.

    ``pending_step_name`` and ``failed_step_name`` are not part of the API
    payload; the fetcher fills them from the run's steps when relevant.
    """

    uuid: str = ""
    build_number: int | None = None
    state: RunState
    target: RunTarget = RunTarget()
    created_on: str | None = None
    completed_on: str | None = None
    pending_step_name: str | None = None
    failed_step_name: str | None = None

    @property
    def is_failed(self) -> bool:
        return self.state.result is not None and self.state.result.name in FAILED_RESULTS

    @property
    def is_paused(self) -> bool:
        if self.state.state_type and "paused" in self.state.state_type:
            return True
        stage = self.state.stage
        return bool(stage and stage.name and stage.name.upper() == "PAUSED")

    @property
    def is_in_progress(self) -> bool:
        """Actively running: IN_PROGRESS/PENDING and not waiting for input."""
        return self.state.name in RUNNING_STATES and not self.is_paused

    @property
    def branch(self) -> str | None:
        return self.target.ref_name
