"""Unit tests for the cdmenu data models."""

from __future__ import annotations

import pydantic
import pytest

from cdmenu.errors import (
    AuthenticationError,
    ConfigurationError,
    FetchError,
    MalformedResponseError,
    NotFoundError,
    RateLimitError,
    TransportError,
)
from cdmenu.models import (
    VALID_TRANSITIONS,
    AggregateStatus,
    Credentials,
    MonitoredTarget,
    PipelineState,
    PipelineStatus,
    PipelineStep,
    RawRun,
)


class TestMonitoredTarget:
    def test_key_without_branch(self, make_target):
        assert make_target("api").key == "acme/api"

    def test_key_with_branch(self, make_target):
        assert make_target("api", branch="release/1.x").key == "acme/api@release/1.x"

    def test_display_name_falls_back_to_slug(self):
        target = MonitoredTarget(workspace="acme", repo_slug="svc")
        assert target.display_name == "svc"
        assert target.group_name == "acme"

    def test_urls(self, make_target):
        target = make_target("api")
        assert target.web_url == "https://bitbucket.org/acme/api/pipelines"
        assert target.run_url(42) == "https://bitbucket.org/acme/api/pipelines/results/42"

    def test_frozen(self, make_target):
        target = make_target()
        with pytest.raises(pydantic.ValidationError):
            target.repo_slug = "other"


class TestCredentials:
    def test_repr_masks_password(self, credentials):
        assert "app-secret" not in repr(credentials)
        assert "app-secret" not in str(credentials)
        assert "jdoe" in repr(credentials)

    def test_equality(self):
        assert Credentials(username="a", app_password="b") == Credentials(username="a", app_password="b")


class TestPipelineStatus:
    def test_paused_category_includes_step(self):
        a = PipelineStatus.paused("Deploy to staging")
        b = PipelineStatus.paused("Deploy to production")
        assert a.category != b.category
        assert a.category == PipelineStatus.paused("Deploy to staging").category

    def test_plain_category_is_state(self):
        assert PipelineStatus.failed("x").category == PipelineState.FAILED

    def test_describe(self):
        assert PipelineStatus.paused("Deploy").describe() == "paused (Deploy)"
        assert PipelineStatus.failed("Step 'Lint' failed").describe() == "failed: Step 'Lint' failed"
        assert PipelineStatus.in_progress().describe() == "in progress"

    def test_is_problem(self):
        assert PipelineStatus.failed("x").is_problem
        assert PipelineStatus.unknown("x").is_problem
        assert not PipelineStatus.paused("x").is_problem

    def test_unknown_reachable_from_every_state(self):
        for state, successors in VALID_TRANSITIONS.items():
            assert PipelineState.UNKNOWN in successors, state

    def test_empty_aggregate(self):
        agg = AggregateStatus.empty()
        assert agg.is_healthy
        assert not agg.has_checked
        assert agg.failed_count == 0


class TestRawRun:
    def test_failed_results(self, make_run):
        assert make_run("failed").is_failed
        assert make_run("success", result="ERROR").is_failed
        assert make_run("success", result="EXPIRED").is_failed
        assert not make_run("success", result="STOPPED").is_failed

    def test_paused_from_state_type(self, make_run):
        run = make_run("paused")
        assert run.is_paused
        assert not run.is_in_progress

    def test_paused_from_stage(self, make_run):
        run = make_run("running", stage="PAUSED")
        assert run.is_paused

    def test_running(self, make_run):
        assert make_run("running").is_in_progress
        assert make_run("running", state="PENDING").is_in_progress

    def test_unknown_fields_are_ignored(self, make_run_payload):
        payload = make_run_payload()
        payload["creator"] = {"display_name": "Someone"}
        payload["state"]["extra"] = 1
        assert RawRun.model_validate(payload).branch == "main"

    def test_missing_state_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            RawRun.model_validate({"uuid": "x"})


class TestPipelineStep:
    def test_pending_by_name(self):
        step = PipelineStep.model_validate({"name": "Deploy", "state": {"name": "PENDING"}})
        assert step.is_pending

    def test_pending_by_type(self):
        step = PipelineStep.model_validate(
            {"name": "Deploy", "state": {"type": "pipeline_step_state_pending"}}
        )
        assert step.is_pending

    def test_failed_step(self):
        step = PipelineStep.model_validate(
            {"name": "Test", "state": {"name": "COMPLETED", "result": {"name": "FAILED"}}}
        )
        assert step.is_failed
        assert not step.is_pending

    def test_stateless_step(self):
        step = PipelineStep()
        assert not step.is_pending
        assert not step.is_failed


class TestErrors:
    @pytest.mark.parametrize(
        ("error", "category"),
        [
            (TransportError("x"), "transport"),
            (AuthenticationError(), "authentication"),
            (RateLimitError(), "rate_limited"),
            (NotFoundError("x"), "not_found"),
            (MalformedResponseError("x"), "malformed_response"),
        ],
    )
    def test_fetch_error_categories(self, error, category):
        assert isinstance(error, FetchError)
        assert error.category == category

    def test_default_messages(self):
        assert "app password" in str(AuthenticationError())
        assert RateLimitError(retry_after=5).retry_after == 5

    def test_configuration_error_is_not_a_fetch_error(self):
        assert not issubclass(ConfigurationError, FetchError)
