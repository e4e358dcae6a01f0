"""Unit tests for transition detection and the transition table."""

from __future__ import annotations

import pytest

from cdmenu.core.transitions import (
    NotificationPolicy,
    TransitionRecord,
    TransitionTable,
    detect,
    format_message,
)
from cdmenu.models.events import TransitionKind
from cdmenu.models.status import PipelineStatus

OK = PipelineStatus.success()
BROKEN = PipelineStatus.failed("FAILED")
RUNNING = PipelineStatus.in_progress()
LOST = PipelineStatus.unknown("Timed out after 30s")


def _paused(step: str) -> PipelineStatus:
    return PipelineStatus.paused(step)


def _history(*statuses: PipelineStatus) -> TransitionRecord:
    record = TransitionRecord.first(statuses[0])
    for status in statuses[1:]:
        record = record.advance(status)
    return record


def _kind(previous, current, target, policy=None):
    event = detect(previous, current, target, policy)
    return event.kind if event else None


class TestFirstObservation:
    @pytest.mark.parametrize("status", [OK, BROKEN, RUNNING, LOST, _paused("Deploy")])
    def test_first_observation_is_silent(self, make_target, status):
        assert detect(None, status, make_target()) is None


class TestNoRefire:
    @pytest.mark.parametrize("status", [OK, BROKEN, RUNNING, LOST, _paused("Deploy")])
    def test_same_category_never_fires(self, make_target, status):
        assert detect(_history(status), status, make_target()) is None

    def test_same_paused_step_is_silent(self, make_target):
        assert detect(_history(_paused("Deploy")), _paused("Deploy"), make_target()) is None


class TestFailureAndRecovery:
    def test_success_to_failed_fires_failed(self, make_target):
        event = detect(_history(OK), BROKEN, make_target("api"))
        assert event.kind == TransitionKind.FAILED
        assert event.title == "Pipeline Failed"
        assert event.message.startswith("Api has failed")

    def test_failed_to_success_fires_recovered(self, make_target):
        event = detect(_history(BROKEN), OK, make_target("api"))
        assert event.kind == TransitionKind.RECOVERED
        assert event.title == "Pipeline Fixed"
        assert event.message == "Api is now healthy"

    def test_recovery_through_in_progress(self, make_target):
        target = make_target()
        previous = _history(BROKEN, RUNNING)
        assert _kind(previous, OK, target) == TransitionKind.RECOVERED

    def test_entering_in_progress_is_silent(self, make_target):
        assert detect(_history(OK), RUNNING, make_target()) is None
        assert detect(_history(BROKEN), RUNNING, make_target()) is None

    def test_new_failing_run_after_failure_fires_again(self, make_target):
        assert _kind(_history(BROKEN, RUNNING), BROKEN, make_target()) == TransitionKind.FAILED

    def test_success_after_success_through_running_is_silent(self, make_target):
        assert detect(_history(OK, RUNNING), OK, make_target()) is None


class TestPaused:
    def test_entering_pause_fires(self, make_target):
        event = detect(_history(RUNNING), _paused("Deploy to prod"), make_target("web"))
        assert event.kind == TransitionKind.PAUSED
        assert "waiting for approval: Deploy to prod" in event.message

    def test_different_step_fires_again(self, make_target):
        event = detect(_history(_paused("Staging")), _paused("Production"), make_target())
        assert event.kind == TransitionKind.PAUSED

    def test_paused_to_success_fires_succeeded(self, make_target):
        assert _kind(_history(_paused("Deploy")), OK, make_target()) == TransitionKind.SUCCEEDED

    def test_paused_to_failed_fires_failed(self, make_target):
        assert _kind(_history(_paused("Deploy")), BROKEN, make_target()) == TransitionKind.FAILED


class TestUnknown:
    def test_unknown_is_silent_by_default(self, make_target):
        assert detect(_history(OK), LOST, make_target()) is None

    def test_unknown_notifies_when_enabled(self, make_target):
        policy = NotificationPolicy(notify_on_unknown=True)
        event = detect(_history(OK), LOST, make_target("api"), policy)
        assert event.kind == TransitionKind.MONITORING_LOST
        assert event.message.startswith("Could not check Api: Timed out")

    def test_blip_through_unknown_does_not_refire_failed(self, make_target):
        previous = _history(BROKEN, LOST)
        assert detect(previous, BROKEN, make_target()) is None

    def test_blip_through_unknown_does_not_refire_paused(self, make_target):
        previous = _history(_paused("Deploy"), LOST)
        assert detect(previous, _paused("Deploy"), make_target()) is None

    def test_change_hidden_by_unknown_still_fires(self, make_target):
        previous = _history(OK, LOST)
        assert _kind(previous, BROKEN, make_target()) == TransitionKind.FAILED

    def test_recovery_hidden_by_unknown_still_fires(self, make_target):
        previous = _history(BROKEN, LOST)
        assert _kind(previous, OK, make_target()) == TransitionKind.RECOVERED

    def test_monitoring_recovered_when_enabled(self, make_target):
        policy = NotificationPolicy(notify_on_monitoring_recovery=True)
        previous = _history(OK, LOST)
        assert _kind(previous, OK, make_target(), policy) == TransitionKind.MONITORING_RECOVERED

    def test_unknown_since_first_observation(self, make_target):
        previous = _history(LOST)
        assert detect(previous, OK, make_target()) is None


class TestTransitionRecord:
    def test_known_skips_unknown(self):
        record = _history(BROKEN, LOST, LOST)
        assert record.last == LOST
        assert record.known == BROKEN
        assert record.settled == BROKEN

    def test_settled_skips_running_and_paused(self):
        record = _history(OK, RUNNING, _paused("Deploy"))
        assert record.settled == OK
        assert record.known.step_name == "Deploy"


class TestFormatMessage:
    def test_url_is_appended(self, make_target):
        status = PipelineStatus.failed("FAILED", pipeline_url="https://bitbucket.org/x")
        title, body = format_message(TransitionKind.FAILED, make_target("api"), status)
        assert title == "Pipeline Failed"
        assert body == "Api has failed: FAILED\nhttps://bitbucket.org/x"

    def test_succeeded_message(self, make_target):
        title, body = format_message(TransitionKind.SUCCEEDED, make_target("api"), OK)
        assert (title, body) == ("Pipeline Succeeded", "Api completed successfully")


class TestTransitionTable:
    def test_successor_bumps_version_and_replaces_records(self):
        table = TransitionTable()
        nxt = table.successor({"a": TransitionRecord.first(OK)})
        assert table.version == 0
        assert len(table) == 0
        assert nxt.version == 1
        assert "a" in nxt
        assert nxt.get("a").last == OK

    def test_removed_targets_are_forgotten(self):
        table = TransitionTable({"a": TransitionRecord.first(OK), "b": TransitionRecord.first(OK)})
        nxt = table.successor({"a": TransitionRecord.first(BROKEN)})
        assert "b" not in nxt
        assert set(nxt.keys()) == {"a"}

    def test_records_are_read_only(self):
        table = TransitionTable({"a": TransitionRecord.first(OK)})
        with pytest.raises(TypeError):
            table._records["b"] = TransitionRecord.first(OK)  # type: ignore[index]
