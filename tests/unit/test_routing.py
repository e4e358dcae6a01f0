"""Unit tests for NotificationDispatcher and the notification sinks."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from cdmenu.core.broadcaster import Channel
from cdmenu.models.events import NotificationEvent, TransitionKind
from cdmenu.models.status import PipelineStatus
from cdmenu.routing.dispatcher import NotificationDispatchError, NotificationDispatcher
from cdmenu.routing.sinks import BaseSink
from cdmenu.routing.sinks.desktop import DesktopPayloadSink
from cdmenu.routing.sinks.local_file import LocalFileSink
from cdmenu.routing.sinks.log_sink import LogSink


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_event(make_target):
    def _factory(kind: TransitionKind = TransitionKind.FAILED, slug: str = "api") -> NotificationEvent:
        url = f"https://bitbucket.org/acme/{slug}/pipelines/results/7"
        to_status = (
            PipelineStatus.failed("FAILED", pipeline_url=url)
            if kind == TransitionKind.FAILED
            else PipelineStatus.success(pipeline_url=url)
        )
        return NotificationEvent(
            target=make_target(slug),
            from_status=PipelineStatus.success(),
            to_status=to_status,
            kind=kind,
            title="Pipeline Failed" if kind == TransitionKind.FAILED else "Pipeline Fixed",
            message=f"{slug} changed\n{url}",
        )

    return _factory


class _RecordingSink:
    def __init__(self, name: str = "recording") -> None:
        self._name = name
        self.received: list[NotificationEvent] = []

    @property
    def sink_name(self) -> str:
        return self._name

    def accept(self, event: NotificationEvent) -> None:
        self.received.append(event)


class _FailingSink:
    @property
    def sink_name(self) -> str:
        return "failing"

    def accept(self, event: NotificationEvent) -> None:
        raise RuntimeError("Sink failure for testing")


# ---------------------------------------------------------------------------
# Test: NotificationDispatcher
# ---------------------------------------------------------------------------


class TestNotificationDispatcher:
    def test_sinks_satisfy_protocol(self, tmp_path):
        for sink in (LogSink(), DesktopPayloadSink(), LocalFileSink(tmp_path / "e.jsonl")):
            assert isinstance(sink, BaseSink)

    def test_fans_out_to_all_sinks(self, make_event):
        a, b = _RecordingSink("a"), _RecordingSink("b")
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(a)
        dispatcher.register_sink(b)
        assert dispatcher.dispatch(make_event()) == ["a", "b"]
        assert len(a.received) == len(b.received) == 1

    def test_duplicate_registration_ignored(self):
        sink = _RecordingSink()
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(sink)
        dispatcher.register_sink(sink)
        assert len(dispatcher.registered_sinks) == 1
        dispatcher.unregister_sink(sink)
        dispatcher.unregister_sink(sink)
        assert dispatcher.registered_sinks == []

    def test_partial_failure_is_tolerated(self, make_event):
        ok = _RecordingSink()
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(_FailingSink())
        dispatcher.register_sink(ok)
        assert dispatcher.dispatch(make_event()) == ["recording"]
        assert len(ok.received) == 1

    def test_all_sinks_failing_raises(self, make_event):
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(_FailingSink())
        with pytest.raises(NotificationDispatchError, match="All 1 sinks failed"):
            dispatcher.dispatch(make_event())

    def test_no_sinks_returns_empty(self, make_event):
        assert NotificationDispatcher().dispatch(make_event()) == []


class TestPump:
    def test_pump_drains_queued_events(self, make_event):
        channel: Channel[NotificationEvent] = Channel("notifications")
        sub = channel.subscribe()
        sink = _RecordingSink()
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(sink)

        channel.publish(make_event(slug="a"))
        channel.publish(make_event(slug="b"))

        assert dispatcher.pump(sub) == 2
        assert [e.target.repo_slug for e in sink.received] == ["a", "b"]

    def test_pump_survives_failing_dispatch(self, make_event):
        channel: Channel[NotificationEvent] = Channel("notifications")
        sub = channel.subscribe()
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(_FailingSink())
        channel.publish(make_event())
        assert dispatcher.pump(sub) == 1

    def test_pump_runs_until_stopped(self, make_event):
        channel: Channel[NotificationEvent] = Channel("notifications")
        sub = channel.subscribe()
        sink = _RecordingSink()
        dispatcher = NotificationDispatcher()
        dispatcher.register_sink(sink)
        stop = threading.Event()

        worker = threading.Thread(target=dispatcher.pump, args=(sub, stop, 0.05))
        worker.start()
        channel.publish(make_event())
        for _ in range(100):
            if sink.received:
                break
            time.sleep(0.02)
        stop.set()
        worker.join(timeout=2)

        assert not worker.is_alive()
        assert len(sink.received) == 1


# ---------------------------------------------------------------------------
# Test: sinks
# ---------------------------------------------------------------------------


class TestLogSink:
    def test_failure_logged_as_warning(self, make_event, caplog):
        with caplog.at_level(logging.INFO, logger="cdmenu.routing.sinks.log_sink"):
            LogSink().accept(make_event(TransitionKind.FAILED))
            LogSink().accept(make_event(TransitionKind.RECOVERED))
        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.WARNING, logging.INFO]
        assert "\n" not in caplog.records[0].getMessage()


class TestLocalFileSink:
    def test_appends_json_lines(self, make_event, tmp_path):
        sink = LocalFileSink(tmp_path / "events" / "notifications.jsonl")
        sink.accept(make_event(slug="a"))
        sink.accept(make_event(TransitionKind.RECOVERED, slug="b"))

        events = sink.read_events()
        assert [e["target"] for e in events] == ["acme/a", "acme/b"]
        assert events[0]["kind"] == "failed"
        assert events[1]["to_state"] == "success"
        assert events[0]["pipeline_url"].endswith("/results/7")

    def test_lines_are_canonical(self, make_event, tmp_path):
        sink = LocalFileSink(tmp_path / "n.jsonl")
        sink.accept(make_event())
        line = sink.path.read_text().splitlines()[0]
        assert ": " not in line
        assert line.startswith('{"emitted_at"')

    def test_missing_file_reads_empty(self, tmp_path):
        assert LocalFileSink(tmp_path / "none.jsonl").read_events() == []


class TestDesktopPayloadSink:
    def test_builds_payload_with_separate_url(self, make_event):
        sink = DesktopPayloadSink()
        sink.accept(make_event(TransitionKind.FAILED, slug="api"))
        [payload] = sink.flush()
        assert payload.title == "Pipeline Failed"
        assert payload.body == "api changed"
        assert payload.url == "https://bitbucket.org/acme/api/pipelines/results/7"
        assert payload.urgent

    def test_flush_clears_buffer(self, make_event):
        sink = DesktopPayloadSink()
        sink.accept(make_event(TransitionKind.RECOVERED))
        assert sink.pending_count == 1
        assert not sink.flush()[0].urgent
        assert sink.flush() == []

    def test_buffer_is_bounded(self, make_event):
        sink = DesktopPayloadSink(max_pending=2)
        for slug in ("a", "b", "c"):
            sink.accept(make_event(slug=slug))
        assert [p.body for p in sink.flush()] == ["b changed", "c changed"]
