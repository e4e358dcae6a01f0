"""Shared test fixtures for cdmenu."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

import pytest

from cdmenu.config import MonitorConfig
from cdmenu.core.broadcaster import StatusBroadcaster
from cdmenu.core.engine import PollingEngine
from cdmenu.core.fetch_pool import FetchPool
from cdmenu.core.transitions import NotificationPolicy
from cdmenu.models.runs import RawRun
from cdmenu.models.targets import Credentials, MonitoredTarget
from cdmenu.providers import StaticConfigProvider


class FakeFetcher:
    """In-memory ``PipelineFetcher``.

    ``responses`` maps ``target.key`` to what the fetch should produce: a
    ``RawRun`` or ``None`` is returned, an exception instance is raised, and
    a callable is called with the target and its result used instead.
    """

    def __init__(self, responses: dict[str, Any] | None = None, delay: float = 0.0) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.delay = delay
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def set(self, target: MonitoredTarget, response: Any) -> None:
        self.responses[target.key] = response

    def fetch_latest_run(self, target: MonitoredTarget, credentials: Credentials) -> RawRun | None:
        with self._lock:
            self.calls.append(target.key)
        response = self.responses.get(target.key)
        if self.delay:
            time.sleep(self.delay)
        if callable(response):
            response = response(target)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def credentials() -> Credentials:
    """Provide test Bitbucket credentials."""
    return Credentials(username="jdoe", app_password="app-secret")


@pytest.fixture
def settings(tmp_path) -> MonitorConfig:
    """Settings isolated from the developer's environment and home directory."""
    return MonitorConfig(
        _env_file=None,
        config_dir=tmp_path / "cdmenu",
        username="",
        app_password="",
        fetch_timeout_seconds=2.0,
        initial_delay_seconds=0.0,
    )


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_target() -> Callable[..., MonitoredTarget]:
    """Factory fixture: build a MonitoredTarget with sensible defaults."""

    def _factory(repo_slug: str = "api", workspace: str = "acme", **overrides: Any) -> MonitoredTarget:
        defaults: dict[str, Any] = {
            "workspace": workspace,
            "repo_slug": repo_slug,
            "repo_name": repo_slug.replace("-", " ").title(),
            "project_key": "PLAT",
            "project_name": "Platform",
        }
        defaults.update(overrides)
        return MonitoredTarget(**defaults)

    return _factory


@pytest.fixture
def make_run_payload() -> Callable[..., dict[str, Any]]:
    """Factory fixture: build a raw Bitbucket pipeline payload (``dict``)."""

    def _factory(
        state: str = "COMPLETED",
        result: str | None = "SUCCESSFUL",
        build_number: int = 42,
        branch: str = "main",
        state_type: str | None = None,
        stage: str | None = None,
        uuid: str = "{run-uuid}",
    ) -> dict[str, Any]:
        state_obj: dict[str, Any] = {"name": state}
        if state_type is not None:
            state_obj["type"] = state_type
        if result is not None:
            state_obj["result"] = {"name": result}
        if stage is not None:
            state_obj["stage"] = {"name": stage}
        return {
            "uuid": uuid,
            "build_number": build_number,
            "state": state_obj,
            "target": {"ref_type": "branch", "ref_name": branch},
            "created_on": "2024-05-01T10:00:00Z",
        }

    return _factory


@pytest.fixture
def make_run(make_run_payload) -> Callable[..., RawRun]:
    """Factory fixture: build a validated ``RawRun``.

    Shortcuts: ``make_run("success")``, ``"failed"``, ``"running"``,
    ``"paused"``; keyword arguments are passed to ``make_run_payload``.
    """
    presets: dict[str, dict[str, Any]] = {
        "success": {"state": "COMPLETED", "result": "SUCCESSFUL"},
        "failed": {"state": "COMPLETED", "result": "FAILED"},
        "running": {"state": "IN_PROGRESS", "result": None},
        "paused": {
            "state": "IN_PROGRESS",
            "result": None,
            "state_type": "pipeline_state_in_progress_paused",
        },
    }

    def _factory(
        kind: str = "success",
        pending_step_name: str | None = None,
        failed_step_name: str | None = None,
        **overrides: Any,
    ) -> RawRun:
        payload = make_run_payload(**{**presets[kind], **overrides})
        run = RawRun.model_validate(payload)
        return run.model_copy(
            update={"pending_step_name": pending_step_name, "failed_step_name": failed_step_name}
        )

    return _factory


# ---------------------------------------------------------------------------
# Engine wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    """Provide an empty FakeFetcher; tests script its responses."""
    return FakeFetcher()


@pytest.fixture
def make_engine(
    settings: MonitorConfig, credentials: Credentials, fake_fetcher: FakeFetcher
) -> Callable[..., PollingEngine]:
    """Factory fixture: a PollingEngine over a StaticConfigProvider."""

    def _factory(
        targets: list[MonitoredTarget],
        fetcher: Any = None,
        creds: Credentials | None | str = "default",
        policy: NotificationPolicy | None = None,
        max_workers: int = 6,
        fetch_timeout: float | None = None,
        **setting_overrides: Any,
    ) -> PollingEngine:
        engine_settings = settings.model_copy(update=setting_overrides) if setting_overrides else settings
        provider = StaticConfigProvider(
            targets,
            credentials=credentials if creds == "default" else creds,
            interval=60,
        )
        fetcher = fetcher or fake_fetcher
        pool = FetchPool(
            fetcher,
            max_workers=max_workers,
            fetch_timeout=fetch_timeout or engine_settings.fetch_timeout_seconds,
        )
        return PollingEngine(
            provider,
            fetcher,
            settings=engine_settings,
            policy=policy,
            broadcaster=StatusBroadcaster(engine_settings.broadcast_queue_size),
            pool=pool,
        )

    return _factory
