"""Configuration providers — where the engine reads targets, interval and credentials.

The engine calls the provider once at the start of every tick and works
from the returned copies, so edits made while a tick is running only show
up in the next tick.

``FileConfigProvider`` keeps the desktop app's on-disk layout::

    {config_dir}/config.json    username, monitored_pipelines, polling_interval_seconds
    {config_dir}/.credentials   base64-encoded app password
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, ValidationError

from cdmenu.config import MonitorConfig
from cdmenu.errors import ConfigurationError
from cdmenu.models.targets import Credentials, MonitoredTarget

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
CREDENTIALS_FILE = ".credentials"


@runtime_checkable
class ConfigProvider(Protocol):
    """Protocol for the engine's configuration source.

    Unconfigured state is signalled with ``None`` / an empty list, never
    with an exception.
    """

    def get_interval(self) -> int: ...

    def get_monitored_targets(self) -> list[MonitoredTarget]: ...

    def get_credentials(self) -> Credentials | None: ...


def validate_interval(seconds: int, minimum: int) -> int:
    """Return *seconds* if it respects the floor, else raise ``ConfigurationError``."""
    if seconds < minimum:
        raise ConfigurationError(
            f"Polling interval must be at least {minimum} seconds (got {seconds})"
        )
    return int(seconds)


def dedupe_targets(targets: Iterable[MonitoredTarget]) -> list[MonitoredTarget]:
    """Drop later duplicates of the same ``(workspace, repo, branch)``, keeping order."""
    seen: set[str] = set()
    unique: list[MonitoredTarget] = []
    for target in targets:
        if target.key in seen:
            logger.warning("Ignoring duplicate monitored target %s", target.key)
            continue
        seen.add(target.key)
        unique.append(target)
    return unique


class StaticConfigProvider:
    """Thread-safe in-memory provider.

    Used by tests and by embedding UIs that own their own persistence.
    """

    def __init__(
        self,
        targets: Iterable[MonitoredTarget] = (),
        credentials: Credentials | None = None,
        interval: int = 60,
    ) -> None:
        self._lock = threading.Lock()
        self._targets = dedupe_targets(targets)
        self._credentials = credentials
        self._interval = interval

    def get_interval(self) -> int:
        with self._lock:
            return self._interval

    def get_monitored_targets(self) -> list[MonitoredTarget]:
        with self._lock:
            return list(self._targets)

    def get_credentials(self) -> Credentials | None:
        with self._lock:
            return self._credentials

    def set_targets(self, targets: Iterable[MonitoredTarget]) -> None:
        with self._lock:
            self._targets = dedupe_targets(targets)

    def set_credentials(self, credentials: Credentials | None) -> None:
        with self._lock:
            self._credentials = credentials

    def set_interval(self, seconds: int) -> None:
        with self._lock:
            self._interval = seconds


class PersistedConfig(BaseModel):
    """Shape of ``config.json``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    username: str | None = None
    monitored_pipelines: list[MonitoredTarget] = []
    polling_interval_seconds: int = 60


class FileConfigProvider:
    """Reads (and writes) the persisted ``config.json`` / ``.credentials`` pair.

    Files are re-read on every call so edits from another process are
    picked up on the next tick.  ``CDMENU_USERNAME`` and
    ``CDMENU_APP_PASSWORD`` fill in when the files do not provide them.

    Parameters
    ----------
    settings:
        Process configuration.  Defaults to a fresh ``MonitorConfig``.
    config_dir:
        Overrides ``settings.config_dir``.
    """

    def __init__(
        self, settings: MonitorConfig | None = None, config_dir: Path | None = None
    ) -> None:
        self._settings = settings or MonitorConfig()
        self._dir = (config_dir or self._settings.resolved_config_dir).expanduser()
        self._write_lock = threading.Lock()

    @property
    def config_path(self) -> Path:
        return self._dir / CONFIG_FILE

    @property
    def credentials_path(self) -> Path:
        return self._dir / CREDENTIALS_FILE

    # ------------------------------------------------------------------
    # ConfigProvider
    # ------------------------------------------------------------------

    def load(self) -> PersistedConfig:
        """Read ``config.json``; missing or unreadable files load as defaults."""
        if not self.config_path.exists():
            return PersistedConfig(polling_interval_seconds=self._default_interval)
        try:
            data = json.loads(self.config_path.read_text(encoding="utf-8"))
            persisted = PersistedConfig.model_validate(data)
        except (OSError, ValueError, ValidationError) as exc:
            logger.error("Could not read %s: %s", self.config_path, exc)
            return PersistedConfig(polling_interval_seconds=self._default_interval)

        if persisted.polling_interval_seconds < self._settings.min_poll_interval_seconds:
            persisted = persisted.model_copy(
                update={"polling_interval_seconds": self._default_interval}
            )
        return persisted

    def get_interval(self) -> int:
        return self.load().polling_interval_seconds

    def get_monitored_targets(self) -> list[MonitoredTarget]:
        return dedupe_targets(self.load().monitored_pipelines)

    def get_credentials(self) -> Credentials | None:
        username = self.load().username or self._settings.username
        password = self._read_password() or self._settings.app_password
        if not username or not password:
            return None
        return Credentials(username=username, app_password=password)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def save(self, persisted: PersistedConfig) -> None:
        with self._write_lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp = self.config_path.with_suffix(".json.tmp")
            tmp.write_text(
                json.dumps(persisted.model_dump(mode="json"), indent=2), encoding="utf-8"
            )
            tmp.replace(self.config_path)
        logger.debug("Saved %s", self.config_path)

    def save_password(self, app_password: str) -> None:
        """Store the app password (base64-obfuscated, not encrypted)."""
        with self._write_lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            encoded = base64.b64encode(app_password.encode("utf-8")).decode("ascii")
            self.credentials_path.write_text(encoded, encoding="utf-8")
            try:
                self.credentials_path.chmod(0o600)
            except OSError as exc:
                logger.debug("Could not restrict permissions on %s: %s", self.credentials_path, exc)

    def set_interval(self, seconds: int) -> None:
        validate_interval(seconds, self._settings.min_poll_interval_seconds)
        self.save(self.load().model_copy(update={"polling_interval_seconds": seconds}))

    def set_username(self, username: str) -> None:
        self.save(self.load().model_copy(update={"username": username}))

    def add_target(self, target: MonitoredTarget) -> bool:
        """Append *target*; returns False if an identical target already exists."""
        persisted = self.load()
        if any(t.key == target.key for t in persisted.monitored_pipelines):
            return False
        self.save(
            persisted.model_copy(
                update={"monitored_pipelines": [*persisted.monitored_pipelines, target]}
            )
        )
        return True

    def remove_target(self, key: str) -> bool:
        """Remove the target whose ``key`` matches; returns False if absent."""
        persisted = self.load()
        remaining = [t for t in persisted.monitored_pipelines if t.key != key]
        if len(remaining) == len(persisted.monitored_pipelines):
            return False
        self.save(persisted.model_copy(update={"monitored_pipelines": remaining}))
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _default_interval(self) -> int:
        return self._settings.default_poll_interval_seconds

    def _read_password(self) -> str | None:
        if not self.credentials_path.exists():
            return None
        try:
            encoded = self.credentials_path.read_text(encoding="utf-8").strip()
            return base64.b64decode(encoded, validate=True).decode("utf-8") or None
        except (OSError, binascii.Error, UnicodeDecodeError) as exc:
            logger.error("Could not decode %s: %s", self.credentials_path, exc)
            return None
