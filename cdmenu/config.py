"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and CDMENU_* environment variables.  The monitored
target list and the poll interval chosen by the user live in the persisted
``config.json`` handled by ``cdmenu.providers``; this module only holds the
process-level knobs.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class MonitorConfig(BaseSettings):
    """Process configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CDMENU_LOG_LEVEL=DEBUG
        export CDMENU_MAX_CONCURRENT_FETCHES=4
        export CDMENU_USERNAME=jdoe

    Or via .env file::

        CDMENU_CONFIG_DIR=/srv/cdmenu
        CDMENU_FETCH_TIMEOUT_SECONDS=15
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CDMENU_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"

    # Persisted settings location (config.json + .credentials)
    config_dir: Path = Path("~/.config/cdmenu")

    # Remote API
    api_base_url: str = "https://api.bitbucket.org/2.0"
    username: str = ""
    app_password: str = ""

    # Scheduling
    default_poll_interval_seconds: int = 60
    min_poll_interval_seconds: int = 30
    initial_delay_seconds: float = 2.0
    rate_limit_backoff_seconds: float | None = None  # None -> one extra interval

    # Fetch pool
    max_concurrent_fetches: int = 6
    fetch_timeout_seconds: float = 30.0

    # Broadcasting and notifications
    broadcast_queue_size: int = 16
    notify_on_unknown: bool = False
    notify_on_monitoring_recovery: bool = False
    auth_failure_threshold: int = 2
    events_path: Path | None = None

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"

    @property
    def resolved_config_dir(self) -> Path:
        """``config_dir`` with ``~`` expanded."""
        return self.config_dir.expanduser()


# Module-level singleton: import as `from cdmenu.config import config`
config = MonitorConfig()
