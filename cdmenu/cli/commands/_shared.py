"""Wiring shared by the CLI commands: settings, provider, engine."""

from __future__ import annotations

from pathlib import Path

import typer

from cdmenu.bitbucket.fetcher import BitbucketFetcher
from cdmenu.config import MonitorConfig
from cdmenu.core.engine import PollingEngine
from cdmenu.providers import FileConfigProvider
from cdmenu.routing.sinks.desktop import DesktopPayload

CONFIG_DIR_OPTION = typer.Option(
    None,
    "--config-dir",
    "-c",
    help="Directory holding config.json and .credentials (default: ~/.config/cdmenu).",
)


def load_settings() -> MonitorConfig:
    """Fresh settings, so CDMENU_* changes between invocations are honoured."""
    return MonitorConfig()


def open_provider(settings: MonitorConfig, config_dir: Path | None) -> FileConfigProvider:
    return FileConfigProvider(settings, config_dir=config_dir)


def build_engine(
    settings: MonitorConfig, provider: FileConfigProvider
) -> tuple[PollingEngine, BitbucketFetcher]:
    """Return the engine and the fetcher it owns (the caller closes it)."""
    fetcher = BitbucketFetcher(
        base_url=settings.api_base_url, timeout=settings.fetch_timeout_seconds
    )
    return PollingEngine(provider, fetcher, settings=settings), fetcher


def format_toast(payload: DesktopPayload) -> str:
    """One console line standing in for an OS notification."""
    style = "bold red" if payload.urgent else "bold cyan"
    line = f"[{style}]{payload.title}[/{style}] {payload.body}"
    if payload.url:
        line += f" [dim]{payload.url}[/dim]"
    return line
