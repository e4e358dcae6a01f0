"""``cdmenu interval`` and ``cdmenu credentials`` — persisted settings."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from cdmenu.cli.commands._shared import CONFIG_DIR_OPTION, load_settings, open_provider
from cdmenu.errors import ConfigurationError

console = Console()


def interval_cmd(
    seconds: int = typer.Argument(..., help="Seconds between polls (minimum 30)."),
    config_dir: Path = CONFIG_DIR_OPTION,
) -> None:
    """Validate and save the poll interval."""
    provider = open_provider(load_settings(), config_dir)
    try:
        provider.set_interval(seconds)
    except ConfigurationError as exc:
        console.print(f"[bold red]Invalid interval:[/bold red] {exc}")
        raise typer.Exit(code=1)
    console.print(f"[green]Poll interval set to {seconds}s[/green]")


def credentials_cmd(
    username: str = typer.Argument(..., help="Bitbucket username."),
    app_password: str = typer.Option(
        ..., "--app-password", prompt=True, hide_input=True, help="Bitbucket app password."
    ),
    config_dir: Path = CONFIG_DIR_OPTION,
) -> None:
    """Save the Bitbucket username and app password."""
    provider = open_provider(load_settings(), config_dir)
    provider.set_username(username)
    provider.save_password(app_password)
    console.print(f"[green]Credentials saved for[/green] {username}")
