"""``cdmenu check`` — run one polling tick and print the result.

Exit codes: 0 healthy, 1 at least one pipeline failed or could not be
checked, 2 not configured (no credentials or no pipelines selected) or no
tick result.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from cdmenu.cli.commands._shared import (
    CONFIG_DIR_OPTION,
    build_engine,
    load_settings,
    open_provider,
)
from cdmenu.models.events import TickOutcome
from cdmenu.monitor.renderer import StatusRenderer

console = Console()


def check_cmd(
    config_dir: Path = CONFIG_DIR_OPTION,
    json_output: bool = typer.Option(
        False, "--json", help="Print the aggregate status as JSON instead of a table."
    ),
) -> None:
    """Check every monitored pipeline once."""
    settings = load_settings()
    provider = open_provider(settings, config_dir)
    engine, fetcher = build_engine(settings, provider)
    try:
        report = engine.run_tick()
    finally:
        fetcher.close()

    if report.outcome == TickOutcome.SKIPPED_UNCONFIGURED:
        console.print(f"[bold yellow]Not configured:[/bold yellow] {report.reason}")
        console.print(
            "[dim]Set credentials with: cdmenu credentials USERNAME, "
            "then add pipelines with: cdmenu targets add WORKSPACE REPO[/dim]"
        )
        raise typer.Exit(code=2)

    aggregate = report.aggregate
    if aggregate is None:
        console.print(f"[bold yellow]No result:[/bold yellow] tick {report.outcome.value}")
        raise typer.Exit(code=2)
    if json_output:
        console.print_json(aggregate.model_dump_json())
    else:
        StatusRenderer(console=console).print_status(aggregate, engine.condition)

    if report.auth_failed:
        console.print("[bold red]Authentication failed - check username and app password[/bold red]")
    if not aggregate.is_healthy:
        raise typer.Exit(code=1)
