"""``cdmenu targets`` — edit the list of monitored pipelines.

Changes are written to ``config.json`` and picked up by a running
``cdmenu watch`` at its next tick.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from cdmenu.cli.commands._shared import CONFIG_DIR_OPTION, load_settings, open_provider
from cdmenu.models.targets import MonitoredTarget

console = Console()

targets_app = typer.Typer(
    help="Add, remove and list monitored pipelines.",
    no_args_is_help=True,
)


@targets_app.command(name="add", help="Start monitoring a repository's pipelines.")
def add_cmd(
    workspace: str = typer.Argument(..., help="Bitbucket workspace slug."),
    repo_slug: str = typer.Argument(..., help="Repository slug."),
    branch: str = typer.Option(None, "--branch", "-b", help="Only watch runs of this branch."),
    name: str = typer.Option("", "--name", "-n", help="Display name (default: the slug)."),
    project: str = typer.Option(None, "--project", "-p", help="Project name used for grouping."),
    config_dir: Path = CONFIG_DIR_OPTION,
) -> None:
    provider = open_provider(load_settings(), config_dir)
    target = MonitoredTarget(
        workspace=workspace,
        repo_slug=repo_slug,
        repo_name=name,
        project_name=project,
        branch=branch or None,
    )
    if not provider.add_target(target):
        console.print(f"[yellow]Already monitoring[/yellow] {target.key}")
        raise typer.Exit(code=1)
    console.print(f"[green]Now monitoring[/green] {target.key}")


@targets_app.command(name="remove", help="Stop monitoring a pipeline.")
def remove_cmd(
    key: str = typer.Argument(..., help="Target key as shown by 'cdmenu targets list'."),
    config_dir: Path = CONFIG_DIR_OPTION,
) -> None:
    provider = open_provider(load_settings(), config_dir)
    if not provider.remove_target(key):
        console.print(f"[bold red]Not monitored:[/bold red] {key}")
        raise typer.Exit(code=1)
    console.print(f"[green]Stopped monitoring[/green] {key}")


@targets_app.command(name="list", help="Show the monitored pipelines.")
def list_cmd(config_dir: Path = CONFIG_DIR_OPTION) -> None:
    provider = open_provider(load_settings(), config_dir)
    targets = provider.get_monitored_targets()
    if not targets:
        console.print("[dim]No pipelines selected for monitoring.[/dim]")
        return

    table = Table(title="Monitored Pipelines")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Project")
    table.add_column("Branch")
    for target in targets:
        table.add_row(
            target.key, target.display_name, target.group_name, target.branch or "[dim]any[/dim]"
        )
    console.print(table)
