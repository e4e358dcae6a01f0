"""Main Typer application — imports and registers all CLI commands.

Entry point: ``cdmenu`` (configured via pyproject.toml console scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from cdmenu.cli.commands.check import check_cmd
from cdmenu.cli.commands.settings_cmd import credentials_cmd, interval_cmd
from cdmenu.cli.commands.targets import targets_app
from cdmenu.cli.commands.watch import watch_cmd
from cdmenu.config import config

app = typer.Typer(
    name="cdmenu",
    help="cdmenu: watch Bitbucket Pipelines and get told when they break or recover.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="check", help="Check all monitored pipelines once.")(check_cmd)
app.command(name="watch", help="Poll continuously and show live status.")(watch_cmd)
app.command(name="interval", help="Set the poll interval in seconds.")(interval_cmd)
app.command(name="credentials", help="Save Bitbucket credentials.")(credentials_cmd)
app.add_typer(targets_app, name="targets")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False, rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def _main_options(
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level (default: CDMENU_LOG_LEVEL or INFO)."
    ),
) -> None:
    configure_logging(log_level or config.log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
