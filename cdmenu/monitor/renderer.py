"""Rich terminal renderer for the pipeline monitor.

Turns an ``AggregateStatus`` into Rich renderables: one table row per
monitored pipeline, grouped by project, plus the tray tooltip text and
tray colour a menu-bar front end shows.

Color scheme
------------
- green     : SUCCESS
- red       : FAILED
- blue      : IN_PROGRESS
- yellow    : PAUSED (waiting for approval)
- dim       : UNKNOWN
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from itertools import groupby

from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cdmenu.core.broadcaster import Subscription
from cdmenu.models.events import ConditionKind
from cdmenu.models.status import AggregateStatus, FailedPipeline, PipelineState, TargetStatus

APP_NAME = "cdMenu"
MAX_TOOLTIP_FAILURES = 3

# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[PipelineState, str] = {
    PipelineState.SUCCESS: "green",
    PipelineState.FAILED: "bold red",
    PipelineState.IN_PROGRESS: "blue",
    PipelineState.PAUSED: "yellow",
    PipelineState.UNKNOWN: "dim",
    PipelineState.NOT_STARTED: "dim",
}

_STATE_LABELS: dict[PipelineState, str] = {
    PipelineState.SUCCESS: "[green]SUCCESS[/green]",
    PipelineState.FAILED: "[bold red]FAILED[/bold red]",
    PipelineState.IN_PROGRESS: "[blue]RUNNING[/blue]",
    PipelineState.PAUSED: "[yellow]PAUSED[/yellow]",
    PipelineState.UNKNOWN: "[dim]UNKNOWN[/dim]",
    PipelineState.NOT_STARTED: "[dim]NOT STARTED[/dim]",
}


def tray_color(
    aggregate: AggregateStatus, condition: ConditionKind = ConditionKind.OK
) -> str:
    """``green``, ``red`` or ``gray`` for the menu-bar icon."""
    if condition != ConditionKind.OK or not aggregate.has_checked:
        return "gray"
    return "green" if aggregate.is_healthy else "red"


def tooltip_text(
    aggregate: AggregateStatus, condition: ConditionKind = ConditionKind.OK
) -> str:
    """The menu-bar tooltip for *aggregate*.

    >>> tooltip_text(AggregateStatus.empty())
    'cdMenu - Checking...'
    """
    if condition == ConditionKind.UNCONFIGURED:
        return f"{APP_NAME} - Not configured"
    if condition == ConditionKind.AUTHENTICATION_FAILED:
        return f"{APP_NAME} - Auth required"
    if not aggregate.has_checked:
        return f"{APP_NAME} - Checking..."

    last_checked = f"Last checked: {format_clock(aggregate)}"
    if aggregate.is_healthy:
        lines = [APP_NAME, f"{aggregate.total_monitored} pipeline(s) healthy"]
        if aggregate.in_progress_count:
            lines.append(f"{aggregate.in_progress_count} in progress")
        lines.append(last_checked)
        return "\n".join(lines)

    lines = [APP_NAME]
    if aggregate.failed_pipelines:
        lines.append(f"{len(aggregate.failed_pipelines)} pipeline(s) FAILED")
        lines.append(_short_names(aggregate.failed_pipelines))
    if aggregate.unknown_pipelines:
        lines.append(f"{len(aggregate.unknown_pipelines)} could not be checked")
        lines.append(_short_names(aggregate.unknown_pipelines))
    lines.append(last_checked)
    return "\n".join(lines)


def _short_names(entries: list[FailedPipeline]) -> str:
    names = ", ".join(
        f"{f.target.workspace}/{f.target.repo_slug}" for f in entries[:MAX_TOOLTIP_FAILURES]
    )
    if len(entries) > MAX_TOOLTIP_FAILURES:
        names += f" +{len(entries) - MAX_TOOLTIP_FAILURES} more"
    return names


def format_clock(aggregate: AggregateStatus) -> str:
    """``last_checked`` as local ``HH:MM:SS``, or ``never``."""
    if aggregate.last_checked is None:
        return "never"
    return aggregate.last_checked.astimezone().strftime("%H:%M:%S")


class StatusRenderer:
    """Renders ``AggregateStatus`` snapshots as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Single snapshot render
    # ------------------------------------------------------------------

    def render(
        self, aggregate: AggregateStatus, condition: ConditionKind = ConditionKind.OK
    ) -> Panel:
        """Render *aggregate* as a Panel usable with ``print`` or ``Live``."""
        if aggregate.pipeline_statuses:
            body: Table | Text = self._build_table(aggregate)
        else:
            body = Text("No pipelines configured", style="dim")

        summary_parts = [
            f"[bold]Monitored:[/bold] {aggregate.total_monitored}",
            f"[bold]Failed:[/bold] {aggregate.failed_count}",
            f"[bold]Running:[/bold] {aggregate.in_progress_count}",
            f"[bold]Paused:[/bold] {aggregate.paused_count}",
        ]
        if aggregate.unknown_count:
            summary_parts.append(f"[dim][bold]Unknown:[/bold] {aggregate.unknown_count}[/dim]")
        if condition != ConditionKind.OK:
            summary_parts.append(f"[bold red]{tooltip_text(aggregate, condition)}[/bold red]")
        summary = "  |  ".join(summary_parts)

        color = tray_color(aggregate, condition)
        border = {"green": "green", "red": "red"}.get(color, "grey50")
        return Panel(
            Group(body, Text(""), Text.from_markup(summary)),
            title=f"[bold]{APP_NAME} Pipeline Monitor[/bold]",
            subtitle=f"Last checked: {format_clock(aggregate)}",
            border_style=border,
            padding=(1, 2),
        )

    def _build_table(self, aggregate: AggregateStatus) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Project", style="bold", min_width=12)
        table.add_column("Pipeline", min_width=20)
        table.add_column("State", min_width=10, justify="center")
        table.add_column("Details", min_width=20)

        ordered = sorted(aggregate.pipeline_statuses, key=lambda e: e.target.group_name.lower())
        for group, entries in groupby(ordered, key=lambda e: e.target.group_name):
            for i, entry in enumerate(entries):
                table.add_row(
                    group if i == 0 else "",
                    self._name_cell(entry),
                    _STATE_LABELS[entry.status.state],
                    self._details_cell(entry),
                )
        return table

    @staticmethod
    def _name_cell(entry: TargetStatus) -> str:
        style = _STATE_STYLES[entry.status.state]
        name = escape(entry.target.display_name)
        if entry.target.branch:
            name += f" [dim]({escape(entry.target.branch)})[/dim]"
        return f"[{style}]{name}[/{style}]"

    @staticmethod
    def _details_cell(entry: TargetStatus) -> str:
        status = entry.status
        if status.state == PipelineState.PAUSED:
            return f"[yellow]{escape(status.step_name or 'paused')}[/yellow]"
        if status.state in (PipelineState.FAILED, PipelineState.UNKNOWN) and status.reason:
            return f"[red]{escape(status.reason)}[/red]"
        if status.build_number is not None:
            return f"[dim]#{status.build_number}[/dim]"
        return "[dim]-[/dim]"

    # ------------------------------------------------------------------
    # Continuous live rendering
    # ------------------------------------------------------------------

    def render_live(
        self,
        subscription: Subscription[AggregateStatus],
        initial: AggregateStatus,
        stop: threading.Event,
        condition: Callable[[], ConditionKind] = lambda: ConditionKind.OK,
        messages: Callable[[], list[str]] | None = None,
    ) -> None:
        """Redraw on every snapshot from *subscription* until *stop* is set.

        *condition* is called on each redraw to pick up whole-tick
        conditions (unconfigured, authentication failed).  Lines returned
        by *messages* are printed above the live panel.
        """
        aggregate = initial
        with Live(self.render(aggregate, condition()), console=self.console) as live:
            while not stop.is_set():
                latest = subscription.get(timeout=0.5)
                if latest is not None:
                    aggregate = latest
                for line in messages() if messages else []:
                    live.console.print(line)
                live.update(self.render(aggregate, condition()))

    # ------------------------------------------------------------------
    # Standalone print
    # ------------------------------------------------------------------

    def print_status(
        self, aggregate: AggregateStatus, condition: ConditionKind = ConditionKind.OK
    ) -> None:
        self.console.print(self.render(aggregate, condition))
