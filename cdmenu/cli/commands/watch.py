"""``cdmenu watch`` — poll continuously and show status as it changes.

Starts the poll scheduler, redraws the status panel after every tick and
prints a line for every notification.  Press Ctrl+C to stop.
"""

from __future__ import annotations

import threading
from pathlib import Path

import typer
from rich.console import Console

from cdmenu.cli.commands._shared import (
    CONFIG_DIR_OPTION,
    build_engine,
    format_toast,
    load_settings,
    open_provider,
)
from cdmenu.core.scheduler import PollScheduler
from cdmenu.errors import ConfigurationError
from cdmenu.monitor.renderer import StatusRenderer
from cdmenu.routing.dispatcher import NotificationDispatcher
from cdmenu.routing.sinks.desktop import DesktopPayloadSink
from cdmenu.routing.sinks.local_file import LocalFileSink
from cdmenu.routing.sinks.log_sink import LogSink

console = Console()


def watch_cmd(
    config_dir: Path = CONFIG_DIR_OPTION,
    interval: int = typer.Option(
        None,
        "--interval",
        "-i",
        help="Poll interval in seconds for this session (default: the saved interval).",
    ),
    events_file: Path = typer.Option(
        None,
        "--events-file",
        "-e",
        help="Also append every notification to this JSON-lines file.",
    ),
    live: bool = typer.Option(
        True,
        "--live/--no-live",
        help="Redraw one live panel instead of printing a panel per tick.",
    ),
) -> None:
    """Watch every monitored pipeline until interrupted."""
    settings = load_settings()
    provider = open_provider(settings, config_dir)
    engine, fetcher = build_engine(settings, provider)

    try:
        scheduler = PollScheduler(engine, settings=settings, interval=interval)
    except ConfigurationError as exc:
        fetcher.close()
        console.print(f"[bold red]Invalid interval:[/bold red] {exc}")
        raise typer.Exit(code=2)

    desktop = DesktopPayloadSink()
    dispatcher = NotificationDispatcher()
    dispatcher.register_sink(LogSink())
    dispatcher.register_sink(desktop)
    events_path = events_file or settings.events_path
    if events_path:
        dispatcher.register_sink(LocalFileSink(events_path))

    notifications = engine.broadcaster.subscribe_notifications()
    statuses = engine.broadcaster.subscribe_status()
    stop = threading.Event()
    pump = threading.Thread(
        target=dispatcher.pump, args=(notifications, stop), name="cdmenu-notify", daemon=True
    )

    renderer = StatusRenderer(console=console)
    console.print(
        f"[dim]Watching pipelines every {scheduler.current_interval()}s. Press Ctrl+C to exit.[/dim]"
    )
    pump.start()
    scheduler.start()
    try:
        if live:
            renderer.render_live(
                statuses,
                engine.get_current_aggregate_status(),
                stop,
                condition=lambda: engine.condition,
                messages=lambda: [format_toast(p) for p in desktop.flush()],
            )
        else:
            for aggregate in statuses:
                for payload in desktop.flush():
                    console.print(format_toast(payload))
                renderer.print_status(aggregate, engine.condition)
    except KeyboardInterrupt:
        console.print("[dim]Stopping...[/dim]")
    finally:
        stop.set()
        scheduler.stop(timeout=settings.fetch_timeout_seconds)
        notifications.close()
        statuses.close()
        pump.join(timeout=1.0)
        fetcher.close()
