"""cdmenu CLI — Typer-based command-line interface.

Provides the ``cdmenu`` command with subcommands for a one-shot health
check, continuous watching, and editing the persisted configuration
(monitored pipelines, poll interval, credentials).

All output uses Rich for formatted terminal display.
"""
