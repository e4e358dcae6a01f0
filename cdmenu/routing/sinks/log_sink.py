"""Log sink — one log record per notification."""

from __future__ import annotations

import logging

from cdmenu.models.events import NotificationEvent, TransitionKind

logger = logging.getLogger(__name__)

_WARNING_KINDS = frozenset({TransitionKind.FAILED, TransitionKind.MONITORING_LOST})


class LogSink:
    """Writes notifications to the ``cdmenu.routing.sinks.log_sink`` logger.

    Failures and lost monitoring are logged at WARNING, everything else at
    INFO.
    """

    @property
    def sink_name(self) -> str:
        return "log"

    def accept(self, event: NotificationEvent) -> None:
        level = logging.WARNING if event.kind in _WARNING_KINDS else logging.INFO
        logger.log(level, "%s: %s", event.title, event.message.replace("\n", " "))
