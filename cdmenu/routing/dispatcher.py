"""NotificationDispatcher — routes each alert to ALL configured sinks.

A failing sink is logged and does not prevent delivery to the others.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from cdmenu.core.broadcaster import Subscription
from cdmenu.errors import CdMenuError
from cdmenu.models.events import NotificationEvent

if TYPE_CHECKING:
    from cdmenu.routing.sinks import BaseSink

logger = logging.getLogger(__name__)


class NotificationDispatchError(CdMenuError):
    """Raised when every registered sink failed for one notification."""


class NotificationDispatcher:
    """Routes notifications to every registered sink.

    Usage
    -----
    >>> dispatcher = NotificationDispatcher()
    >>> dispatcher.register_sink(LogSink())
    >>> dispatcher.dispatch(event)
    ['log']
    """

    def __init__(self) -> None:
        self._sinks: list[BaseSink] = []

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def register_sink(self, sink: BaseSink) -> None:
        """Register a sink.  Registering the same instance twice is a no-op."""
        if sink not in self._sinks:
            self._sinks.append(sink)
            logger.info("Registered notification sink: %s", sink.sink_name)

    def unregister_sink(self, sink: BaseSink) -> None:
        try:
            self._sinks.remove(sink)
            logger.info("Unregistered notification sink: %s", sink.sink_name)
        except ValueError:
            pass

    @property
    def registered_sinks(self) -> list[BaseSink]:
        return list(self._sinks)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: NotificationEvent) -> list[str]:
        """Deliver *event* to every sink.

        Returns the names of the sinks that accepted it.

        Raises
        ------
        NotificationDispatchError
            If *all* sinks fail.  Individual failures are tolerated.
        """
        if not self._sinks:
            logger.warning("No notification sinks registered; %s not delivered", event.title)
            return []

        succeeded: list[str] = []
        errors: list[tuple[str, Exception]] = []
        for sink in self._sinks:
            try:
                sink.accept(event)
                succeeded.append(sink.sink_name)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Sink %s failed for notification %s: %s", sink.sink_name, event.event_id, exc
                )
                errors.append((sink.sink_name, exc))

        if errors and not succeeded:
            raise NotificationDispatchError(
                f"All {len(errors)} sinks failed for notification {event.event_id}: "
                + "; ".join(f"{name}: {exc}" for name, exc in errors)
            )
        return succeeded

    def pump(
        self,
        subscription: Subscription[NotificationEvent],
        stop: threading.Event | None = None,
        timeout: float = 0.25,
    ) -> int:
        """Dispatch events from *subscription* until it closes or *stop* is set.

        Without *stop*, only the events already queued are delivered.
        Returns the number of events dispatched.
        """
        count = 0
        if stop is None:
            for event in subscription.drain():
                self._dispatch_quietly(event)
                count += 1
            return count

        while not subscription.closed and not stop.is_set():
            event = subscription.get(timeout=timeout)
            if event is not None:
                self._dispatch_quietly(event)
                count += 1
        return count

    def _dispatch_quietly(self, event: NotificationEvent) -> None:
        try:
            self.dispatch(event)
        except NotificationDispatchError as exc:
            logger.error("%s", exc)
