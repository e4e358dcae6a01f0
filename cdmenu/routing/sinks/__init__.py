"""Sink protocol for notification routing.

All sinks implement ``BaseSink``: a ``sink_name`` property and an
``accept(event)`` method, called once per dispatched notification.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from cdmenu.models.events import NotificationEvent


@runtime_checkable
class BaseSink(Protocol):
    """Protocol that every notification sink implements.

    Attributes
    ----------
    sink_name : str
        Unique human-readable identifier (``"log"``, ``"local_file"``, ...).
    """

    @property
    def sink_name(self) -> str:
        ...

    def accept(self, event: NotificationEvent) -> None:
        """Deliver, store, or forward *event*.

        May raise; the dispatcher logs the failure and continues with the
        next sink.
        """
        ...
