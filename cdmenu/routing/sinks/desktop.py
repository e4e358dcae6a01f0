"""Desktop notification sink — builds OS notification payloads.

The sink does not talk to the operating system.  It turns each
notification into a ``DesktopPayload`` (title, body, click-through URL)
and buffers it until the front end calls ``flush()`` and shows it.
"""

from __future__ import annotations

import logging
import threading

from pydantic import BaseModel, ConfigDict

from cdmenu.models.events import NotificationEvent, TransitionKind

logger = logging.getLogger(__name__)


class DesktopPayload(BaseModel):
    """What an OS notification needs."""

    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    url: str | None = None
    urgent: bool = False


class DesktopPayloadSink:
    """Buffers desktop notification payloads for an external deliverer.

    Parameters
    ----------
    max_pending:
        Oldest payloads are discarded once the buffer holds this many.
    """

    def __init__(self, max_pending: int = 50) -> None:
        self._max_pending = max_pending
        self._pending: list[DesktopPayload] = []
        self._lock = threading.Lock()

    @property
    def sink_name(self) -> str:
        return "desktop"

    def accept(self, event: NotificationEvent) -> None:
        # The URL is carried separately so the body stays short on screen.
        body = event.message.split("\n", 1)[0]
        payload = DesktopPayload(
            title=event.title,
            body=body,
            url=event.to_status.pipeline_url,
            urgent=event.kind == TransitionKind.FAILED,
        )
        with self._lock:
            self._pending.append(payload)
            overflow = len(self._pending) - self._max_pending
            if overflow > 0:
                del self._pending[:overflow]
                logger.warning("DesktopPayloadSink: discarded %d unshown payload(s)", overflow)

    def flush(self) -> list[DesktopPayload]:
        """Return and clear all pending payloads."""
        with self._lock:
            payloads = list(self._pending)
            self._pending.clear()
        return payloads

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
