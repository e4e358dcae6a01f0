"""Local file sink — appends notifications to a JSON-lines file.

One canonical JSON object per line (sorted keys, compact separators), so
the file can be tailed, grepped, or loaded back with ``read_events``.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from cdmenu.models.events import NotificationEvent

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_PATH = Path("~/.config/cdmenu/notifications.jsonl")


def canonical_json_line(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


class LocalFileSink:
    """Appends notifications to a ``.jsonl`` file.

    Parameters
    ----------
    path:
        Target file.  Defaults to ``~/.config/cdmenu/notifications.jsonl``.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path else DEFAULT_EVENTS_PATH.expanduser()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def sink_name(self) -> str:
        return "local_file"

    @property
    def path(self) -> Path:
        return self._path

    def accept(self, event: NotificationEvent) -> None:
        record = {
            "event_id": event.event_id,
            "emitted_at": event.emitted_at.isoformat(),
            "kind": event.kind.value,
            "target": event.target.key,
            "from_state": event.from_status.state.value,
            "to_state": event.to_status.state.value,
            "title": event.title,
            "message": event.message,
            "pipeline_url": event.to_status.pipeline_url,
        }
        with self._lock:
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(canonical_json_line(record) + "\n")
        logger.debug("LocalFileSink: wrote %s to %s", event.event_id, self._path)

    def read_events(self) -> list[dict]:
        """Parse every line written so far."""
        if not self._path.exists():
            return []
        with self._path.open(encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]
