"""Status broadcaster — publish/subscribe over bounded queues.

The engine publishes once per completed tick and never blocks on a slow
consumer: each subscriber owns a bounded ``queue.Queue`` and, when it is
full, the oldest item is dropped to make room.  Dropped items are counted
per subscription.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator
from typing import Generic, TypeVar

from cdmenu.models.events import ConditionEvent, NotificationEvent
from cdmenu.models.status import AggregateStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_SIZE = 16


class Subscription(Generic[T]):
    """One consumer's bounded view of a channel.

    Use ``get()`` / ``drain()`` to consume, or iterate (blocking) until
    the subscription is closed.
    """

    def __init__(self, channel: Channel[T], maxsize: int) -> None:
        self._channel = channel
        self._queue: queue.Queue[T] = queue.Queue(maxsize=max(1, maxsize))
        self._dropped = 0
        self._closed = threading.Event()

    @property
    def dropped(self) -> int:
        """How many items were discarded because this consumer fell behind."""
        return self._dropped

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _offer(self, item: T) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self._dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> T | None:
        """Return the next item, or ``None`` if none arrives in *timeout*."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[T]:
        """Return every queued item without blocking."""
        items: list[T] = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items

    def close(self) -> None:
        self._closed.set()
        self._channel.unsubscribe(self)

    def __iter__(self) -> Iterator[T]:
        while not self._closed.is_set():
            item = self.get(timeout=0.25)
            if item is not None:
                yield item


class Channel(Generic[T]):
    """A named fan-out point with any number of subscriptions."""

    def __init__(self, name: str, default_maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self.name = name
        self._default_maxsize = default_maxsize
        self._subscriptions: list[Subscription[T]] = []
        self._lock = threading.Lock()

    def subscribe(self, maxsize: int | None = None) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self, maxsize or self._default_maxsize)
        with self._lock:
            self._subscriptions.append(sub)
        logger.debug("New subscriber on %s channel", self.name)
        return sub

    def unsubscribe(self, sub: Subscription[T]) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(sub)
            except ValueError:
                pass

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, item: T) -> int:
        """Offer *item* to every subscriber.  Returns the subscriber count."""
        with self._lock:
            subscribers = list(self._subscriptions)
        for sub in subscribers:
            before = sub.dropped
            sub._offer(item)
            if sub.dropped != before:
                logger.warning(
                    "Subscriber on %s channel is falling behind (%d dropped)",
                    self.name,
                    sub.dropped,
                )
        return len(subscribers)


class StatusBroadcaster:
    """The engine's three outbound channels.

    - ``status``: one ``AggregateStatus`` per completed tick.
    - ``notifications``: ``NotificationEvent`` objects in detection order.
    - ``conditions``: ``ConditionEvent`` when the whole-tick condition
      changes (unconfigured, authentication failed, back to ok).
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.status: Channel[AggregateStatus] = Channel("status", queue_size)
        self.notifications: Channel[NotificationEvent] = Channel("notifications", queue_size)
        self.conditions: Channel[ConditionEvent] = Channel("conditions", queue_size)

    def subscribe_status(self, maxsize: int | None = None) -> Subscription[AggregateStatus]:
        return self.status.subscribe(maxsize)

    def subscribe_notifications(
        self, maxsize: int | None = None
    ) -> Subscription[NotificationEvent]:
        return self.notifications.subscribe(maxsize)

    def subscribe_conditions(self, maxsize: int | None = None) -> Subscription[ConditionEvent]:
        return self.conditions.subscribe(maxsize)
