"""Notification routing — delivers pipeline alerts to every configured sink.

The engine only publishes ``NotificationEvent`` objects on its broadcaster.
The ``NotificationDispatcher`` consumes them and fans each one out to the
registered sinks: the log, a JSON-lines file, or OS notification payloads
for whatever front end shows them.
"""

from cdmenu.routing.dispatcher import NotificationDispatchError, NotificationDispatcher

__all__ = ["NotificationDispatchError", "NotificationDispatcher"]
