"""cdmenu: Bitbucket Pipelines status monitor.

Polls a configured set of pipelines, reduces them to one health snapshot,
and raises a notification once per meaningful change:

  - Bounded-concurrency fetches with per-fetch timeouts
  - Failures and recoveries notified exactly once, never per tick
  - Paused (manual approval) steps reported by step name
  - Publish/subscribe snapshots for tray, terminal, or any other front end
  - Typer CLI: one-shot ``check`` and continuous ``watch``
"""

__version__ = "0.1.0"
__description__ = "Pipeline polling and status reconciliation engine for Bitbucket Pipelines"

from cdmenu.core.engine import PollingEngine
from cdmenu.core.scheduler import PollScheduler

__all__ = ["PollingEngine", "PollScheduler", "__version__"]
