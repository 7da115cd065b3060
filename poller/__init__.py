"""Poller package.

Schedules operations across comm links:
- queue: OperationQueue with priority and staleness promotion
- link: CommLink worker, one per physical or logical channel
- engine: Poller, the entry point owning links and device registration
- report: LinkReport
"""

from poller.engine import Poller
from poller.link import CommLink, LinkStats
from poller.queue import OperationQueue, QueueClosedError, QueueFullError
from poller.report import LinkReport

__all__ = [
    "CommLink",
    "LinkReport",
    "LinkStats",
    "OperationQueue",
    "Poller",
    "QueueClosedError",
    "QueueFullError",
]
