"""Thread-safe operation queue for one comm link.

Ordering rules:
- FIFO within a priority level
- HIGH before ROUTINE
- A ROUTINE operation waiting longer than stale_s is served first, so a
  steady stream of user commands cannot starve background polling
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

from operation.base import Operation, Priority

logger = logging.getLogger(__name__)


class QueueFullError(Exception):
    """Raised when an operation is submitted to a full link queue."""

    pass


class QueueClosedError(Exception):
    """Raised when an operation is submitted to a stopped link."""

    pass


class OperationQueue:
    """Bounded, priority-aware FIFO shared by enqueuers and the link worker."""

    def __init__(self, maxsize: int, stale_s: float) -> None:
        self.maxsize = maxsize
        self.stale_s = stale_s
        self._levels: dict[Priority, deque[tuple[float, Operation]]] = {
            p: deque() for p in sorted(Priority)
        }
        self._cond = threading.Condition()
        self._closed = False

    def __len__(self) -> int:
        with self._cond:
            return sum(len(q) for q in self._levels.values())

    def put(self, op: Operation) -> None:
        """Enqueue a new operation.

        Raises:
            QueueFullError: If maxsize operations are already pending.
            QueueClosedError: If the queue was closed.
        """
        with self._cond:
            if self._closed:
                raise QueueClosedError("Link is stopped")
            pending = sum(len(q) for q in self._levels.values())
            if pending >= self.maxsize:
                raise QueueFullError(f"Queue full ({self.maxsize} pending)")
            self._levels[op.priority].append((time.monotonic(), op))
            self._cond.notify()

    def requeue(self, op: Operation) -> None:
        """Return an operation between steps. Not subject to maxsize."""
        with self._cond:
            if self._closed:
                raise QueueClosedError("Link is stopped")
            self._levels[op.priority].append((time.monotonic(), op))
            self._cond.notify()

    def _pop_locked(self) -> Operation | None:
        now = time.monotonic()
        # Stale lower levels first
        for priority in sorted(Priority, reverse=True):
            q = self._levels[priority]
            if priority != min(Priority) and q and now - q[0][0] >= self.stale_s:
                logger.debug(f"Promoting stale {q[0][1]} ({now - q[0][0]:.1f}s old)")
                return q.popleft()[1]
        for priority in sorted(Priority):
            q = self._levels[priority]
            if q:
                return q.popleft()[1]
        return None

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def get(
        self,
        timeout: float | None = None,
        on_pop: Callable[[Operation], None] | None = None,
    ) -> Operation | None:
        """Dequeue the next operation, waiting up to timeout.

        on_pop(op) runs before the queue lock is released, so a concurrent
        remove_device() either finds op still queued or sees what on_pop
        recorded.

        Returns None on timeout or once the queue is closed and empty.
        """
        with self._cond:
            op = self._pop_locked()
            if op is None and not self._closed:
                self._cond.wait(timeout)
                op = self._pop_locked()
            if op is not None and on_pop is not None:
                on_pop(op)
            return op

    def remove(self, op: Operation) -> bool:
        """Remove a pending operation. Returns False if it is not queued."""
        with self._cond:
            q = self._levels[op.priority]
            for entry in q:
                if entry[1] is op:
                    q.remove(entry)
                    return True
            return False

    def remove_device(self, device: object) -> list[Operation]:
        """Remove and return every pending operation for device."""
        removed: list[Operation] = []
        with self._cond:
            for priority, q in self._levels.items():
                keep = deque(e for e in q if e[1].device is not device)
                removed.extend(e[1] for e in q if e[1].device is device)
                self._levels[priority] = keep
        return removed

    def close(self) -> list[Operation]:
        """Close the queue, wake the worker and return what was pending."""
        with self._cond:
            self._closed = True
            pending = [e[1] for p in sorted(Priority) for e in self._levels[p]]
            for q in self._levels.values():
                q.clear()
            self._cond.notify_all()
            return pending
