"""Caller-side handle for a submitted operation."""

from collections.abc import Callable
from concurrent.futures import Future
from typing import TYPE_CHECKING

from operation.base import Operation
from operation.result import OperationResult

if TYPE_CHECKING:
    from poller.link import CommLink


class OperationHandle:
    """Returned by Poller.submit().

    wait() blocks for the outcome; add_done_callback() notifies instead.
    cancel() removes a queued operation before any byte is exchanged, or
    stops an in-flight one after its current exchange.
    """

    def __init__(self, op: Operation, link: "CommLink") -> None:
        self.operation = op
        self._link = link
        self._future: Future[OperationResult] = Future()
        op.add_done_callback(self._on_done)

    def _on_done(self, op: Operation) -> None:
        self._future.set_result(op.result())

    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: float | None = None) -> OperationResult:
        """Block until the operation is terminal.

        Raises TimeoutError if timeout expires first.
        """
        return self._future.result(timeout)

    def add_done_callback(self, fn: Callable[[OperationResult], None]) -> None:
        self._future.add_done_callback(lambda f: fn(f.result()))

    def cancel(self) -> bool:
        """Cancel the operation. Returns False if it had already finished."""
        if self.operation.done:
            return False
        self._link.cancel(self.operation)
        return True
