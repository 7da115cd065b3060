"""Device operation state machine.

An operation is one logical unit of work against one device: an ordered
list of requests, each exchanged in its own step. The comm link drives it
one step at a time:

    msg = op.next_message()          # None once the operation is terminal
    ... encode, write, read, decode ...
    op.on_response(result)           # or op.on_transport_error(error)

Terminal transitions go through _finish(), which runs cleanup() exactly
once. cleanup() is the only place that writes device state and the only
place that notifies the completion listener.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Protocol

from common.connection import CommStatus, Device
from common.encoding import CommError, ParseResult
from common.protocol import Codec
from operation.policy import Decision, RetryPolicy, calc_timeout_ms
from operation.result import CancellationError, OperationResult, OperationState

logger = logging.getLogger(__name__)


class Priority(IntEnum):
    """Service priority on a comm link. Lower values go first."""

    HIGH = 0  # User-issued command
    ROUTINE = 1  # Background poll


class CompletionListener(Protocol):
    """Collaborator notified of every finished operation (status display, archiving)."""

    def on_operation_complete(
        self, device: Device, success: bool, derived: dict[str, Any]
    ) -> None: ...


@dataclass(frozen=True)
class Message:
    """One request ready to be encoded, with the operation's timeout attached."""

    request: Any
    codec: Codec
    timeout_ms: int


class Operation(ABC):
    """Base class for all device operations.

    Subclasses supply the requests and consume decoded responses; they must
    not touch the device until cleanup().
    """

    def __init__(
        self,
        device: Device,
        codec: Codec,
        priority: Priority = Priority.ROUTINE,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.device = device
        self.codec = codec
        self.priority = priority
        self.policy = policy or RetryPolicy()
        self.logger = logger
        self.listener: CompletionListener | None = None

        self.state = OperationState.CREATED
        self.step = 0
        self.retries = 0  # Spent on the current step
        self.attempts = 0
        self.timeout_ms: int | None = None
        self.error: Exception | None = None
        self.created_at = time.monotonic()

        self._requests: list[Any] = []
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._finalized = False
        self._callbacks: list[Callable[["Operation"], None]] = []

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.device.name})"

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def build_requests(self) -> Sequence[Any]:
        """Return the request for each step, in order."""

    @abstractmethod
    def handle_response(self, step: int, value: Any) -> None:
        """Store the decoded response of a step.

        May raise a CommError (usually ProtocolLogicError) to reject it.
        """

    def retry_request(self, step: int, request: Any) -> Any:
        """Return the request to send when step is retried.

        The default re-sends the same request.
        """
        return request

    def compute_timeout_ms(self) -> int:
        return calc_timeout_ms(self.device.access, self.logger)

    def handle_exception(self, error: Exception) -> None:
        """Called for every failed exchange before the retry policy."""

    def derived_fields(self) -> dict[str, Any]:
        """Fields reported to the completion listener."""
        return {}

    def device_updates(self) -> dict[str, Any]:
        """Device fields written by cleanup()."""
        return {}

    # -------------------------------------------------------------------------
    # Driving
    # -------------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.state.terminal

    @property
    def success(self) -> bool:
        return self.state is OperationState.SUCCEEDED

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def begin(self) -> None:
        """Move from CREATED to ACTIVE. The timeout is fixed here, once."""
        if self.state is not OperationState.CREATED:
            return
        self.timeout_ms = self.compute_timeout_ms()
        self._requests = list(self.build_requests())
        self._started_at = time.monotonic()
        self.state = OperationState.ACTIVE
        self.logger.debug(f"{self}: begin ({len(self._requests)} steps, timeout={self.timeout_ms}ms)")

    def next_message(self) -> Message | None:
        """Return the message for the current step, or None if terminal.

        An operation whose steps are exhausted succeeds here.
        """
        if self.state is OperationState.CREATED:
            self.begin()
        if self.state is not OperationState.ACTIVE:
            return None
        if self.step >= len(self._requests):
            self._finish(OperationState.SUCCEEDED)
            return None
        assert self.timeout_ms is not None
        return Message(self._requests[self.step], self.codec, self.timeout_ms)

    def on_response(self, result: ParseResult) -> None:
        """Feed back the decoded response of the current step."""
        if self.state is not OperationState.ACTIVE:
            return
        self.attempts += 1
        if not result.ok:
            assert result.error is not None
            self._on_error(result.error)
            return
        try:
            self.handle_response(self.step, result.value)
        except CommError as e:
            self._on_error(e)
            return
        self.step += 1
        self.retries = 0
        if self.step >= len(self._requests):
            self._finish(OperationState.SUCCEEDED)

    def on_transport_error(self, error: Exception) -> None:
        """Feed back an I/O failure or timeout of the current step."""
        if self.state is not OperationState.ACTIVE:
            return
        self.attempts += 1
        self._on_error(error)

    def _on_error(self, error: Exception) -> None:
        self.handle_exception(error)
        decision = self.policy.decide(error, self.retries)
        match decision:
            case Decision.RETRY:
                self.retries += 1
                self._requests[self.step] = self.retry_request(
                    self.step, self._requests[self.step]
                )
                self.logger.warning(
                    f"{self}: step {self.step} {type(error).__name__}: {error} "
                    f"(retry {self.retries}/{self.policy.max_retries})"
                )
            case Decision.CANCEL:
                self._finish(OperationState.CANCELLED, error)
            case Decision.FAIL:
                self.logger.warning(f"{self}: failed: {type(error).__name__}: {error}")
                self._finish(OperationState.FAILED, error)

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def request_cancel(self) -> None:
        """Ask the operation to stop at the next safe point."""
        self._cancel.set()

    def finish_cancelled(self, reason: str = "cancelled") -> None:
        """Terminate now as CANCELLED. Only the current holder may call this."""
        self._cancel.set()
        self._finish(OperationState.CANCELLED, CancellationError(reason))

    def fail(self, error: Exception) -> None:
        """Terminate now as FAILED, bypassing the retry policy."""
        self._finish(OperationState.FAILED, error)

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def _finish(self, state: OperationState, error: Exception | None = None) -> None:
        with self._lock:
            if self._finalized:
                return
            self._finalized = True
            self.state = state
            self.error = error
            self._finished_at = time.monotonic()
        try:
            self.cleanup()
        except Exception:
            self.logger.exception(f"{self}: cleanup failed")
        finally:
            for callback in self._callbacks:
                try:
                    callback(self)
                except Exception:
                    self.logger.exception(f"{self}: completion callback failed")

    def cleanup(self) -> None:
        """Record the outcome on the device and notify the listener.

        Runs exactly once, on every terminal path. Subclasses extend
        device_updates() rather than writing the device themselves.
        """
        if self.state is OperationState.SUCCEEDED:
            status: CommStatus | None = CommStatus.OK
        elif self.state is OperationState.FAILED:
            status = CommStatus.FAILED
        else:
            status = None
        error = f"{type(self.error).__name__}: {self.error}" if self.error else None
        self.device.apply(status, error, **self.device_updates())
        if self.listener is not None:
            try:
                self.listener.on_operation_complete(
                    self.device, self.success, self.derived_fields()
                )
            except Exception:
                self.logger.exception(f"{self}: listener failed")

    def add_done_callback(self, fn: Callable[["Operation"], None]) -> None:
        """Call fn(self) once the operation is terminal (immediately if it already is)."""
        with self._lock:
            if not self._finalized:
                self._callbacks.append(fn)
                return
        fn(self)

    def result(self) -> OperationResult:
        elapsed = 0.0
        if self._started_at is not None and self._finished_at is not None:
            elapsed = self._finished_at - self._started_at
        return OperationResult(
            state=self.state,
            attempts=self.attempts,
            error=self.error,
            elapsed_s=elapsed,
            derived=self.derived_fields() if self.success else {},
        )
