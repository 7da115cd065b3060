"""Comm link worker.

A CommLink owns one transport and one worker thread. The worker takes the
next operation from the link queue, performs exactly one exchange for it,
and puts it back if it has more steps, so a long operation never holds the
link while other devices wait.

Exchanges on a link never overlap. Links share nothing and run in parallel.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

import serial

from common.connection import Device, LinkParams
from common.device import open_port
from common.encoding import FramingError, ProtocolLogicError, TransportError
from common.io import LinkDownError, exchange
from common.protocol import LOG_PROGRESS_INTERVAL, RTT_WINDOW, TRACE, Transport
from operation.base import Message, Operation
from operation.policy import Backoff
from operation.result import OperationState
from poller.queue import OperationQueue, QueueClosedError

PortFactory = Callable[[LinkParams], Transport]


@dataclass
class LinkStats:
    """Counters accumulated by a link worker.

    rtt_samples keeps the most recent RTT_WINDOW round-trip times only.
    """

    exchanges: int = 0
    transport_errors: int = 0
    framing_errors: int = 0
    logic_errors: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    open_failures: int = 0
    rtt_samples: deque[float] = field(default_factory=lambda: deque(maxlen=RTT_WINDOW))


class CommLink:
    """One physical or logical channel and the worker that drains its queue."""

    def __init__(
        self,
        params: LinkParams,
        port_factory: PortFactory = open_port,
        logger: logging.Logger | None = None,
    ) -> None:
        self.params = params
        self.name = params.name
        self.logger = logger or logging.getLogger(__name__)
        self.queue = OperationQueue(params.queue_size, params.stale_s)
        self.stats = LinkStats()
        self.degraded = False

        self._port_factory = port_factory
        self._port: Transport | None = None
        self._backoff = Backoff(params.backoff_initial_s, params.backoff_max_s)
        self._devices: set[Device] = set()
        self._current: Operation | None = None
        self._lock = threading.Lock()  # Guards _devices, _current, stats
        self._exchange_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def __repr__(self) -> str:
        return f"CommLink({self.name!r}, {self.params.uri!r})"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker. A stopped link starts over with an empty queue."""
        if self._thread is not None:
            return
        if self.queue.closed:
            self.queue = OperationQueue(self.params.queue_size, self.params.stale_s)
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"link-{self.name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the worker.

        Pending operations are cancelled; the in-flight one finishes its
        current exchange first.
        """
        self._stop.set()
        for op in self.queue.close():
            op.finish_cancelled(f"link {self.name} stopped")
        with self._lock:
            if self._current is not None:
                self._current.request_cancel()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._close_port()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Devices and operations
    # -------------------------------------------------------------------------

    @property
    def devices(self) -> list[Device]:
        with self._lock:
            return list(self._devices)

    def add_device(self, device: Device) -> None:
        with self._lock:
            self._devices.add(device)
        device.link = self.name
        if self.degraded:
            device.mark_degraded(f"TransportError: link {self.name} unreachable")

    def remove_device(self, device: Device) -> None:
        """Detach device, cancelling every operation it has on this link."""
        self.cancel_device(device)
        with self._lock:
            self._devices.discard(device)
        device.link = None

    def submit(self, op: Operation) -> None:
        """Enqueue op.

        Raises:
            QueueFullError: If the link queue is full.
            QueueClosedError: If the link is stopped.
            ValueError: If the device is not attached to this link.
        """
        with self._lock:
            if op.device not in self._devices:
                raise ValueError(f"{op.device.name} is not on link {self.name}")
        op.logger = self.logger
        op.add_done_callback(self._count_outcome)
        self.queue.put(op)
        self.logger.log(TRACE, f"Link {self.name}: queued {op} ({len(self.queue)} pending)")

    def cancel(self, op: Operation) -> None:
        """Cancel op: at once if still queued, else after its current exchange."""
        if self.queue.remove(op):
            op.finish_cancelled()
        else:
            op.request_cancel()

    def cancel_device(self, device: Device) -> int:
        """Cancel every operation for device. Returns how many were queued."""
        removed = self.queue.remove_device(device)
        for op in removed:
            op.finish_cancelled(f"{device.name} cancelled")
        with self._lock:
            if self._current is not None and self._current.device is device:
                self._current.request_cancel()
        return len(removed)

    def _count_outcome(self, op: Operation) -> None:
        with self._lock:
            match op.state:
                case OperationState.SUCCEEDED:
                    self.stats.succeeded += 1
                case OperationState.FAILED:
                    self.stats.failed += 1
                case OperationState.CANCELLED:
                    self.stats.cancelled += 1

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _run(self) -> None:
        self.logger.info(f"Link {self.name}: worker started")
        while not self._stop.is_set():
            if not self._ensure_open():
                continue
            op = self.queue.get(timeout=self.params.idle_s, on_pop=self._set_current)
            if op is None:
                continue
            self._service(op)
        self.logger.info(f"Link {self.name}: worker stopped")

    def _ensure_open(self) -> bool:
        """Open the transport if needed, backing off while it is unreachable."""
        if self._port is not None:
            return True
        try:
            self._port = self._port_factory(self.params)
        except (serial.SerialException, OSError) as e:
            delay = self._backoff.next_delay()
            with self._lock:
                self.stats.open_failures += 1
            self.logger.warning(
                f"Link {self.name}: cannot open {self.params.uri}: {e} "
                f"(retry in {delay:.1f}s)"
            )
            self._mark_degraded(str(e))
            self._stop.wait(delay)
            return False
        if self.degraded:
            self.logger.info(f"Link {self.name}: transport reachable again")
            self.degraded = False
        self._backoff.reset()
        return True

    def _mark_degraded(self, reason: str) -> None:
        if self.degraded:
            return
        self.degraded = True
        for device in self.devices:
            device.mark_degraded(f"TransportError: link {self.name} unreachable: {reason}")

    def _close_port(self) -> None:
        port, self._port = self._port, None
        if port is None:
            return
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            self.logger.warning(f"Link {self.name}: error closing port: {e}")

    def _set_current(self, op: Operation) -> None:
        with self._lock:
            self._current = op

    def _service(self, op: Operation) -> None:
        """Run one step of op, then requeue it if it has more."""
        try:
            if op.cancel_requested or self._stop.is_set():
                op.finish_cancelled()
                return
            msg = op.next_message()
            if msg is None:
                return
            self._exchange(op, msg)
            if op.done:
                return
            if op.cancel_requested or self._stop.is_set():
                op.finish_cancelled()
                return
            try:
                self.queue.requeue(op)
            except QueueClosedError:
                op.finish_cancelled(f"link {self.name} stopped")
        except Exception as e:
            self.logger.exception(f"Link {self.name}: unexpected error in {op}")
            op.fail(e)
        finally:
            with self._lock:
                self._current = None

    def _exchange(self, op: Operation, msg: Message) -> None:
        """Perform one request/response exchange and feed the result to op."""
        frame = msg.codec.encode(msg.request, op.device.drop)
        assert self._port is not None
        with self._exchange_lock:
            start = time.monotonic()
            try:
                raw = exchange(self._port, msg.codec, frame, msg.timeout_ms)
            except LinkDownError as e:
                self._record_exchange(transport_error=True)
                self.logger.warning(f"Link {self.name}: {e}, closing port")
                self._close_port()
                op.on_transport_error(e)
                return
            except TransportError as e:
                self._record_exchange(transport_error=True)
                op.on_transport_error(e)
                return
            rtt = time.monotonic() - start

        result = msg.codec.decode(msg.request, raw)
        self._record_exchange(rtt=rtt, error=result.error)
        if isinstance(result.error, FramingError):
            self.logger.debug(f"Link {self.name}: {op}: {result.error} scanned={result.error.scanned!r}")
        op.on_response(result)

    def _record_exchange(
        self,
        rtt: float | None = None,
        error: Exception | None = None,
        transport_error: bool = False,
    ) -> None:
        with self._lock:
            self.stats.exchanges += 1
            if transport_error:
                self.stats.transport_errors += 1
            elif isinstance(error, FramingError):
                self.stats.framing_errors += 1
            elif isinstance(error, ProtocolLogicError):
                self.stats.logic_errors += 1
            if rtt is not None:
                self.stats.rtt_samples.append(rtt)
            count = self.stats.exchanges
        if count % LOG_PROGRESS_INTERVAL == 0:
            self.logger.debug(f"Link {self.name}: {count} exchanges")
