"""pytest configuration and fixtures for the poller tests.

Provides:
- MockSerialPort: Single-buffer mock for simple unit tests
- ScriptedPort: Device double that answers each written frame
- Recording listener and link parameter fixtures
- Markers for unit vs integration tests
"""

import io
import threading
import time
from collections.abc import Callable
from typing import Any

import pytest

from common.connection import Device, LinkParams
from common.encoding import ASCII, append_checksum


class MockSerialPort:
    """Mock serial port for unit testing.

    Uses a single buffer shared between read and write operations.
    Data written to the port can be read back immediately.
    """

    def __init__(self) -> None:
        self._buffer = io.BytesIO()
        self._read_pos = 0
        self._lock = threading.Lock()
        self.closed = False

    def write(self, data: bytes) -> int:
        with self._lock:
            pos = self._buffer.tell()
            self._buffer.seek(0, 2)  # Seek to end
            written = self._buffer.write(data)
            self._buffer.seek(pos)
            return written

    def read(self, size: int = 1, /) -> bytes:
        with self._lock:
            self._buffer.seek(self._read_pos)
            data = self._buffer.read(size)
            self._read_pos = self._buffer.tell()
            return data

    @property
    def in_waiting(self) -> int:
        with self._lock:
            end_pos = self._buffer.seek(0, 2)
            waiting = end_pos - self._read_pos
            return max(0, waiting)

    def inject(self, data: bytes) -> None:
        """Inject data into the buffer as if received from peer."""
        self.write(data)

    def close(self) -> None:
        self.closed = True


Responder = Callable[[bytes], bytes | None]


class ScriptedPort:
    """Device double for link tests.

    Every write is passed to responder; the bytes it returns become readable
    after delay_s. None means the device stays silent (a timeout).

    windows records (start, end) of each answered exchange: start when the
    request is written, end when the last response byte is read.
    """

    def __init__(self, responder: Responder, delay_s: float = 0.0) -> None:
        self.responder = responder
        self.delay_s = delay_s
        self.writes: list[bytes] = []
        self.windows: list[tuple[float, float]] = []
        self.closed = False
        self._rx = bytearray()
        self._ready_at = 0.0
        self._start: float | None = None
        self._lock = threading.Lock()

    def write(self, data: bytes, /) -> int:
        response = self.responder(data)
        with self._lock:
            self.writes.append(data)
            self._start = time.monotonic()
            if response:
                self._rx.extend(response)
                self._ready_at = self._start + self.delay_s
        return len(data)

    def _available(self) -> int:
        if time.monotonic() < self._ready_at:
            return 0
        return len(self._rx)

    def read(self, size: int = 1, /) -> bytes:
        with self._lock:
            n = min(size, self._available())
            data = bytes(self._rx[:n])
            del self._rx[:n]
            if data and not self._rx and self._start is not None:
                self.windows.append((self._start, time.monotonic()))
                self._start = None
            return data

    @property
    def in_waiting(self) -> int:
        with self._lock:
            return self._available()

    def close(self) -> None:
        self.closed = True


class RecordingListener:
    """Completion listener that keeps every notification."""

    def __init__(self) -> None:
        self.calls: list[tuple[Device, bool, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def on_operation_complete(
        self, device: Device, success: bool, derived: dict[str, Any]
    ) -> None:
        with self._lock:
            self.calls.append((device, success, derived))


def ss105_frame(payload: str) -> bytes:
    """Build a checksummed sampling protocol response frame."""
    return append_checksum(payload.encode(ASCII)) + b"\r"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (requires a pty)")


@pytest.fixture
def mock_port() -> MockSerialPort:
    return MockSerialPort()


@pytest.fixture
def scripted_port() -> type[ScriptedPort]:
    """The ScriptedPort class, to build ports with a custom responder."""
    return ScriptedPort


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def frame() -> Callable[[str], bytes]:
    """Sampling protocol response frame builder."""
    return ss105_frame


@pytest.fixture
def link_params() -> Callable[[str], LinkParams]:
    """Fast link parameters for tests."""

    def make(name: str = "test") -> LinkParams:
        return LinkParams(
            name=name,
            uri=f"mock://{name}",
            queue_size=64,
            stale_s=60.0,
            backoff_initial_s=0.02,
            backoff_max_s=0.1,
            idle_s=0.02,
        )

    return make
