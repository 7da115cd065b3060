"""Protocol definitions for the field device communication engine.

Contains:
- Transport Protocol for type checking (pyserial ports and test doubles)
- Codec Protocol implemented once per device protocol
- Timeout, retry and scheduling constants
- Logging configuration
"""

import logging
import os
from typing import Any, Protocol

# TRACE logging level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Progress logging interval (configurable via envvar)
LOG_PROGRESS_INTERVAL = int(os.environ.get("POLLER_LOG_INTERVAL", "100"))


class Transport(Protocol):
    """Protocol for byte-level port operations needed by a comm link."""

    def write(self, data: bytes, /) -> int | None: ...
    def read(self, size: int = ..., /) -> bytes: ...
    @property
    def in_waiting(self) -> int: ...
    def close(self) -> None: ...


class Codec(Protocol):
    """Protocol for encoding a request and decoding its response.

    One implementation exists per device protocol; it is picked when the
    device is registered and shared by every operation on that device.
    """

    name: str

    def encode(self, request: Any, drop: int) -> bytes: ...
    def read_frame(self, port: Transport, deadline: float) -> bytes: ...
    def decode(self, request: Any, frame: bytes) -> Any: ...


# Per-exchange timeouts selected from the device access descriptor
TIMEOUT_DEFAULT_MS = 1000 * 30
TIMEOUT_MODEM_MS = 1000 * 45 * 5
TIMEOUT_WIZARD_MS = 1000 * 30

# Retry bound shared by transport and framing failures
MAX_RETRIES = int(os.environ.get("POLLER_MAX_RETRIES", "3"))

# Routine operations older than this are serviced before high priority ones
DEFAULT_STALE_S = float(os.environ.get("POLLER_STALE_S", "60.0"))

# Pending operations allowed on one link
DEFAULT_QUEUE_SIZE = int(os.environ.get("POLLER_QUEUE_SIZE", "256"))

# Backoff bounds for reopening an unreachable transport
DEFAULT_BACKOFF_INITIAL_S = 1.0
DEFAULT_BACKOFF_MAX_S = 60.0

# Worker wakes up this often when the queue is empty
DEFAULT_IDLE_S = 0.5

# Read poll interval when the port has nothing buffered
READ_POLL_S = 0.01

# Round-trip samples kept per link for latency reporting
RTT_WINDOW = int(os.environ.get("POLLER_RTT_WINDOW", "1000"))
