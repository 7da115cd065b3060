"""Device and link state dataclasses.

Contains:
- CommStatus: Communication status of a device
- Device: An addressable field unit
- LinkParams: Tuning for one comm link
"""

import threading
from dataclasses import dataclass, field
from enum import Enum

from common.protocol import (
    DEFAULT_BACKOFF_INITIAL_S,
    DEFAULT_BACKOFF_MAX_S,
    DEFAULT_IDLE_S,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_STALE_S,
)


class CommStatus(Enum):
    """Communication status of a device."""

    UNKNOWN = "unknown"
    OK = "ok"
    FAILED = "failed"  # Last operation exhausted its retries
    DEGRADED = "degraded"  # Link transport unreachable


@dataclass(eq=False)
class Device:
    """An addressable field unit (sign, detector station, meter).

    Fields below `access` are written by operation cleanup only; link
    degradation is the single exception and goes through mark_degraded().
    Devices compare by identity.
    """

    name: str
    protocol: str
    drop: int = 1
    access: str = ""  # Access-method descriptor, e.g. "Dial-Modem-1"
    status: CommStatus = CommStatus.UNKNOWN
    error: str | None = None
    reset: bool = False  # Sign reset / error indicator
    link: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def apply(self, status: CommStatus | None, error: str | None, **attrs: object) -> None:
        """Record an operation outcome. Called from cleanup().

        A status of None leaves the comm status alone (cancelled operations).
        """
        with self._lock:
            if status is not None:
                self.status = status
            self.error = error
            for name, value in attrs.items():
                if not hasattr(self, name) or name.startswith("_"):
                    raise AttributeError(f"Device has no field {name!r}")
                setattr(self, name, value)

    def mark_degraded(self, reason: str) -> None:
        """Flag the device as unreachable because its link is down."""
        with self._lock:
            self.status = CommStatus.DEGRADED
            self.error = reason


@dataclass
class LinkParams:
    """Parameters for one comm link.

    uri is a serial device path (/dev/ttyUSB0, COM3) or a pyserial URL
    (socket://host:port, rfc2217://host:port).
    """

    name: str
    uri: str
    baudrate: int = 9600
    rtscts: bool = False
    queue_size: int = DEFAULT_QUEUE_SIZE
    stale_s: float = DEFAULT_STALE_S
    backoff_initial_s: float = DEFAULT_BACKOFF_INITIAL_S
    backoff_max_s: float = DEFAULT_BACKOFF_MAX_S
    idle_s: float = DEFAULT_IDLE_S
