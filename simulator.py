"""Virtual sampling-protocol detector station on a pty.

Answers "XD" binned sample requests for any drop with a fixed set of lane
samples, so the poller can be exercised without hardware.
"""

import logging
import os
import pty
import sys
import threading
import time
import tty

from common.encoding import (
    ASCII,
    FramingError,
    append_checksum,
    hex_field,
    strip_checksum,
)
from protocols.ss105.codec import HEADER, TERMINATOR
from protocols.ss105.samples import LaneSample

logger = logging.getLogger(__name__)

DEFAULT_LANES = (
    LaneSample(det=1, volume=12, speed=55, occupancy=102, small=900, medium=100, large=24),
    LaneSample(det=2, volume=9, speed=61, occupancy=77, small=1000, medium=24, large=0),
)


def format_lane(ls: LaneSample) -> str:
    """Format one 29-character lane record."""
    return (
        hex_field(ls.det, 1)
        + hex_field(ls.volume, 8)
        + hex_field(ls.speed, 4)
        + hex_field(ls.occupancy, 4)
        + hex_field(ls.small, 4)
        + hex_field(ls.medium, 4)
        + hex_field(ls.large, 4)
    )


def build_response(
    request: bytes, lanes: tuple[LaneSample, ...], now: float
) -> bytes | None:
    """Answer one request frame (terminator removed). None if not understood."""
    try:
        body = strip_checksum(request).decode(ASCII)
    except (FramingError, UnicodeDecodeError):
        return None
    if not body.startswith(HEADER) or body[5:7] != "XD":
        return None
    try:
        age = int(body[7:], 16) if len(body) > 7 else 0
    except ValueError:
        return None
    stamp = hex_field(int(now) - age * 30, 8)
    payload = stamp + "".join(format_lane(ls) for ls in lanes)
    return append_checksum(payload.encode(ASCII)) + TERMINATOR


class SamplingSimulator:
    """Detector station simulator using a pty pair."""

    def __init__(self, lanes: tuple[LaneSample, ...] = DEFAULT_LANES) -> None:
        if sys.platform not in ("linux", "darwin"):
            raise RuntimeError(
                f"Simulator only supported on Linux/macOS, not {sys.platform}"
            )
        self.lanes = lanes
        self._master_fd, slave_fd = pty.openpty()
        self.port_name = os.ttyname(slave_fd)
        tty.setraw(slave_fd)
        self._slave_fd = slave_fd
        self._running = True
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()
        logger.info(f"Simulator pty: {self.port_name}")

    def _serve(self) -> None:
        buf = b""
        while self._running:
            try:
                data = os.read(self._master_fd, 4096)
            except OSError:
                break
            if not data:
                break
            buf += data
            while TERMINATOR in buf:
                frame, buf = buf.split(TERMINATOR, 1)
                response = build_response(frame, self.lanes, time.time())
                if response is None:
                    logger.debug(f"Simulator: ignoring {frame!r}")
                    continue
                os.write(self._master_fd, response)

    def close(self) -> None:
        self._running = False
        # Closing the slave end makes the blocked master read fail with EIO
        os.close(self._slave_fd)
        self._thread.join(timeout=1.0)
        os.close(self._master_fd)
        logger.info("Closed simulator")
