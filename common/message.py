"""Terminated frame reading for serial and socket links.

Both device protocols frame responses with a terminator (a carriage return
for the sampling protocol, the closing root tag for the sign protocol), so a
frame is read by accumulating bytes until the terminator appears or the
deadline passes.

A read that returns no bytes is not an error by itself: pyserial returns
b"" when its own port timeout expires, so reading continues until the
exchange deadline.
"""

import logging
import time

from common.encoding import TransportError
from common.protocol import READ_POLL_S, TRACE, Transport

logger = logging.getLogger(__name__)

# Maximum frame length (prevents unbounded buffering on a babbling device)
MAX_FRAME_LENGTH = 8192


def read_until(port: Transport, terminator: bytes, deadline: float) -> bytes:
    """Read from port until terminator is seen.

    Returns the frame with the terminator stripped.

    Raises:
        TransportError: On deadline expiry, oversize frame or port failure.
    """
    buf = bytearray()
    while True:
        waiting = port.in_waiting
        chunk = port.read(waiting if waiting > 0 else 1)
        if chunk:
            buf.extend(chunk)
            end = buf.find(terminator)
            if end >= 0:
                frame = bytes(buf[:end])
                extra = len(buf) - end - len(terminator)
                if extra > 0:
                    logger.debug(f"Discarding {extra} bytes after terminator")
                logger.log(TRACE, f"Read frame: {frame!r}")
                return frame
            if len(buf) > MAX_FRAME_LENGTH:
                raise TransportError(
                    f"Frame exceeds {MAX_FRAME_LENGTH} bytes without terminator"
                )
            continue

        if time.monotonic() >= deadline:
            if buf:
                raise TransportError(f"Truncated frame ({len(buf)} bytes): {bytes(buf)!r}")
            raise TransportError("Timeout waiting for response")
        time.sleep(READ_POLL_S)
