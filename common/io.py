"""Port I/O helpers for comm links.

Contains:
- drain_input: Clear stale data from input buffer
- exchange: Write one encoded request and read its response frame
"""

import logging
import time

import serial

from common.encoding import TransportError
from common.protocol import TRACE, Codec, Transport

logger = logging.getLogger(__name__)


class LinkDownError(TransportError):
    """Raised when the port itself failed and must be reopened."""

    pass


def drain_input(port: Transport) -> int:
    """Drain stale data from input buffer. Returns bytes drained."""
    count = port.in_waiting
    if count > 0:
        port.read(count)
        logger.debug(f"Drained {count} stale bytes from input buffer")
    return count


def exchange(port: Transport, codec: Codec, frame: bytes, timeout_ms: int) -> bytes:
    """Send one request frame and read the response frame.

    Stale input is drained first so a late reply to a previous, timed out
    request is never taken as the answer to this one.

    Raises:
        LinkDownError: If the port reports a hard failure.
        TransportError: On timeout or truncated response.
    """
    try:
        drain_input(port)
        port.write(frame)
        logger.log(TRACE, f"Sent frame: {frame!r}")
        deadline = time.monotonic() + timeout_ms / 1000
        return codec.read_frame(port, deadline)
    except serial.SerialTimeoutException as e:
        raise TransportError(f"Write timeout: {e}") from e
    except (serial.SerialException, OSError) as e:
        raise LinkDownError(f"Port failure: {e}") from e
