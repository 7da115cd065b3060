"""Sampling protocol frame codec.

Request frame:
  "Z" [4-digit decimal drop] [command] [2 hex checksum]? CR

Response frame:
  [payload] [2 hex checksum]? CR

The checksum is the 8-bit sum of every preceding byte of the frame and is
present when the request's has_checksum() says so.
"""

import logging

from common.encoding import (
    ASCII,
    FramingError,
    ParseResult,
    ProtocolLogicError,
    append_checksum,
    strip_checksum,
)
from common.message import read_until
from common.protocol import Transport
from protocols.ss105.request import Request

logger = logging.getLogger(__name__)

HEADER = "Z"
TERMINATOR = b"\r"
MAX_DROP = 9999


class SS105Codec:
    """Encode sampling requests and decode their responses."""

    name = "ss105"

    def encode(self, request: Request, drop: int) -> bytes:
        if not 0 <= drop <= MAX_DROP:
            raise ValueError(f"Drop {drop} outside 0-{MAX_DROP}")
        frame = f"{HEADER}{drop:04d}{request.format()}".encode(ASCII)
        if request.has_checksum():
            frame = append_checksum(frame)
        return frame + TERMINATOR

    def read_frame(self, port: Transport, deadline: float) -> bytes:
        return read_until(port, TERMINATOR, deadline)

    def decode(self, request: Request, frame: bytes) -> ParseResult:
        """Decode a response frame (terminator already removed)."""
        try:
            body = strip_checksum(frame) if request.has_checksum() else frame
            try:
                payload = body.decode(ASCII)
            except UnicodeDecodeError:
                raise FramingError("NON-ASCII RESPONSE", scanned=frame) from None
            return ParseResult.success(request.parse(payload))
        except FramingError as e:
            if not e.scanned:
                e.scanned = frame
            return ParseResult.failure(e)
        except ProtocolLogicError as e:
            return ParseResult.failure(e)
