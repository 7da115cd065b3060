"""Sign protocol codec: XML over a byte stream, framed by the closing root tag."""

import xml.etree.ElementTree as ET

from common.encoding import FramingError, ParseResult, ProtocolLogicError
from common.message import read_until
from common.protocol import Transport
from protocols.dmslite.messages import ROOT, SignRequest

TERMINATOR = f"</{ROOT}>".encode("ascii")


class DmsLiteCodec:
    """Encode sign requests and decode their XML responses."""

    name = "dmslite"

    def encode(self, request: SignRequest, drop: int) -> bytes:
        return ET.tostring(request.to_element(drop))

    def read_frame(self, port: Transport, deadline: float) -> bytes:
        return read_until(port, TERMINATOR, deadline) + TERMINATOR

    def decode(self, request: SignRequest, frame: bytes) -> ParseResult:
        try:
            start = frame.find(f"<{ROOT}".encode("ascii"))
            if start < 0:
                raise FramingError(f"No <{ROOT}> element", scanned=frame)
            try:
                root = ET.fromstring(frame[start:])
            except ET.ParseError as e:
                raise FramingError(f"Malformed XML: {e}", scanned=frame) from None
            return ParseResult.success(request.parse(root))
        except FramingError as e:
            if not e.scanned:
                e.scanned = frame
            return ParseResult.failure(e)
        except ProtocolLogicError as e:
            return ParseResult.failure(e)
