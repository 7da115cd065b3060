"""Field encoding helpers and error taxonomy.

Contains:
- CommError and its subclasses (TransportError, FramingError,
  ProtocolLogicError)
- ParseResult: value-or-error returned by every codec decode
- Fixed-width hexadecimal field helpers and the additive checksum
"""

from dataclasses import dataclass
from typing import Any

ASCII = "ascii"


class CommError(Exception):
    """Base class for failures scoped to a single operation."""

    pass


class TransportError(CommError):
    """Raised when the medium fails (timeout, truncation, closed port)."""

    pass


class FramingError(CommError):
    """Raised when a response has a bad checksum or fixed-width layout.

    scanned holds the raw bytes that were read, for the debug log.
    """

    def __init__(self, message: str, scanned: bytes = b"") -> None:
        super().__init__(message)
        self.scanned = scanned


class ProtocolLogicError(CommError):
    """Raised when a well-formed response contradicts the protocol."""

    pass


@dataclass(frozen=True)
class ParseResult:
    """Outcome of decoding one response.

    Exactly one of value or error is meaningful: ok is True when error is None.
    """

    value: Any = None
    error: CommError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> "ParseResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CommError) -> "ParseResult":
        return cls(error=error)


def hex_field(value: int, width: int) -> str:
    """Format value as zero-padded uppercase hex, exactly width digits."""
    if value < 0 or value >= 16**width:
        raise ValueError(f"{value} does not fit in {width} hex digits")
    return f"{value:0{width}X}"


def parse_hex(field: str, what: str = "field") -> int:
    """Parse a fixed-width hex field.

    Raises FramingError for empty fields, signs, whitespace or non-hex digits.
    """
    if not field or not all(c in "0123456789abcdefABCDEF" for c in field):
        raise FramingError(f"INVALID {what.upper()}: {field!r}")
    return int(field, 16)


def checksum(data: bytes) -> int:
    """Return the 8-bit additive checksum of data."""
    return sum(data) & 0xFF


def append_checksum(data: bytes) -> bytes:
    """Append the checksum as two ASCII hex digits."""
    return data + hex_field(checksum(data), 2).encode(ASCII)


def strip_checksum(data: bytes) -> bytes:
    """Verify and remove a trailing two-digit checksum.

    Raises FramingError if the checksum is missing or does not match.
    """
    if len(data) < 2:
        raise FramingError("MISSING CHECKSUM", scanned=data)
    body, tail = data[:-2], data[-2:]
    try:
        expected = parse_hex(tail.decode(ASCII), "checksum")
    except UnicodeDecodeError:
        raise FramingError("INVALID CHECKSUM", scanned=data)
    except FramingError:
        raise FramingError("INVALID CHECKSUM", scanned=data)
    actual = checksum(body)
    if expected != actual:
        raise FramingError(
            f"CHECKSUM MISMATCH: expected {expected:02X}, got {actual:02X}",
            scanned=data,
        )
    return body
