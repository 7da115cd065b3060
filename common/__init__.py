"""Common modules for the field device communication engine.

This package contains code shared by the engine and the protocol drivers:
- protocol: Transport and Codec Protocols, timing constants, TRACE level
- connection: Device, CommStatus, LinkParams dataclasses
- encoding: Error taxonomy, ParseResult, hex fields and checksum
- message: Terminated frame reading
- io: Port I/O helpers (drain_input, exchange)
- device: Serial / socket port setup
- report: Reporting abstractions
"""

from common.connection import CommStatus, Device, LinkParams
from common.encoding import (
    CommError,
    FramingError,
    ParseResult,
    ProtocolLogicError,
    TransportError,
)
from common.protocol import (
    MAX_RETRIES,
    TIMEOUT_DEFAULT_MS,
    TIMEOUT_MODEM_MS,
    TIMEOUT_WIZARD_MS,
    TRACE,
    Codec,
    Transport,
)

__all__ = [
    # Protocol
    "Codec",
    "Transport",
    "TRACE",
    "MAX_RETRIES",
    "TIMEOUT_DEFAULT_MS",
    "TIMEOUT_MODEM_MS",
    "TIMEOUT_WIZARD_MS",
    # Connection
    "CommStatus",
    "Device",
    "LinkParams",
    # Errors
    "CommError",
    "FramingError",
    "ParseResult",
    "ProtocolLogicError",
    "TransportError",
]
