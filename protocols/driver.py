"""Protocol driver descriptor."""

from collections.abc import Callable
from dataclasses import dataclass

from common.connection import Device
from common.protocol import Codec
from operation.base import Operation, Priority


@dataclass(frozen=True)
class ProtocolDriver:
    """What a device protocol plugs into the engine.

    Attributes:
        name: Protocol name used in Device.protocol.
        codec: Shared codec for every device speaking the protocol.
        poll: Builds the routine poll operation for a device.
    """

    name: str
    codec: Codec
    poll: Callable[[Device, Priority], Operation]
