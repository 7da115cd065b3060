"""Dynamic message sign protocol (XML messages over a socket or serial line)."""

from protocols.dmslite.codec import DmsLiteCodec
from protocols.dmslite.messages import (
    ConfigRequest,
    SendMessageRequest,
    SignConfig,
    SignRequest,
)
from protocols.dmslite.operation import CODEC, OpDms, OpQueryConfig, OpSendMessage, poll
from protocols.driver import ProtocolDriver

DRIVER = ProtocolDriver(name="dmslite", codec=CODEC, poll=poll)

__all__ = [
    "DRIVER",
    "ConfigRequest",
    "DmsLiteCodec",
    "OpDms",
    "OpQueryConfig",
    "OpSendMessage",
    "SendMessageRequest",
    "SignConfig",
    "SignRequest",
]
