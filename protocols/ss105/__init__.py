"""Detector sampling protocol (binned lane samples over ASCII hex)."""

from protocols.driver import ProtocolDriver
from protocols.ss105.codec import SS105Codec
from protocols.ss105.operation import CODEC, OpQuerySamples, poll
from protocols.ss105.samples import (
    BinnedSampleRequest,
    LaneSample,
    SampleData,
    get_scans,
    percent,
)

DRIVER = ProtocolDriver(name="ss105", codec=CODEC, poll=poll)

__all__ = [
    "DRIVER",
    "BinnedSampleRequest",
    "LaneSample",
    "OpQuerySamples",
    "SS105Codec",
    "SampleData",
    "get_scans",
    "percent",
]
