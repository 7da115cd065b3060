"""Unit tests for the detector sampling protocol."""

import math
from datetime import datetime, timezone

import pytest

from common.connection import Device
from common.encoding import FramingError, ProtocolLogicError
from operation.base import Priority
from protocols import get_driver
from protocols.ss105 import (
    DRIVER,
    BinnedSampleRequest,
    LaneSample,
    OpQuerySamples,
    SampleData,
    SS105Codec,
    get_scans,
    percent,
)
from protocols.ss105.operation import poll
from protocols.ss105.request import Request
from protocols.ss105.samples import MAX_PERCENT, MAX_SCANS, parse_timestamp

STAMP = "5F5E1000"  # 2020-09-13T12:26:40Z
STAMP_DT = datetime(2020, 9, 13, 12, 26, 40, tzinfo=timezone.utc)

# det volume speed occupancy small medium large
LANE1 = "1" + "0000000C" + "0037" + "0066" + "0384" + "0064" + "0018"
LANE2 = "2" + "00000009" + "003D" + "004D" + "03E8" + "0018" + "0000"
LANE3 = "3" + "00000004" + "0028" + "0010" + "0400" + "0000" + "0000"


def decode(payload_frame: bytes, age: int = 0):
    """Decode a response frame with its terminator."""
    return SS105Codec().decode(BinnedSampleRequest(age), payload_frame.rstrip(b"\r"))


@pytest.mark.unit
class TestRequestEncoding:
    """Tests for request frames."""

    def test_latest_bin(self) -> None:
        assert SS105Codec().encode(BinnedSampleRequest(), 1) == b"Z0001XDB7\r"

    def test_aged_bin(self) -> None:
        assert SS105Codec().encode(BinnedSampleRequest(5), 1) == b"Z0001XD00057C\r"

    def test_drop_is_decimal(self) -> None:
        assert SS105Codec().encode(BinnedSampleRequest(), 12).startswith(b"Z0012XD")

    @pytest.mark.parametrize("drop", [-1, 10000])
    def test_drop_out_of_range(self, drop: int) -> None:
        with pytest.raises(ValueError):
            SS105Codec().encode(BinnedSampleRequest(), drop)

    def test_format_forms(self) -> None:
        assert BinnedSampleRequest(0).format() == "XD"
        assert BinnedSampleRequest(0x1A).format() == "XD001A"

    @pytest.mark.parametrize("age", [-1, 0x10000])
    def test_age_out_of_range(self, age: int) -> None:
        with pytest.raises(ValueError):
            BinnedSampleRequest(age)

    def test_missing_set_form(self) -> None:
        class GetOnly(Request):
            is_set = True

            def format_get_request(self) -> str:
                return "XX"

            def parse(self, payload: str) -> str:
                return payload

        with pytest.raises(ValueError, match="no SET form"):
            GetOnly().format()


@pytest.mark.unit
class TestSampleDecoding:
    """Tests for binned sample responses."""

    def test_two_lanes(self, frame) -> None:
        result = decode(frame(STAMP + LANE1 + LANE2))
        assert result.ok
        data = result.value
        assert data.age == 0
        assert data.timestamp == STAMP_DT
        assert data.samples == (
            LaneSample(det=1, volume=12, speed=55, occupancy=102, small=900, medium=100, large=24),
            LaneSample(det=2, volume=9, speed=61, occupancy=77, small=1000, medium=24, large=0),
        )
        assert data.derived() == {
            "volume": [12, 9],
            "scans": [179, 135],
            "speed": [55, 61],
        }

    def test_lowercase_hex_accepted(self, frame) -> None:
        result = decode(frame(STAMP.lower() + LANE2.lower()))
        assert result.ok
        assert result.value.samples[0].speed == 61

    def test_detector_gap_zero_filled(self, frame) -> None:
        data = decode(frame(STAMP + LANE3 + LANE1)).value
        assert data.max_det_number() == 3
        assert data.volumes() == [12, 0, 4]
        assert data.scans() == [179, 0, 28]
        assert data.speeds() == [55, 0, 40]

    def test_timestamp_only(self, frame) -> None:
        data = decode(frame(STAMP)).value
        assert data.samples == ()
        assert data.max_det_number() == 0
        assert data.derived() == {"volume": [], "scans": [], "speed": []}

    def test_partial_lane_fails_whole_response(self, frame) -> None:
        raw = frame(STAMP + LANE1 + LANE2[:-1])
        result = decode(raw)
        assert not result.ok
        assert result.value is None
        assert isinstance(result.error, FramingError)
        assert result.error.scanned == raw.rstrip(b"\r")

    def test_short_timestamp(self, frame) -> None:
        result = decode(frame("5F5E10"))
        assert isinstance(result.error, FramingError)

    def test_bad_checksum(self) -> None:
        result = decode(b"5F5E100000\r")
        assert isinstance(result.error, FramingError)

    def test_non_hex_field(self, frame) -> None:
        bad = LANE1[:5] + "G" + LANE1[6:]
        result = decode(frame(STAMP + bad))
        assert isinstance(result.error, FramingError)

    def test_ratio_above_limit(self, frame) -> None:
        lane = "1" + "00000001" + "0030" + "0401" + "0000" + "0000" + "0000"
        result = decode(frame(STAMP + lane))
        assert isinstance(result.error, ProtocolLogicError)

    def test_detector_zero(self, frame) -> None:
        lane = "0" + LANE1[1:]
        result = decode(frame(STAMP + lane))
        assert isinstance(result.error, ProtocolLogicError)

    def test_duplicate_detector(self, frame) -> None:
        result = decode(frame(STAMP + LANE1 + LANE1))
        assert isinstance(result.error, ProtocolLogicError)

    def test_age_carried_to_result(self, frame) -> None:
        assert decode(frame(STAMP + LANE1), age=4).value.age == 4


@pytest.mark.unit
class TestConversions:
    """Tests for ratio and timestamp conversions."""

    @pytest.mark.parametrize(
        "occupancy,scans",
        [(0, 0), (1024, 1800), (512, 900), (102, 179), (77, 135), (64, 113)],
    )
    def test_get_scans(self, occupancy: int, scans: int) -> None:
        assert get_scans(occupancy) == scans

    def test_get_scans_full_range(self) -> None:
        for occupancy in range(MAX_PERCENT + 1):
            assert get_scans(occupancy) == math.floor(occupancy * MAX_SCANS / MAX_PERCENT + 0.5)
            if occupancy < MAX_PERCENT:
                assert get_scans(occupancy) <= get_scans(occupancy + 1)

    def test_percent(self) -> None:
        assert percent(512) == 50.0
        assert percent(1024) == 100.0

    def test_parse_timestamp(self) -> None:
        assert parse_timestamp(STAMP) == STAMP_DT

    def test_parse_timestamp_wrong_width(self) -> None:
        with pytest.raises(FramingError):
            parse_timestamp("5F5E100")

    def test_lane_sample_validation(self) -> None:
        with pytest.raises(ValueError):
            LaneSample(det=1, volume=0, speed=0, occupancy=1025, small=0, medium=0, large=0)

    def test_text_forms(self) -> None:
        lane = LaneSample(det=1, volume=12, speed=55, occupancy=512, small=900, medium=100, large=24)
        assert str(lane) == "1: 12, 55, 50.0, 900, 100, 24"
        data = SampleData(age=0, timestamp=STAMP_DT, samples=(lane,))
        assert str(data).splitlines() == ["XD: 2020-09-13T12:26:40+00:00", str(lane)]


@pytest.mark.unit
class TestDriver:
    """Tests for the sampling protocol driver."""

    def test_lookup_case_insensitive(self) -> None:
        assert get_driver("SS105") is DRIVER

    def test_unknown_protocol(self) -> None:
        with pytest.raises(KeyError):
            get_driver("ntcip")

    def test_poll_operation(self) -> None:
        device = Device("D1", "ss105", drop=3)
        op = poll(device)
        assert isinstance(op, OpQuerySamples)
        assert op.ages == (0,)
        assert op.priority is Priority.ROUTINE
        assert op.codec is DRIVER.codec

    def test_empty_ages_rejected(self) -> None:
        with pytest.raises(ValueError):
            OpQuerySamples(Device("D1", "ss105"), ages=())
