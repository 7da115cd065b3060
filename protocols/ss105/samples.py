"""Binned sample request and lane sample decoding.

Response payload layout:
  [8 hex timestamp][lane record]*

Each lane record is 29 hex characters:
  det(1) volume(8) speed(4) occupancy(4) small(4) medium(4) large(4)

Occupancy and the three vehicle length classes are ratios scaled to 1024.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from common.encoding import FramingError, ProtocolLogicError, parse_hex
from protocols.ss105.request import Request

# Number of characters per lane of sample data
LANE_SAMPLE_CHARS = 29

# Characters in the leading timestamp field
TIMESTAMP_CHARS = 8

MAX_PERCENT = 1024
MAX_SCANS = 1800

# (name, start, end) of each lane record field
_FIELDS = (
    ("det", 0, 1),
    ("volume", 1, 9),
    ("speed", 9, 13),
    ("occupancy", 13, 17),
    ("small", 17, 21),
    ("medium", 21, 25),
    ("large", 25, 29),
)


def get_scans(occupancy: int) -> int:
    """Convert an occupancy ratio (0-1024) to a scan count (0-1800).

    Rounds half up.
    """
    return (occupancy * MAX_SCANS * 2 + MAX_PERCENT) // (2 * MAX_PERCENT)


def percent(value: int) -> float:
    """Convert a ratio scaled to 1024 into a percentage."""
    return 100 * value / MAX_PERCENT


def parse_timestamp(field: str) -> datetime:
    """Parse the 8-digit hex timestamp (seconds since the Unix epoch, UTC)."""
    if len(field) != TIMESTAMP_CHARS:
        raise FramingError(f"INVALID TIMESTAMP: {field!r}")
    seconds = parse_hex(field, "timestamp")
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass(frozen=True)
class LaneSample:
    """Sample data for one lane."""

    det: int
    volume: int
    speed: int  # Miles per hour
    occupancy: int  # 0-1024
    small: int  # 0-1024
    medium: int  # 0-1024
    large: int  # 0-1024

    def __post_init__(self) -> None:
        if self.volume < 0 or self.speed < 0:
            raise ValueError("volume and speed must be non-negative")
        for name in ("occupancy", "small", "medium", "large"):
            value = getattr(self, name)
            if not 0 <= value <= MAX_PERCENT:
                raise ValueError(f"{name} {value} outside 0-{MAX_PERCENT}")

    @classmethod
    def parse(cls, record: str) -> "LaneSample":
        """Parse one 29-character lane record.

        Raises:
            FramingError: Wrong length or a field that is not hex.
            ProtocolLogicError: A ratio outside 0-1024.
        """
        if len(record) != LANE_SAMPLE_CHARS:
            raise FramingError(f"INVALID SAMPLE SIZE: {len(record)}")
        values = {name: parse_hex(record[a:b], "sample") for name, a, b in _FIELDS}
        try:
            return cls(**values)
        except ValueError as e:
            raise ProtocolLogicError(f"INVALID SAMPLE: {e}") from None

    @property
    def scans(self) -> int:
        return get_scans(self.occupancy)

    def __str__(self) -> str:
        return (
            f"{self.det}: {self.volume}, {self.speed}, {percent(self.occupancy)}, "
            f"{self.small}, {self.medium}, {self.large}"
        )


@dataclass(frozen=True)
class SampleData:
    """Decoded binned sample response."""

    age: int
    timestamp: datetime
    samples: tuple[LaneSample, ...]

    def __str__(self) -> str:
        lines = [f"XD: {self.timestamp.isoformat()}"]
        lines.extend(str(ls) for ls in self.samples)
        return "\n".join(lines)

    def max_det_number(self) -> int:
        """Get the highest detector sample number."""
        return max((ls.det for ls in self.samples), default=0)

    def _array(self, attr: str) -> list[int]:
        values = [0] * self.max_det_number()
        for ls in self.samples:
            values[ls.det - 1] = getattr(ls, attr)
        return values

    def volumes(self) -> list[int]:
        return self._array("volume")

    def scans(self) -> list[int]:
        return self._array("scans")

    def speeds(self) -> list[int]:
        return self._array("speed")

    def derived(self) -> dict[str, Any]:
        """Parallel arrays indexed by detector - 1."""
        return {
            "volume": self.volumes(),
            "scans": self.scans(),
            "speed": self.speeds(),
        }


class BinnedSampleRequest(Request):
    """Binned sample request.

    age is the sample age in intervals; 0 asks for the most recent bin.
    """

    def __init__(self, age: int = 0) -> None:
        if age < 0 or age > 0xFFFF:
            raise ValueError(f"Sample age {age} outside 0-65535")
        self.age = age

    def __repr__(self) -> str:
        return f"BinnedSampleRequest(age={self.age})"

    def format_get_request(self) -> str:
        if self.age < 1:
            return "XD"
        return "XD" + self.hex(self.age, 4)

    def parse(self, payload: str) -> SampleData:
        """Parse a timestamp and N lane records.

        A payload that is not a whole number of records fails as a whole;
        partial records are never returned.
        """
        if len(payload) < TIMESTAMP_CHARS:
            raise FramingError("INVALID SAMPLE SIZE")
        timestamp = parse_timestamp(payload[:TIMESTAMP_CHARS])
        body = payload[TIMESTAMP_CHARS:]
        if len(body) % LANE_SAMPLE_CHARS != 0:
            raise FramingError("INVALID SAMPLE SIZE")
        lanes = len(body) // LANE_SAMPLE_CHARS
        samples = tuple(
            LaneSample.parse(body[i * LANE_SAMPLE_CHARS : (i + 1) * LANE_SAMPLE_CHARS])
            for i in range(lanes)
        )
        seen: set[int] = set()
        for ls in samples:
            if ls.det < 1:
                raise ProtocolLogicError(f"INVALID DETECTOR NUMBER: {ls.det}")
            if ls.det in seen:
                raise ProtocolLogicError(f"DUPLICATE DETECTOR NUMBER: {ls.det}")
            seen.add(ls.det)
        return SampleData(age=self.age, timestamp=timestamp, samples=samples)
