"""Reporting abstractions.

Contains:
- Report ABC: Base class for all reports
- LatencyStats / compute_latency_stats: Exchange latency percentiles
"""

from abc import ABC, abstractmethod
from collections.abc import Collection
from dataclasses import dataclass


class Report(ABC):
    """Abstract base class for reports."""

    @abstractmethod
    def print(self) -> None:
        """Print the report to stdout."""
        pass

    @abstractmethod
    def success(self) -> bool:
        """Return True if the report indicates success."""
        pass


@dataclass
class LatencyStats:
    """Computed latency statistics in milliseconds."""

    count: int
    min_ms: float
    max_ms: float
    avg_ms: float
    p50_ms: float
    p95_ms: float
    p99_ms: float


def compute_latency_stats(rtt_samples: Collection[float]) -> LatencyStats | None:
    """Compute latency statistics from RTT samples (in seconds).

    Args:
        rtt_samples: Round-trip times in seconds.

    Returns:
        LatencyStats with percentiles in milliseconds, or None if empty.
    """
    if not rtt_samples:
        return None

    count = len(rtt_samples)
    samples_ms = sorted(s * 1000 for s in rtt_samples)

    def percentile(sorted_data: list[float], p: float) -> float:
        idx = int(p / 100 * (len(sorted_data) - 1))
        return sorted_data[idx]

    return LatencyStats(
        count=count,
        min_ms=samples_ms[0],
        max_ms=samples_ms[-1],
        avg_ms=sum(samples_ms) / count,
        p50_ms=percentile(samples_ms, 50),
        p95_ms=percentile(samples_ms, 95),
        p99_ms=percentile(samples_ms, 99),
    )
