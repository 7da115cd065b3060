"""Link reporting.

Contains:
- LinkReport: Per-link exchange and outcome summary
"""

from dataclasses import dataclass

from common.report import Report, compute_latency_stats
from poller.link import LinkStats


@dataclass
class LinkReport(Report):
    """Report of a link's activity so far."""

    name: str
    stats: LinkStats
    degraded: bool = False

    def print(self) -> None:
        """Print the link report."""
        s = self.stats
        state = "DEGRADED" if self.degraded else "OK"
        print(
            f"Link {self.name}: {state} ({s.exchanges} exchanges, "
            f"{s.transport_errors} transport errors, {s.framing_errors} framing errors, "
            f"{s.logic_errors} logic errors)"
        )
        print(
            f"         operations: {s.succeeded} succeeded, {s.failed} failed, "
            f"{s.cancelled} cancelled"
        )
        if s.open_failures:
            print(f"         {s.open_failures} failed attempts to open transport")

        latency = compute_latency_stats(s.rtt_samples)
        if latency:
            print(
                f"Latency: avg={latency.avg_ms:.2f}ms min={latency.min_ms:.2f}ms "
                f"max={latency.max_ms:.2f}ms"
            )
            print(
                f"         p50={latency.p50_ms:.2f}ms p95={latency.p95_ms:.2f}ms "
                f"p99={latency.p99_ms:.2f}ms (n={latency.count})"
            )

    def success(self) -> bool:
        """Return True if the link is up and no operation failed."""
        return not self.degraded and self.stats.failed == 0
