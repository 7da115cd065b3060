"""Sample query operation."""

from collections.abc import Sequence
from typing import Any

from common.connection import Device
from operation.base import Operation, Priority
from operation.policy import RetryPolicy
from protocols.ss105.codec import SS105Codec
from protocols.ss105.samples import BinnedSampleRequest, SampleData

CODEC = SS105Codec()


class OpQuerySamples(Operation):
    """Query binned samples from a detector station.

    ages lists the bins to fetch, most recent (0) first by convention; each
    age is its own step, so backfilling missed intervals yields the link to
    other devices between bins. Derived fields come from the first bin.
    """

    def __init__(
        self,
        device: Device,
        ages: Sequence[int] = (0,),
        priority: Priority = Priority.ROUTINE,
        policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(device, CODEC, priority, policy)
        if not ages:
            raise ValueError("At least one sample age is required")
        self.ages = tuple(ages)
        self.sample_sets: list[SampleData] = []

    def build_requests(self) -> list[BinnedSampleRequest]:
        return [BinnedSampleRequest(age) for age in self.ages]

    def handle_response(self, step: int, value: SampleData) -> None:
        self.logger.debug(f"{self}: {value}")
        self.sample_sets.append(value)

    def derived_fields(self) -> dict[str, Any]:
        if not self.sample_sets:
            return {}
        first = self.sample_sets[0]
        return {"timestamp": first.timestamp, **first.derived()}


def poll(device: Device, priority: Priority = Priority.ROUTINE) -> OpQuerySamples:
    return OpQuerySamples(device, priority=priority)
