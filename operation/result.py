"""Operation result types.

Contains:
- CancellationError: Cooperative abort of an operation
- OperationState: Lifecycle states
- OperationResult: Outcome delivered to the caller
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CancellationError(Exception):
    """Raised (or recorded) when an operation is cancelled.

    Not a fault: the device was removed or its link reconfigured.
    """

    pass


class OperationState(Enum):
    """Lifecycle of an operation."""

    CREATED = "created"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (
            OperationState.SUCCEEDED,
            OperationState.FAILED,
            OperationState.CANCELLED,
        )


@dataclass
class OperationResult:
    """Result of a finished operation.

    Attributes:
        state: Terminal state (SUCCEEDED, FAILED or CANCELLED).
        attempts: Exchanges performed, including retries.
        error: Failure that ended the operation, if any.
        elapsed_s: Time from first exchange to completion.
        derived: Protocol-specific fields reported to listeners.
    """

    state: OperationState
    attempts: int = 0
    error: Exception | None = None
    elapsed_s: float = 0.0
    derived: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.state is OperationState.SUCCEEDED
