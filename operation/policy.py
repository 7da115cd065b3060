"""Retry and timeout policy.

Contains:
- calc_timeout_ms: Per-exchange timeout from a device access descriptor
- Decision / RetryPolicy: What to do after a failed exchange
- Backoff: Delay schedule for reopening an unreachable transport
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto

from common.encoding import FramingError, ProtocolLogicError, TransportError
from common.protocol import (
    DEFAULT_BACKOFF_INITIAL_S,
    DEFAULT_BACKOFF_MAX_S,
    MAX_RETRIES,
    TIMEOUT_DEFAULT_MS,
    TIMEOUT_MODEM_MS,
    TIMEOUT_WIZARD_MS,
)
from operation.result import CancellationError

logger = logging.getLogger(__name__)


def calc_timeout_ms(access: str | None, log: logging.Logger | None = None) -> int:
    """Return the exchange timeout for an access descriptor.

    Matching is a case-insensitive substring test; "modem" wins over
    "wizard". Unrecognised descriptors (including empty ones, as for a sign
    whose configuration has not been queried yet) get the default.
    """
    a = (access or "").lower()
    if "modem" in a:
        return TIMEOUT_MODEM_MS
    if "wizard" in a:
        return TIMEOUT_WIZARD_MS
    if a:
        (log or logger).warning(f"Unknown access type {access!r}, using default timeout")
    return TIMEOUT_DEFAULT_MS


class Decision(Enum):
    """Outcome of consulting the retry policy."""

    RETRY = auto()  # Same step again
    FAIL = auto()
    CANCEL = auto()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for transport and framing failures.

    max_retries counts retries after the first attempt of a step, so a step
    is tried at most max_retries + 1 times.
    """

    max_retries: int = MAX_RETRIES

    def decide(self, error: Exception, retries: int) -> Decision:
        """Decide what to do after error, given retries already spent on the step."""
        match error:
            case CancellationError():
                return Decision.CANCEL
            case ProtocolLogicError():
                return Decision.FAIL
            case TransportError() | FramingError():
                if retries < self.max_retries:
                    return Decision.RETRY
                return Decision.FAIL
            case _:
                return Decision.FAIL


@dataclass
class Backoff:
    """Exponential backoff between attempts to reopen a transport."""

    initial_s: float = DEFAULT_BACKOFF_INITIAL_S
    max_s: float = DEFAULT_BACKOFF_MAX_S
    factor: float = 2.0
    _next_s: float = 0.0

    def next_delay(self) -> float:
        """Return the delay before the next attempt and grow the schedule."""
        delay = self._next_s or self.initial_s
        self._next_s = min(delay * self.factor, self.max_s)
        return delay

    def reset(self) -> None:
        self._next_s = 0.0
