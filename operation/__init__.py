"""Operation package.

Device operations and the rules that drive them:
- base: Operation state machine, Message, Priority, CompletionListener
- policy: Timeout selection, retry decisions, transport backoff
- result: OperationState, OperationResult, CancellationError
- handle: OperationHandle returned to callers

Note: handle is not exported here to avoid circular imports with poller/.
Import directly from operation.handle when needed.
"""

from operation.base import CompletionListener, Message, Operation, Priority
from operation.policy import Backoff, Decision, RetryPolicy, calc_timeout_ms
from operation.result import CancellationError, OperationResult, OperationState

__all__ = [
    "Backoff",
    "CancellationError",
    "CompletionListener",
    "Decision",
    "Message",
    "Operation",
    "OperationResult",
    "OperationState",
    "Priority",
    "RetryPolicy",
    "calc_timeout_ms",
]
