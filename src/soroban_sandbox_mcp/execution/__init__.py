"""External command execution with timeout and two-stage termination."""

from .executor import ProcessExecutor
from .state import (
    ExecutionFailure,
    ExecutionPhase,
    ExecutionRequest,
    ExecutionResult,
    OutcomeLatch,
    SpawnFailure,
    TimeoutExceeded,
)

__all__ = [
    "ProcessExecutor",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionFailure",
    "SpawnFailure",
    "TimeoutExceeded",
    "ExecutionPhase",
    "OutcomeLatch",
]
