"""Execution request/result types and the outcome latch.

State machine for a single command:
SPAWNING → RUNNING → COMPLETED → SUCCEEDED
                   ↘ TIMING_OUT → FAILED_TIMEOUT
SPAWNING → FAILED_SPAWN
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

DEFAULT_TIMEOUT: float = 30.0
DEFAULT_GRACE_PERIOD: float = 5.0

# Exit code reported when the process ends without one (killed by a signal)
UNKNOWN_EXIT_CODE: int = -1

T = TypeVar("T")


class ExecutionPhase(str, Enum):
    """Execution state machine phases."""

    SPAWNING = "spawning"
    RUNNING = "running"
    TIMING_OUT = "timing_out"
    COMPLETED = "completed"
    SUCCEEDED = "succeeded"
    FAILED_SPAWN = "failed_spawn"
    FAILED_TIMEOUT = "failed_timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionPhase.SUCCEEDED,
            ExecutionPhase.FAILED_SPAWN,
            ExecutionPhase.FAILED_TIMEOUT,
        )


def _format_ms(seconds: float) -> str:
    return f"{seconds * 1000:.0f}ms"


@dataclass(frozen=True)
class ExecutionRequest:
    """A single external command to run.

    The command and its arguments are kept apart and handed to the spawn
    primitive as a vector; nothing is ever interpreted by a shell.
    """

    command: str
    args: tuple[str, ...] = ()
    working_directory: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not isinstance(self.command, str) or self.command.strip() == "":
            raise ValueError("Command must be a non-empty string")
        if isinstance(self.args, str):
            raise ValueError("Arguments must be a sequence of strings, not a string")
        object.__setattr__(self, "args", tuple(str(arg) for arg in self.args))
        object.__setattr__(self, "env", dict(self.env))
        if self.working_directory is not None:
            object.__setattr__(self, "working_directory", os.fspath(self.working_directory))
        if not isinstance(self.timeout, (int, float)) or isinstance(self.timeout, bool):
            raise ValueError("Timeout must be a number of seconds")
        if self.timeout <= 0 or self.timeout != self.timeout or self.timeout == float("inf"):
            raise ValueError("Timeout must be a positive, finite number of seconds")

    @classmethod
    def from_argv(
        cls,
        argv: Sequence[str],
        working_directory: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> ExecutionRequest:
        """Build a request from a full argument vector (executable first)."""
        if not argv:
            raise ValueError("Command must contain at least one argument")
        return cls(
            command=argv[0],
            args=tuple(argv[1:]),
            working_directory=os.fspath(working_directory) if working_directory else None,
            env=env or {},
            timeout=timeout,
        )

    @property
    def argv(self) -> list[str]:
        """Full argument vector."""
        return [self.command, *self.args]

    @property
    def display(self) -> str:
        """Human-readable command line for logs."""
        return " ".join(self.argv)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a process that ran to completion.

    A non-zero exit code is ordinary data here, not a failure.
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        """Whether the process exited with code 0."""
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "timedOut": self.timed_out,
            "durationMs": round(self.duration_ms, 2),
        }


class ExecutionFailure(Exception):
    """The executor could not produce an ExecutionResult."""

    def __init__(self, message: str, command: str | None = None):
        super().__init__(message)
        self.command = command

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"error": str(self), "kind": type(self).__name__}
        if self.command:
            result["command"] = self.command
        return result


class SpawnFailure(ExecutionFailure):
    """The command could not be started (binary missing, permission denied)."""

    def __init__(self, command: str, cause: BaseException):
        super().__init__(f"Failed to start {command}: {cause}", command=command)
        self.cause = cause


class TimeoutExceeded(ExecutionFailure):
    """The command ran past its limit and was terminated."""

    def __init__(self, command: str, limit: float):
        super().__init__(
            f"Command exceeded time limit of {_format_ms(limit)}", command=command
        )
        self.limit = limit

    @property
    def limit_ms(self) -> float:
        return self.limit * 1000

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["limitMs"] = self.limit_ms
        return result


class OutcomeLatch(Generic[T]):
    """Once-only resolution guard.

    The first call to ``resolve`` or ``fail`` wins; every later call is
    ignored and reports False.
    """

    def __init__(self) -> None:
        self._settled = False
        self._value: T | None = None
        self._error: BaseException | None = None

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def failed(self) -> bool:
        return self._error is not None

    def resolve(self, value: T) -> bool:
        """Settle with a value. Returns False if already settled."""
        if self._settled:
            return False
        self._settled = True
        self._value = value
        return True

    def fail(self, error: BaseException) -> bool:
        """Settle with an error. Returns False if already settled."""
        if self._settled:
            return False
        self._settled = True
        self._error = error
        return True

    def outcome(self) -> T:
        """Return the value or raise the error.

        Raises:
            RuntimeError: If the latch has not been settled
        """
        if not self._settled:
            raise RuntimeError("Outcome is not settled")
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]
