"""Process executor - run one external command under a timeout.

Completion of the process races a timer. The first terminal event settles an
OutcomeLatch; anything that arrives afterwards (e.g. the exit notification
of a process that was just terminated for running too long) is discarded.

On timeout the process group receives SIGTERM, then SIGKILL once the grace
period has elapsed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from typing import Any

from .state import (
    DEFAULT_GRACE_PERIOD,
    UNKNOWN_EXIT_CODE,
    ExecutionPhase,
    ExecutionRequest,
    ExecutionResult,
    OutcomeLatch,
    SpawnFailure,
    TimeoutExceeded,
)

logger = logging.getLogger(__name__)

# Output buffer limits (security: prevent DoS)
MAX_OUTPUT_BYTES: int = 5_000_000  # 5MB per stream
READ_CHUNK_BYTES: int = 65_536
TRUNCATION_MARKER: str = "...[truncated]\n"


class OutputBuffer:
    """Byte accumulator that keeps only the most recent ``limit`` bytes."""

    def __init__(self, limit: int = MAX_OUTPUT_BYTES):
        self._limit = limit
        self._data = bytearray()
        self.truncated = False

    def append(self, chunk: bytes) -> None:
        self._data.extend(chunk)
        overflow = len(self._data) - self._limit
        if overflow > 0:
            del self._data[:overflow]
            self.truncated = True

    def __len__(self) -> int:
        return len(self._data)

    def text(self) -> str:
        """Decoded, whitespace-trimmed contents."""
        decoded = bytes(self._data).decode("utf-8", errors="replace").strip()
        if self.truncated:
            return TRUNCATION_MARKER + decoded
        return decoded


async def _read_stream(stream: asyncio.StreamReader | None, buffer: OutputBuffer) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        buffer.append(chunk)


def _normalize_exit_code(returncode: int | None) -> int:
    # asyncio reports death by signal as -signum
    if returncode is None or returncode < 0:
        return UNKNOWN_EXIT_CODE
    return returncode


class ProcessExecutor:
    """Run external commands with enforced timeout and two-stage termination.

    Usage:
        executor = ProcessExecutor(grace_period=5.0)
        result = await executor.execute(
            ExecutionRequest("cargo", ("test",), working_directory=ws, timeout=30.0)
        )

    Raises SpawnFailure or TimeoutExceeded; a non-zero exit code is returned
    as an ordinary ExecutionResult. There are no retries.
    """

    def __init__(
        self,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        max_output_bytes: int = MAX_OUTPUT_BYTES,
        kill_process_group: bool = True,
    ):
        """Initialize executor.

        Args:
            grace_period: Seconds between SIGTERM and SIGKILL after a timeout
            max_output_bytes: Per-stream capture limit
            kill_process_group: Signal the whole process group (POSIX only)
        """
        if grace_period <= 0:
            raise ValueError("Grace period must be positive")
        if max_output_bytes <= 0:
            raise ValueError("Output limit must be positive")
        self._grace_period = grace_period
        self._max_output_bytes = max_output_bytes
        self._kill_process_group = kill_process_group and os.name != "nt"

    @property
    def grace_period(self) -> float:
        return self._grace_period

    def _transition(self, request: ExecutionRequest, phase: ExecutionPhase) -> None:
        logger.debug(f"[{request.command}] -> {phase.value}")

    async def _spawn(self, request: ExecutionRequest) -> asyncio.subprocess.Process:
        env = os.environ.copy()
        env.update(request.env)
        kwargs: dict[str, Any] = {}
        if self._kill_process_group:
            # Own process group so the whole tree can be signalled
            kwargs["start_new_session"] = True

        # Never use shell=True (security)
        return await asyncio.create_subprocess_exec(
            request.command,
            *request.args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=request.working_directory,
            env=env,
            **kwargs,
        )

    def _signal(self, process: asyncio.subprocess.Process, force: bool) -> None:
        """Send SIGTERM (or SIGKILL when force) to the process or its group."""
        pid = getattr(process, "pid", None)
        if self._kill_process_group and isinstance(pid, int):
            sig = signal.SIGKILL if force else signal.SIGTERM
            try:
                os.killpg(pid, sig)
                return
            except ProcessLookupError:
                return
            except PermissionError as e:
                logger.warning(f"Cannot signal process group {pid}: {e}")

        try:
            if force:
                process.kill()
            else:
                process.terminate()
        except ProcessLookupError:
            pass

    async def _terminate(self, process: asyncio.subprocess.Process, request: ExecutionRequest) -> None:
        """Stop a process: graceful signal first, forceful after the grace period."""
        self._signal(process, force=False)
        try:
            await asyncio.wait_for(process.wait(), timeout=self._grace_period)
            return
        except asyncio.TimeoutError:
            logger.warning(
                f"{request.command} ignored SIGTERM for {self._grace_period}s, killing"
            )

        self._signal(process, force=True)
        await process.wait()

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run a command and capture its output.

        Args:
            request: Command, arguments, working directory, env and timeout

        Returns:
            ExecutionResult with trimmed stdout/stderr and exit code

        Raises:
            SpawnFailure: If the process could not be started
            TimeoutExceeded: If the process ran past request.timeout
        """
        latch: OutcomeLatch[ExecutionResult] = OutcomeLatch()
        start_time = time.perf_counter()

        self._transition(request, ExecutionPhase.SPAWNING)
        try:
            process = await self._spawn(request)
        except OSError as e:
            self._transition(request, ExecutionPhase.FAILED_SPAWN)
            logger.warning(f"Failed to start {request.command}: {e}")
            raise SpawnFailure(request.command, e) from e

        self._transition(request, ExecutionPhase.RUNNING)
        logger.info(f"Running: {request.display}")

        stdout = OutputBuffer(self._max_output_bytes)
        stderr = OutputBuffer(self._max_output_bytes)

        async def wait_for_exit() -> int | None:
            await asyncio.gather(
                _read_stream(process.stdout, stdout),
                _read_stream(process.stderr, stderr),
            )
            await process.wait()
            return process.returncode

        completion = asyncio.ensure_future(wait_for_exit())

        try:
            done, _ = await asyncio.wait({completion}, timeout=request.timeout)
        except asyncio.CancelledError:
            completion.cancel()
            self._signal(process, force=True)
            # Reap the child and the reader task before propagating
            try:
                await asyncio.shield(process.wait())
            finally:
                await asyncio.gather(completion, return_exceptions=True)
            raise

        duration = (time.perf_counter() - start_time) * 1000

        if completion in done:
            self._transition(request, ExecutionPhase.COMPLETED)
            exit_code = _normalize_exit_code(completion.result())
            latch.resolve(
                ExecutionResult(
                    exit_code=exit_code,
                    stdout=stdout.text(),
                    stderr=stderr.text(),
                    timed_out=False,
                    duration_ms=duration,
                )
            )
            self._transition(request, ExecutionPhase.SUCCEEDED)
            logger.info(
                f"{request.command} finished with exit code {exit_code} in {duration:.0f}ms"
            )
            return latch.outcome()

        self._transition(request, ExecutionPhase.TIMING_OUT)
        logger.warning(f"{request.command} timed out after {request.timeout}s")
        latch.fail(TimeoutExceeded(request.command, request.timeout))

        try:
            await self._terminate(process, request)
        finally:
            await self._discard_late_completion(completion, latch, request)

        self._transition(request, ExecutionPhase.FAILED_TIMEOUT)
        return latch.outcome()

    async def _discard_late_completion(
        self,
        completion: asyncio.Future[int | None],
        latch: OutcomeLatch[ExecutionResult],
        request: ExecutionRequest,
    ) -> None:
        """Reap the completion task of a timed-out process and ignore its result."""
        if not completion.done():
            done, _ = await asyncio.wait({completion}, timeout=self._grace_period)
            if completion not in done:
                # Orphaned descendants may keep the pipes open
                completion.cancel()
                await asyncio.gather(completion, return_exceptions=True)
                return

        if completion.cancelled() or completion.exception() is not None:
            return
        late = ExecutionResult(exit_code=_normalize_exit_code(completion.result()))
        if not latch.resolve(late):
            logger.debug(
                f"Ignoring exit code {late.exit_code} from {request.command} after timeout"
            )
