"""Build orchestrator - compile and test requests against disposable workspaces.

Each request runs:
    create workspace → toolchain command(s) → release workspace

The workspace is released exactly once whatever happens in between, and
executor failures are turned into BuildOutcome values:
- non-zero exit: FAILED (the caller's code is wrong)
- SpawnFailure: ERROR (the sandbox could not run the toolchain)
- TimeoutExceeded: TIMEOUT (the build took too long)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

from .build.policy import BuildCommand, BuildPolicy
from .build.state import BuildOutcome, BuildStatus, parse_test_summary
from .config import SandboxConfig
from .execution.executor import ProcessExecutor
from .execution.state import (
    ExecutionFailure,
    ExecutionRequest,
    ExecutionResult,
    SpawnFailure,
    TimeoutExceeded,
)
from .sandbox.workspace import Workspace, WorkspaceManager

logger = logging.getLogger(__name__)

COMPILE_PROJECT_NAME = "compile-project"
TEST_PROJECT_NAME = "test-project"


class BuildOrchestrator:
    """Sequence workspace creation, toolchain commands and cleanup.

    Usage:
        orchestrator = BuildOrchestrator.from_config(SandboxConfig.from_env())
        outcome = await orchestrator.compile(code)
    """

    def __init__(
        self,
        manager: WorkspaceManager,
        executor: ProcessExecutor,
        policy: BuildPolicy | None = None,
        timeout: float = 30.0,
    ):
        """Initialize orchestrator.

        Args:
            manager: Workspace manager owning the temp root
            executor: Process executor for toolchain commands
            policy: Build policy (created with defaults if not provided)
            timeout: Default per-command timeout in seconds
        """
        self._manager = manager
        self._executor = executor
        self._policy = policy or BuildPolicy()
        self._timeout = timeout
        self._last_outcome: BuildOutcome | None = None

    @classmethod
    def from_config(cls, config: SandboxConfig) -> BuildOrchestrator:
        """Wire manager, executor and policy from configuration."""
        policy = BuildPolicy(
            cargo_path=config.cargo_path,
            stellar_path=config.stellar_path,
            max_source_bytes=config.max_source_bytes,
        )
        return cls(
            manager=WorkspaceManager(config.temp_root, policy=policy),
            executor=ProcessExecutor(
                grace_period=config.grace_period,
                max_output_bytes=config.max_output_bytes,
            ),
            policy=policy,
            timeout=config.timeout,
        )

    @property
    def manager(self) -> WorkspaceManager:
        return self._manager

    @property
    def policy(self) -> BuildPolicy:
        return self._policy

    @property
    def last_outcome(self) -> BuildOutcome | None:
        """Most recent compile/test outcome."""
        return self._last_outcome

    def _request(
        self, command: BuildCommand, workspace: Workspace, timeout: float
    ) -> ExecutionRequest:
        return ExecutionRequest.from_argv(
            self._policy.get_command(command),
            working_directory=workspace.root_path,
            env={"CARGO_TERM_COLOR": "never"},
            timeout=timeout,
        )

    def _finish(self, outcome: BuildOutcome) -> BuildOutcome:
        self._last_outcome = outcome
        log = logger.info if outcome.success else logger.warning
        log(f"{outcome.operation}: {outcome.status.value} ({outcome.duration_ms:.0f}ms)")
        return outcome

    def _failure_outcome(
        self, operation: str, failure: ExecutionFailure, start_time: float, label: str
    ) -> BuildOutcome:
        duration = (time.perf_counter() - start_time) * 1000
        if isinstance(failure, TimeoutExceeded):
            return BuildOutcome(
                success=False,
                status=BuildStatus.TIMEOUT,
                operation=operation,
                message=f"{label} timed out",
                error=str(failure),
                duration_ms=duration,
                timeout_ms=failure.limit_ms,
            )
        return BuildOutcome(
            success=False,
            status=BuildStatus.ERROR,
            operation=operation,
            message=f"Internal server error during {label.lower()}",
            error=str(failure),
            duration_ms=duration,
        )

    def _validate(
        self, operation: str, source: object, dependencies: Mapping[str, str] | None
    ) -> BuildOutcome | None:
        try:
            self._policy.validate_source(source)
            self._policy.validate_dependencies(dependencies)
        except ValueError as e:
            return BuildOutcome(
                success=False,
                status=BuildStatus.INVALID,
                operation=operation,
                message=str(e),
            )
        return None

    async def compile(
        self,
        source: str,
        project_name: str | None = None,
        dependencies: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> BuildOutcome:
        """Build contract source to WASM, then run the optimizer.

        An optimizer that is missing or fails still yields a PARTIAL
        outcome, since the contract itself compiled.

        Args:
            source: Contract source (src/lib.rs)
            project_name: Workspace name hint
            dependencies: Extra crate dependencies
            timeout: Per-command timeout in seconds (default from config)

        Returns:
            Build outcome

        Raises:
            WorkspaceError: If the workspace cannot be created or removed
        """
        start_time = time.perf_counter()
        invalid = self._validate("compile", source, dependencies)
        if invalid is not None:
            return self._finish(invalid)
        limit = timeout or self._timeout

        workspace = await self._manager.acreate_workspace(
            source, base_name=project_name or COMPILE_PROJECT_NAME, dependencies=dependencies
        )
        async with workspace:
            try:
                build = await self._executor.execute(
                    self._request(BuildCommand.BUILD, workspace, limit)
                )
            except ExecutionFailure as e:
                return self._finish(
                    self._failure_outcome("compile", e, start_time, "Compilation")
                )

            if not build.success:
                return self._finish(
                    BuildOutcome(
                        success=False,
                        status=BuildStatus.FAILED,
                        operation="compile",
                        message="Compilation failed",
                        output=build.stdout,
                        error=build.stderr or f"Command failed with exit code {build.exit_code}",
                        exit_code=build.exit_code,
                        duration_ms=(time.perf_counter() - start_time) * 1000,
                    )
                )

            build_output = _combined_output(build)
            try:
                optimize = await self._executor.execute(
                    self._request(BuildCommand.OPTIMIZE, workspace, limit)
                )
            except SpawnFailure as e:
                return self._finish(
                    self._partial("compile", build, build_output, str(e), start_time)
                )
            except TimeoutExceeded as e:
                return self._finish(
                    self._failure_outcome("compile", e, start_time, "Optimization")
                )

            if not optimize.success:
                return self._finish(
                    self._partial(
                        "compile",
                        build,
                        build_output,
                        optimize.stderr or f"Optimizer exited with code {optimize.exit_code}",
                        start_time,
                    )
                )

            output = f"Build Output:\n{build_output}\n\nOptimization Output:\n{_combined_output(optimize)}"
            return self._finish(
                BuildOutcome(
                    success=True,
                    status=BuildStatus.SUCCESS,
                    operation="compile",
                    message="Compilation and optimization successful",
                    output=output.strip(),
                    exit_code=0,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                )
            )

    def _partial(
        self,
        operation: str,
        build: ExecutionResult,
        build_output: str,
        error: str,
        start_time: float,
    ) -> BuildOutcome:
        return BuildOutcome(
            success=True,
            status=BuildStatus.PARTIAL,
            operation=operation,
            message="Compilation successful (optimization failed)",
            output=build_output or "Compilation successful",
            error=error,
            exit_code=build.exit_code,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )

    async def test(
        self,
        source: str,
        project_name: str | None = None,
        dependencies: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> BuildOutcome:
        """Run ``cargo test`` against contract source.

        Args:
            source: Contract source including its test module
            project_name: Workspace name hint
            dependencies: Extra crate dependencies
            timeout: Command timeout in seconds (default from config)

        Returns:
            Build outcome with parsed test counts

        Raises:
            WorkspaceError: If the workspace cannot be created or removed
        """
        start_time = time.perf_counter()
        invalid = self._validate("test", source, dependencies)
        if invalid is not None:
            return self._finish(invalid)
        limit = timeout or self._timeout

        workspace = await self._manager.acreate_workspace(
            source, base_name=project_name or TEST_PROJECT_NAME, dependencies=dependencies
        )
        async with workspace:
            try:
                result = await self._executor.execute(
                    self._request(BuildCommand.TEST, workspace, limit)
                )
            except ExecutionFailure as e:
                return self._finish(self._failure_outcome("test", e, start_time, "Tests"))

        duration = (time.perf_counter() - start_time) * 1000
        summary = parse_test_summary(result.stdout + "\n" + result.stderr)
        if result.success:
            return self._finish(
                BuildOutcome(
                    success=True,
                    status=BuildStatus.SUCCESS,
                    operation="test",
                    message="All tests passed",
                    output=result.stdout or "All tests passed",
                    exit_code=0,
                    duration_ms=duration,
                    test_summary=summary,
                )
            )
        return self._finish(
            BuildOutcome(
                success=False,
                status=BuildStatus.FAILED,
                operation="test",
                message="Tests failed",
                output=result.stdout,
                error=result.stderr or f"Command failed with exit code {result.exit_code}",
                exit_code=result.exit_code,
                duration_ms=duration,
                test_summary=summary,
            )
        )

    async def sweep_stale(self, max_age: float) -> int:
        """Remove abandoned workspace directories older than max_age seconds.

        Workspaces of requests still in flight are registered and never
        touched, so this is safe to call while builds are running.

        Returns:
            Number of directories removed
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._manager.sweep_stale, max_age)

    def shutdown(self) -> int:
        """Force-clean every live workspace.

        Only for process exit: it also removes workspaces of requests that
        are still running.

        Returns:
            Number of workspaces removed
        """
        return self._manager.cleanup_all()

    def to_dict(self) -> dict[str, Any]:
        """Get orchestrator status as dictionary."""
        return {
            "tempRoot": str(self._manager.temp_root),
            "liveWorkspaces": self._manager.live_workspaces(),
            "timeoutMs": self._timeout * 1000,
            "lastOutcome": self._last_outcome.to_dict() if self._last_outcome else None,
        }


def _combined_output(result: ExecutionResult) -> str:
    # cargo reports progress on stderr
    return "\n".join(part for part in (result.stdout, result.stderr) if part)

