"""MCP Server for sandboxed Soroban contract builds."""

from __future__ import annotations

import logging

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .config import SandboxConfig
from .orchestrator import BuildOrchestrator
from .resources import register_resources

logger = logging.getLogger(__name__)

# Global orchestrator (one temp root per server process)
_orchestrator: BuildOrchestrator | None = None
_config: SandboxConfig | None = None


def get_orchestrator() -> BuildOrchestrator:
    """Get or create the build orchestrator."""
    global _orchestrator, _config
    if _orchestrator is None:
        if _config is None:
            _config = SandboxConfig.from_env()
        _orchestrator = BuildOrchestrator.from_config(_config)
    return _orchestrator


def reset_orchestrator() -> None:
    """Forget the global orchestrator (tests and shutdown)."""
    global _orchestrator, _config
    _orchestrator = None
    _config = None


def _timeout_seconds(timeout_ms: int | None) -> float | None:
    if timeout_ms is None:
        return None
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be a positive number of milliseconds")
    return timeout_ms / 1000


def create_server(config: SandboxConfig | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        config: Sandbox configuration (read from environment if None)
    """
    global _config
    reset_orchestrator()
    _config = config or SandboxConfig.from_env()
    orchestrator = get_orchestrator()
    mcp = FastMCP("soroban-sandbox-mcp")

    async def notify_result_changed(ctx: Context) -> None:
        """Notify client that sandbox://last-result has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl("sandbox://last-result"))
        except Exception:
            logger.debug("Resource update notification failed", exc_info=True)

    # ============== Build Tools ==============

    @mcp.tool()
    async def compile_contract(
        ctx: Context,
        code: str,
        project_name: str | None = None,
        dependencies: dict[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> dict:
        """
        Compile a Soroban contract to WASM inside a disposable workspace.

        Runs `cargo build --target wasm32-unknown-unknown --release` followed by
        `stellar contract optimize`. A missing or failing optimizer still reports
        success with status "partial".

        Args:
            code: Contract source, written to src/lib.rs
            project_name: Optional name hint for the workspace directory
            dependencies: Extra crates as {"name": "version"}
            timeout_ms: Per-command timeout in milliseconds (default 30000)
        """
        try:
            outcome = await orchestrator.compile(
                code,
                project_name=project_name,
                dependencies=dependencies,
                timeout=_timeout_seconds(timeout_ms),
            )
            await notify_result_changed(ctx)
            return {"success": outcome.success, "data": outcome.to_dict()}
        except Exception as e:
            logger.exception("compile_contract failed")
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def test_contract(
        ctx: Context,
        code: str,
        project_name: str | None = None,
        dependencies: dict[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> dict:
        """
        Run `cargo test` for a Soroban contract inside a disposable workspace.

        Args:
            code: Contract source including its #[cfg(test)] module
            project_name: Optional name hint for the workspace directory
            dependencies: Extra crates as {"name": "version"}
            timeout_ms: Timeout in milliseconds (default 30000)
        """
        try:
            outcome = await orchestrator.test(
                code,
                project_name=project_name,
                dependencies=dependencies,
                timeout=_timeout_seconds(timeout_ms),
            )
            await notify_result_changed(ctx)
            return {"success": outcome.success, "data": outcome.to_dict()}
        except Exception as e:
            logger.exception("test_contract failed")
            return {"success": False, "error": str(e)}

    # ============== Workspace Tools ==============

    @mcp.tool()
    async def list_workspaces() -> dict:
        """List workspaces that are still live (created but not cleaned up)."""
        return {"success": True, "data": orchestrator.to_dict()}

    @mcp.tool()
    async def cleanup_workspaces(stale_after_seconds: float = 3600.0) -> dict:
        """
        Remove abandoned workspace directories from the temp root.

        Only directories older than stale_after_seconds that belong to no
        running request are removed.

        Args:
            stale_after_seconds: Minimum age in seconds (default 3600)
        """
        if stale_after_seconds < 0:
            return {"success": False, "error": "stale_after_seconds must not be negative"}
        try:
            swept = await orchestrator.sweep_stale(stale_after_seconds)
            return {"success": True, "data": {"swept": swept}}
        except Exception as e:
            logger.exception("cleanup_workspaces failed")
            return {"success": False, "error": str(e)}

    register_resources(mcp, orchestrator, _config)

    logger.info(f"Soroban sandbox MCP Server initialized (temp root: {orchestrator.manager.temp_root})")
    return mcp
