"""MCP Resources for sandbox state."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP

    from .config import SandboxConfig
    from .orchestrator import BuildOrchestrator


def register_resources(
    server: FastMCP, orchestrator: BuildOrchestrator, config: SandboxConfig
) -> None:
    """Register MCP resources."""

    @server.resource("sandbox://workspaces", mime_type="application/json")
    async def workspaces_resource() -> str:
        """Live workspaces (JSON).

        Contains: temp root and paths of workspaces not yet cleaned up.
        """
        return json.dumps(
            {
                "tempRoot": str(orchestrator.manager.temp_root),
                "workspaces": orchestrator.manager.live_workspaces(),
            },
            indent=2,
        )

    @server.resource("sandbox://last-result", mime_type="application/json")
    async def last_result_resource() -> str:
        """Outcome of the most recent compile or test request (JSON).

        Updates when: a compile_contract or test_contract call finishes.
        """
        outcome = orchestrator.last_outcome
        return json.dumps(outcome.to_dict() if outcome else None, indent=2)

    @server.resource("sandbox://config", mime_type="application/json")
    async def config_resource() -> str:
        """Effective sandbox configuration (JSON)."""
        return json.dumps(config.to_dict(), indent=2)
