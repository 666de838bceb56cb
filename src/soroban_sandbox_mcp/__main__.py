"""Entry point for soroban-sandbox-mcp server."""

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from .config import SandboxConfig
from .sandbox.workspace import WorkspaceManager
from .server import create_server, get_orchestrator


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Soroban Sandbox MCP Server - compile and test contracts in disposable workspaces"
    )
    parser.add_argument(
        "--temp-root",
        type=str,
        default=None,
        help="Directory holding all workspaces (overrides SANDBOX_TEMP_ROOT). "
        "Cleanup refuses to touch anything outside it.",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Default per-command timeout in milliseconds (overrides SANDBOX_TIMEOUT_MS).",
    )
    parser.add_argument(
        "--sweep",
        action="store_true",
        default=False,
        help="Remove abandoned workspaces from the temp root and exit.",
    )
    parser.add_argument(
        "--max-age",
        type=float,
        default=3600.0,
        help="With --sweep, only remove workspaces older than this many seconds.",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> SandboxConfig:
    """Merge command line overrides into environment configuration."""
    config = SandboxConfig.from_env()
    if args.temp_root:
        config = replace(config, temp_root=Path(args.temp_root))
    if args.timeout_ms is not None:
        config = replace(config, timeout_ms=args.timeout_ms)
    return config


def sweep(config: SandboxConfig, max_age: float) -> int:
    """Remove stale workspaces left behind by a previous process."""
    manager = WorkspaceManager(config.temp_root)
    return manager.sweep_stale(max_age)


async def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if args.sweep:
        removed = sweep(config, args.max_age)
        logger.info(f"Removed {removed} stale workspaces from {config.temp_root}")
        return

    logger.info(f"Starting Soroban Sandbox MCP Server (temp root: {config.temp_root})...")

    mcp = create_server(config)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        # Drain live workspaces
        cleaned = get_orchestrator().shutdown()
        if cleaned:
            logger.info(f"Removed {cleaned} workspaces at shutdown")
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
