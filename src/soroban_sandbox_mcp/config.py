"""Sandbox configuration.

Settings are read from environment variables and may be overridden by
command line flags in ``__main__``:

- SANDBOX_TEMP_ROOT: directory that holds every workspace
- SANDBOX_TIMEOUT_MS: default per-command timeout
- SANDBOX_GRACE_PERIOD_MS: delay between SIGTERM and SIGKILL on timeout
- SANDBOX_MAX_OUTPUT_BYTES: per-stream output capture limit
- SANDBOX_MAX_SOURCE_BYTES: maximum accepted source size
- CARGO_PATH / STELLAR_PATH: toolchain executables
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS: int = 30_000
DEFAULT_GRACE_PERIOD_MS: int = 5_000
DEFAULT_MAX_OUTPUT_BYTES: int = 5_000_000
DEFAULT_MAX_SOURCE_BYTES: int = 1_048_576
TEMP_ROOT_DIRNAME: str = "soroban-sandbox"


def default_temp_root() -> Path:
    """Default workspace root inside the OS temp directory."""
    return Path(tempfile.gettempdir()) / TEMP_ROOT_DIRNAME


def _read_positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass
class SandboxConfig:
    """Runtime settings for workspaces, the executor and the toolchain."""

    temp_root: Path = field(default_factory=default_temp_root)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    grace_period_ms: int = DEFAULT_GRACE_PERIOD_MS
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    max_source_bytes: int = DEFAULT_MAX_SOURCE_BYTES
    cargo_path: str = "cargo"
    stellar_path: str = "stellar"

    def __post_init__(self) -> None:
        self.temp_root = Path(self.temp_root)
        for name in ("timeout_ms", "grace_period_ms", "max_output_bytes", "max_source_bytes"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    @property
    def timeout(self) -> float:
        """Default command timeout in seconds."""
        return self.timeout_ms / 1000

    @property
    def grace_period(self) -> float:
        """Termination grace period in seconds."""
        return self.grace_period_ms / 1000

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SandboxConfig:
        """Build configuration from environment variables.

        Args:
            env: Mapping to read from (defaults to ``os.environ``)

        Raises:
            ValueError: If a numeric variable is malformed
        """
        env = os.environ if env is None else env
        temp_root = env.get("SANDBOX_TEMP_ROOT")
        config = cls(
            temp_root=Path(temp_root) if temp_root else default_temp_root(),
            timeout_ms=_read_positive_int(env, "SANDBOX_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            grace_period_ms=_read_positive_int(
                env, "SANDBOX_GRACE_PERIOD_MS", DEFAULT_GRACE_PERIOD_MS
            ),
            max_output_bytes=_read_positive_int(
                env, "SANDBOX_MAX_OUTPUT_BYTES", DEFAULT_MAX_OUTPUT_BYTES
            ),
            max_source_bytes=_read_positive_int(
                env, "SANDBOX_MAX_SOURCE_BYTES", DEFAULT_MAX_SOURCE_BYTES
            ),
            cargo_path=env.get("CARGO_PATH") or "cargo",
            stellar_path=env.get("STELLAR_PATH") or "stellar",
        )
        logger.debug(f"Sandbox configuration loaded: {config.to_dict()}")
        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "tempRoot": str(self.temp_root),
            "timeoutMs": self.timeout_ms,
            "gracePeriodMs": self.grace_period_ms,
            "maxOutputBytes": self.max_output_bytes,
            "maxSourceBytes": self.max_source_bytes,
            "cargoPath": self.cargo_path,
            "stellarPath": self.stellar_path,
        }
