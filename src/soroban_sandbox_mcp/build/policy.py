"""Build policy - input validation and command construction.

Security measures:
- Crate name and version whitelisting (no TOML injection into the manifest)
- Source size limit
- Fixed command vectors, never passed through a shell
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Final

from ..config import DEFAULT_MAX_SOURCE_BYTES

CRATE_NAME: Final[str] = "soroban_contract"
SOURCE_DIR: Final[str] = "src"
SOURCE_FILE: Final[str] = "lib.rs"
MANIFEST_FILE: Final[str] = "Cargo.toml"
WASM_TARGET: Final[str] = "wasm32-unknown-unknown"
SOROBAN_SDK_VERSION: Final[str] = "21.2.0"

# Pattern for crate names accepted by crates.io
CRATE_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,63}$")

# Pattern for version requirements (e.g., 1.0.0, ^2.1, =0.9.3-beta.1, 1.*)
VERSION_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[=^~<>]{0,2}\s*[0-9][0-9A-Za-z.*+-]{0,63}$"
)

MANIFEST_TEMPLATE: Final[str] = """[package]
name = "{crate}"
version = "0.1.0"
edition = "2021"
publish = false

[lib]
path = "{source_dir}/{source_file}"
crate-type = ["cdylib", "rlib"]

[dependencies]
{dependencies}

[dev-dependencies]
soroban-sdk = {{ version = "{sdk_version}", features = ["testutils"] }}

[profile.release]
opt-level = "z"
overflow-checks = true
debug = 0
strip = "symbols"
debug-assertions = false
panic = "abort"
codegen-units = 1
lto = true
"""


class BuildCommand(str, Enum):
    """Supported toolchain commands."""

    BUILD = "build"
    OPTIMIZE = "optimize"
    TEST = "test"


@dataclass
class BuildPolicy:
    """Validation rules and command lines for sandboxed builds."""

    cargo_path: str = "cargo"
    stellar_path: str = "stellar"
    max_source_bytes: int = DEFAULT_MAX_SOURCE_BYTES

    def validate_source(self, source: object) -> str:
        """Validate contract source text.

        Raises:
            ValueError: If source is not a non-empty string or too large
        """
        if not isinstance(source, str):
            raise ValueError("Invalid request: code is required and must be a string")
        if source.strip() == "":
            raise ValueError("Invalid request: code cannot be empty")
        size = len(source.encode("utf-8"))
        if size > self.max_source_bytes:
            raise ValueError(
                f"Invalid request: code is {size} bytes, limit is {self.max_source_bytes}"
            )
        return source

    def validate_dependencies(
        self, dependencies: Mapping[str, str] | None
    ) -> dict[str, str]:
        """Validate extra crate dependencies.

        Returns:
            Validated dependencies in insertion order

        Raises:
            ValueError: If a name or version is not allowed
        """
        validated: dict[str, str] = {}
        for name, version in (dependencies or {}).items():
            if not isinstance(name, str) or not CRATE_NAME_PATTERN.fullmatch(name):
                raise ValueError(f"Invalid dependency name: {name!r}")
            if name == "soroban-sdk":
                raise ValueError("soroban-sdk version is fixed by the sandbox")
            if not isinstance(version, str) or not VERSION_PATTERN.fullmatch(version):
                raise ValueError(f"Invalid version for {name}: {version!r}")
            validated[name] = version.strip()
        return validated

    def render_manifest(self, dependencies: Mapping[str, str] | None = None) -> str:
        """Render Cargo.toml for a workspace.

        Extra dependencies are rendered as ``name = "version"`` after the SDK.
        """
        lines = [f'soroban-sdk = "{SOROBAN_SDK_VERSION}"']
        lines.extend(
            f'{name} = "{version}"'
            for name, version in self.validate_dependencies(dependencies).items()
        )
        return MANIFEST_TEMPLATE.format(
            crate=CRATE_NAME,
            source_dir=SOURCE_DIR,
            source_file=SOURCE_FILE,
            dependencies="\n".join(lines),
            sdk_version=SOROBAN_SDK_VERSION,
        )

    def get_command(self, command: BuildCommand) -> list[str]:
        """Build the argument vector for a toolchain command.

        Args:
            command: Command to execute

        Returns:
            Complete command line as list (executable first)
        """
        if command == BuildCommand.BUILD:
            return [self.cargo_path, "build", "--target", WASM_TARGET, "--release"]
        elif command == BuildCommand.OPTIMIZE:
            return [
                self.stellar_path,
                "contract",
                "optimize",
                "--wasm",
                f"target/{WASM_TARGET}/release/{CRATE_NAME}.wasm",
            ]
        elif command == BuildCommand.TEST:
            return [self.cargo_path, "test"]
        else:
            raise ValueError(f"Unknown command: {command}")
