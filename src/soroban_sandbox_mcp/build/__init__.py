"""Build policy and outcome types for Soroban contracts.

Provides:
- Cargo.toml rendering with whitelisted extra dependencies
- Fixed toolchain command vectors (build, optimize, test)
- rustc diagnostic and cargo test summary parsing
"""

from .policy import BuildCommand, BuildPolicy
from .state import (
    BuildDiagnostic,
    BuildOutcome,
    BuildStatus,
    DiagnosticSeverity,
    TestSummary,
    parse_cargo_output,
    parse_test_summary,
)

__all__ = [
    "BuildPolicy",
    "BuildCommand",
    "BuildStatus",
    "BuildOutcome",
    "BuildDiagnostic",
    "DiagnosticSeverity",
    "TestSummary",
    "parse_cargo_output",
    "parse_test_summary",
]
