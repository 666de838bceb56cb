"""Build outcome types and cargo output parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BuildStatus(str, Enum):
    """Final status of a compile or test request."""

    SUCCESS = "success"
    PARTIAL = "partial"  # compiled, optimizer unavailable or failed
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"
    INVALID = "invalid"


class DiagnosticSeverity(str, Enum):
    """rustc diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class BuildDiagnostic:
    """Parsed rustc diagnostic (error/warning)."""

    severity: DiagnosticSeverity
    message: str
    code: str | None = None
    file: str | None = None
    line: int | None = None
    column: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.code:
            result["code"] = self.code
        if self.file:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        if self.column is not None:
            result["column"] = self.column
        return result


# Format: error[E0425]: cannot find value `x` in this scope
RUSTC_DIAGNOSTIC_PATTERN = re.compile(
    r"^(?P<severity>error|warning)(?:\[(?P<code>[A-Z]\d{4})\])?:\s*(?P<message>.+)$"
)

# Format:   --> src/lib.rs:12:5
RUSTC_LOCATION_PATTERN = re.compile(
    r"^\s*-->\s*(?P<file>.+?):(?P<line>\d+):(?P<col>\d+)\s*$"
)

# Summary lines that are not diagnostics of their own
_SUMMARY_PREFIXES = (
    "could not compile",
    "aborting due to",
    "build failed",
)
_SUMMARY_SUFFIX = re.compile(r"generated \d+ warnings?(?: \(.*\))?$|\d+ warnings? emitted$")

# Format: test result: ok. 3 passed; 0 failed; 0 ignored; ...
TEST_RESULT_PATTERN = re.compile(
    r"test result: (?P<result>ok|FAILED)\. (?P<passed>\d+) passed; (?P<failed>\d+) failed;"
    r"(?: (?P<ignored>\d+) ignored;)?"
)


def parse_cargo_output(output: str) -> list[BuildDiagnostic]:
    """Parse cargo/rustc console output into structured diagnostics.

    A location line (``--> file:line:col``) following a diagnostic header
    is attached to that diagnostic.
    """
    diagnostics: list[BuildDiagnostic] = []
    pending: BuildDiagnostic | None = None

    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue

        match = RUSTC_DIAGNOSTIC_PATTERN.match(stripped)
        if match:
            message = match.group("message")
            if message.startswith(_SUMMARY_PREFIXES) or _SUMMARY_SUFFIX.search(message):
                pending = None
                continue
            pending = BuildDiagnostic(
                severity=DiagnosticSeverity(match.group("severity")),
                message=message,
                code=match.group("code"),
            )
            diagnostics.append(pending)
            continue

        location = RUSTC_LOCATION_PATTERN.match(line)
        if location and pending is not None and pending.file is None:
            pending.file = location.group("file")
            pending.line = int(location.group("line"))
            pending.column = int(location.group("col"))

    return diagnostics


@dataclass
class TestSummary:
    """Aggregated ``cargo test`` counts."""

    passed: int = 0
    failed: int = 0
    ignored: int = 0

    __test__ = False  # not a pytest test class

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, "failed": self.failed, "ignored": self.ignored}


def parse_test_summary(output: str) -> TestSummary | None:
    """Sum every ``test result:`` line (one per test binary).

    Returns:
        Summary, or None if cargo printed no result line
    """
    matches = list(TEST_RESULT_PATTERN.finditer(output))
    if not matches:
        return None
    summary = TestSummary()
    for match in matches:
        summary.passed += int(match.group("passed"))
        summary.failed += int(match.group("failed"))
        summary.ignored += int(match.group("ignored") or 0)
    return summary


@dataclass
class BuildOutcome:
    """Result of a compile or test request."""

    success: bool
    status: BuildStatus
    operation: str
    message: str
    output: str = ""
    error: str | None = None
    exit_code: int | None = None
    duration_ms: float = 0.0
    diagnostics: list[BuildDiagnostic] = field(default_factory=list)
    test_summary: TestSummary | None = None
    timeout_ms: float | None = None

    def __post_init__(self) -> None:
        """Parse diagnostics from output if not provided."""
        if not self.diagnostics and (self.output or self.error):
            self.diagnostics = parse_cargo_output(
                (self.output or "") + "\n" + (self.error or "")
            )

    @property
    def errors(self) -> list[BuildDiagnostic]:
        """Get only error diagnostics."""
        return [d for d in self.diagnostics if d.severity == DiagnosticSeverity.ERROR]

    @property
    def warnings(self) -> list[BuildDiagnostic]:
        """Get only warning diagnostics."""
        return [d for d in self.diagnostics if d.severity == DiagnosticSeverity.WARNING]

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "operation": self.operation,
            "message": self.message,
            "output": self.output,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "durationMs": round(self.duration_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.diagnostics:
            result["diagnostics"] = [d.to_dict() for d in self.diagnostics]
        if self.test_summary is not None:
            result["tests"] = self.test_summary.to_dict()
        if self.timeout_ms is not None:
            result["timeoutMs"] = self.timeout_ms
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        labels = {
            BuildStatus.SUCCESS: "[OK]",
            BuildStatus.PARTIAL: "[PARTIAL]",
            BuildStatus.FAILED: "[FAILED]",
            BuildStatus.TIMEOUT: "[TIMEOUT]",
            BuildStatus.ERROR: "[ERROR]",
            BuildStatus.INVALID: "[INVALID]",
        }
        parts = [
            f"{labels[self.status]} {self.message}",
            f"  Operation: {self.operation}",
            f"  Duration: {self.duration_ms:.0f}ms",
        ]

        if self.test_summary is not None:
            parts.append(
                f"  Tests: {self.test_summary.passed} passed, "
                f"{self.test_summary.failed} failed, {self.test_summary.ignored} ignored"
            )
        if self.error_count > 0:
            parts.append(f"  Errors: {self.error_count}")
        if self.warning_count > 0:
            parts.append(f"  Warnings: {self.warning_count}")

        # Show first few errors
        for err in self.errors[:5]:
            location = ""
            if err.file:
                location = f"{err.file}:{err.line or 0}:{err.column or 0}: "
            code = f"[{err.code}]" if err.code else ""
            parts.append(f"    {location}error{code}: {err.message}")

        if self.error_count > 5:
            parts.append(f"    ... and {self.error_count - 5} more errors")

        return "\n".join(parts)
