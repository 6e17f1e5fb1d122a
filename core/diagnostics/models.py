"""Diagnostic data types shared by every tool adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Synthetic codes for findings that did not come from a tool's own report
TIMEOUT_CODE = "TIMEOUT"
TOOL_ERROR_CODE = "TOOL_ERROR"
VERIFY_ERROR_CODE = "VERIFY_ERROR"


class DiagnosticFamily(str, Enum):
    """Category of external check."""

    TYPE_CHECK = "type_check"
    BUILD = "build"
    LINT = "lint"
    STYLE_LINT = "style_lint"
    TEST = "test"
    CIRCULAR = "circular"
    ENV = "env"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class DiagnosticError:
    """One normalized finding.

    ``file`` is project-relative with forward slashes; ``""`` and line 0
    mean the tool reported no location.
    """

    code: str
    message: str
    file: str = ""
    line: int = 0
    column: int = 0
    severity: Severity = Severity.ERROR

    @property
    def key(self) -> tuple[str, int, str]:
        """Identity used for deduplication and snapshot comparison."""
        return (self.file, self.line, self.code)

    @property
    def is_located(self) -> bool:
        return bool(self.file) or self.line > 0

    def with_file_prefix(self, prefix: str) -> DiagnosticError:
        """Copy with ``prefix/`` prepended to the file (monorepo packages)."""
        if not self.file or not prefix or prefix == ".":
            return self
        return DiagnosticError(
            code=self.code,
            message=self.message,
            file=f"{prefix.rstrip('/')}/{self.file}",
            line=self.line,
            column=self.column,
            severity=self.severity,
        )

    def format(self) -> str:
        location = f"{self.file}:{self.line}:{self.column}" if self.file else "(unknown)"
        return f"{location} - {self.severity.value} {self.code}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "severity": self.severity.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DiagnosticError:
        return cls(
            code=data["code"],
            message=data.get("message", ""),
            file=data.get("file", ""),
            line=int(data.get("line", 0)),
            column=int(data.get("column", 0)),
            severity=Severity(data.get("severity", "error")),
        )


@dataclass
class TestCounts:
    """Pass/fail tallies reported by a test runner."""

    __test__ = False  # not a pytest class

    passed: int = 0
    failed: int = 0
    total: int = 0
    skipped: int = 0
    failed_files: list[str] = field(default_factory=list)


@dataclass
class DiagnosticScope:
    """What a collection run should look at.

    ``files`` restricts the run to specific files (per-file verification,
    targeted tests); ``package`` selects one monorepo package path.
    """

    files: list[str] = field(default_factory=list)
    package: str | None = None

    @property
    def is_targeted(self) -> bool:
        return bool(self.files)


@dataclass
class CollectionResult:
    """Outcome of running one diagnostics family."""

    family: DiagnosticFamily
    success: bool
    errors: list[DiagnosticError] = field(default_factory=list)
    warnings: list[DiagnosticError] = field(default_factory=list)
    raw: str = ""
    duration: float = 0.0
    skipped: bool = False
    skip_reason: str | None = None
    timed_out: bool = False
    crashed: bool = False
    tests: TestCounts | None = None

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @classmethod
    def skip(cls, family: DiagnosticFamily, reason: str) -> CollectionResult:
        return cls(family=family, success=True, skipped=True, skip_reason=reason)

    @classmethod
    def merge(cls, family: DiagnosticFamily, results: list[CollectionResult]) -> CollectionResult:
        """Aggregate per-package results into one family result."""
        ran = [r for r in results if not r.skipped]
        if not ran:
            reason = results[0].skip_reason if results else "nothing to check"
            return cls.skip(family, reason or "nothing to check")
        return cls(
            family=family,
            success=all(r.success for r in ran),
            errors=[e for r in ran for e in r.errors],
            warnings=[w for r in ran for w in r.warnings],
            raw="\n".join(r.raw for r in ran if r.raw),
            duration=sum(r.duration for r in ran),
            timed_out=any(r.timed_out for r in ran),
            crashed=any(r.crashed for r in ran),
        )
