"""Configuration schema for patchwarden using Pydantic.

This module defines the complete configuration structure with:
- Tool command lines supplied by the external tool detectors
- Nested config groups (diagnostics, executor, snapshot, rollback, ...)
- Field validators for thresholds, timeouts and command templates
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from core.diagnostics.models import DiagnosticFamily

# Error codes that always justify rolling back a freshly written file
DEFAULT_CRITICAL_CODES = [
    "TS2304",  # Cannot find name
    "TS2307",  # Cannot find module
    "TS2339",  # Property does not exist
    "TS2345",  # Argument of type X is not assignable
    "TS2322",  # Type X is not assignable to type Y
    "TS1005",  # Expected X
    "TS1128",  # Declaration or statement expected
    "TS1109",  # Expression expected
]

# ============================================================================
# Tool commands
# ============================================================================


class ToolCommands(BaseModel):
    """Command lines for each diagnostics family.

    None means the tool is not configured for the project; the family is
    skipped rather than failed.
    """

    package_manager: str = Field("npm", description="Active package manager invocation prefix")
    build: str | None = Field(None, description="Build/bundle command")
    type_check: str | None = Field(None, description="Single-project type-check command")
    type_check_build: str | None = Field(None, description="Type-check command for project references (batch mode)")
    lint: str | None = Field(None, description="Lint command producing JSON output")
    style_lint: str | None = Field(None, description="Style-lint command producing JSON output")
    test: str | None = Field(None, description="Full test-suite command")
    test_file: str | None = Field(None, description="Single test file command, with a {file} placeholder")

    @field_validator("test_file")
    @classmethod
    def require_file_placeholder(cls, v: str | None) -> str | None:
        if v is not None and "{file}" not in v:
            raise ValueError("test_file must contain a {file} placeholder")
        return v

    def for_family(self, family: DiagnosticFamily) -> str | None:
        return {
            DiagnosticFamily.TYPE_CHECK: self.type_check,
            DiagnosticFamily.BUILD: self.build,
            DiagnosticFamily.LINT: self.lint,
            DiagnosticFamily.STYLE_LINT: self.style_lint,
            DiagnosticFamily.TEST: self.test,
        }.get(family)


class PackageSpec(BaseModel):
    """One independently-typed package of a monorepo."""

    name: str
    path: str
    has_tsconfig: bool = True


class WorkspaceConfig(BaseModel):
    """Project layout as reported by the monorepo detector."""

    packages: list[PackageSpec] = Field(default_factory=list)
    per_package_type_check: bool = Field(True, description="Type-check each package separately and aggregate")
    detect_project_references: bool = Field(True, description="Switch to batch mode when tsconfig declares references")
    source_dirs: list[str] = Field(default_factory=lambda: ["src", "app", "lib"])
    skip_dirs: list[str] = Field(
        default_factory=lambda: ["node_modules", ".git", "dist", "build", ".next", "coverage"]
    )

    @property
    def is_monorepo(self) -> bool:
        return len(self.packages) > 1


# ============================================================================
# Component configuration
# ============================================================================


class DiagnosticsConfig(BaseModel):
    """Timeouts for external tools, in seconds."""

    default_timeout: float = Field(60.0, gt=0)
    timeouts: dict[DiagnosticFamily, float] = Field(
        default_factory=lambda: {
            DiagnosticFamily.BUILD: 120.0,
            DiagnosticFamily.TEST: 120.0,
        }
    )

    @field_validator("timeouts")
    @classmethod
    def positive_timeouts(cls, v: dict[DiagnosticFamily, float]) -> dict[DiagnosticFamily, float]:
        for family, seconds in v.items():
            if seconds <= 0:
                raise ValueError(f"timeout for {family.value} must be positive")
        return v

    def timeout_for(self, family: DiagnosticFamily) -> float:
        return self.timeouts.get(family, self.default_timeout)


class ExecutorConfig(BaseModel):
    """Action executor configuration."""

    max_history: int = Field(50, gt=0, description="Execution history ring size")
    verify_writes: bool = Field(False, description="Verify each written file and restore it on failure")
    intercept_deletes: bool = Field(True, description="Rewrite rm-style shell commands into tracked deletes")
    block_destructive: bool = Field(True, description="Refuse history rewrites, hard resets and force pushes")
    custom_blocked: list[str] = Field(default_factory=list, description="Extra regexes to block")
    shell_timeout: float | None = Field(None, gt=0, description="Timeout for shell actions (None = no limit)")


class SnapshotConfig(BaseModel):
    """Which diagnostics make up an error snapshot, and how much growth is tolerated."""

    families: list[DiagnosticFamily] = Field(default_factory=lambda: [DiagnosticFamily.TYPE_CHECK])
    increase_threshold: int = Field(0, ge=0, description="Acceptable error increase before a change is rejected")


class PerFileConfig(BaseModel):
    """Per-file verification policy."""

    rollback_on_any_error: bool = Field(True, description="Conservative mode: any error recommends rollback")
    critical_error_codes: list[str] = Field(default_factory=lambda: list(DEFAULT_CRITICAL_CODES))
    timeout: float = Field(30.0, gt=0)
    families_by_extension: dict[str, list[DiagnosticFamily]] = Field(
        default_factory=lambda: {
            ".ts": [DiagnosticFamily.TYPE_CHECK],
            ".tsx": [DiagnosticFamily.TYPE_CHECK],
            ".js": [DiagnosticFamily.LINT],
            ".jsx": [DiagnosticFamily.LINT],
            ".mjs": [DiagnosticFamily.LINT],
            ".cjs": [DiagnosticFamily.LINT],
            ".css": [DiagnosticFamily.STYLE_LINT],
            ".scss": [DiagnosticFamily.STYLE_LINT],
            ".less": [DiagnosticFamily.STYLE_LINT],
        }
    )

    @field_validator("families_by_extension")
    @classmethod
    def normalize_extensions(cls, v: dict[str, list[DiagnosticFamily]]) -> dict[str, list[DiagnosticFamily]]:
        return {(ext if ext.startswith(".") else f".{ext}").lower(): fams for ext, fams in v.items()}


class RollbackConfig(BaseModel):
    """Rollback controller configuration."""

    auto_rollback_on_error_increase: bool = True
    auto_rollback_on_verify_fail: bool = True
    max_error_increase: int = Field(0, ge=0, description="Maximum allowed error increase before rollback")


class CheckpointConfig(BaseModel):
    """Named checkpoint configuration."""

    max_checkpoints: int = Field(10, gt=0)
    persist_path: str | None = Field(None, description="JSON file to persist checkpoints to (None = memory only)")


class EvidenceConfig(BaseModel):
    """Evidence reporter configuration."""

    require_verification: bool = True
    include_details: bool = True
    max_errors_in_summary: int = Field(5, gt=0)


class UnifiedConfig(BaseModel):
    """Phases run by the unified verifier, in this order."""

    type_check: bool = True
    lint: bool = True
    style_lint: bool = True
    env: bool = True
    circular: bool = True
    tests: bool = False
    build: bool = False


# ============================================================================
# Root settings
# ============================================================================


class VerifySettings(BaseModel):
    """Root configuration for a verification session."""

    tools: ToolCommands = Field(default_factory=ToolCommands)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    per_file: PerFileConfig = Field(default_factory=PerFileConfig)
    rollback: RollbackConfig = Field(default_factory=RollbackConfig)
    checkpoints: CheckpointConfig = Field(default_factory=CheckpointConfig)
    evidence: EvidenceConfig = Field(default_factory=EvidenceConfig)
    unified: UnifiedConfig = Field(default_factory=UnifiedConfig)

    @model_validator(mode="after")
    def derive_build_mode_command(self) -> VerifySettings:
        """Derive a batch-mode type-check command when only the single-project one is given."""
        tools = self.tools
        if tools.type_check and not tools.type_check_build and "tsc" in tools.type_check.split():
            flags = [p for p in tools.type_check.split() if p != "--skipLibCheck"]
            flags.insert(flags.index("tsc") + 1, "--build")
            tools.type_check_build = " ".join(flags)
        return self
