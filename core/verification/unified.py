"""Unified verifier - one project-wide pass over every enabled family.

Phases run one after another in a fixed order because they share the
host's process slot. A phase that crashes is recorded as failed and the
remaining phases still run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.diagnostics.models import CollectionResult, DiagnosticFamily
from core.events import VerificationListener, as_listener

if TYPE_CHECKING:
    from config.schema import UnifiedConfig
    from core.diagnostics.collector import DiagnosticsCollector

logger = logging.getLogger(__name__)

# (phase name, config flag, family)
PHASES: list[tuple[str, str, DiagnosticFamily]] = [
    ("Type Check", "type_check", DiagnosticFamily.TYPE_CHECK),
    ("Lint", "lint", DiagnosticFamily.LINT),
    ("Style Lint", "style_lint", DiagnosticFamily.STYLE_LINT),
    ("Environment Validation", "env", DiagnosticFamily.ENV),
    ("Circular Dependencies", "circular", DiagnosticFamily.CIRCULAR),
    ("Tests", "tests", DiagnosticFamily.TEST),
    ("Build", "build", DiagnosticFamily.BUILD),
]


@dataclass
class PhaseResult:
    name: str
    passed: bool
    error_count: int = 0
    warning_count: int = 0
    duration: float = 0.0
    skipped: bool = False
    skip_reason: str | None = None
    result: CollectionResult | None = None

    @classmethod
    def skip(cls, name: str, reason: str) -> PhaseResult:
        return cls(name=name, passed=True, skipped=True, skip_reason=reason)


@dataclass
class UnifiedResult:
    success: bool = True
    total_errors: int = 0
    total_warnings: int = 0
    total_duration: float = 0.0
    phases: dict[str, PhaseResult] = field(default_factory=dict)
    summary: str = ""
    report: str = ""

    def collection_results(self) -> dict[DiagnosticFamily, CollectionResult]:
        """Raw collector output per family, for evidence counting."""
        return {
            phase.result.family: phase.result
            for phase in self.phases.values()
            if phase.result is not None
        }


class UnifiedVerifier:
    def __init__(
        self,
        collector: DiagnosticsCollector,
        config: UnifiedConfig | None = None,
        listener: VerificationListener | None = None,
    ):
        if config is None:
            from config.schema import UnifiedConfig

            config = UnifiedConfig()
        self.collector = collector
        self.config = config
        self.listener = as_listener(listener)

    async def verify(self) -> UnifiedResult:
        start = time.monotonic()
        result = UnifiedResult()

        for name, flag, family in PHASES:
            if not getattr(self.config, flag):
                phase = PhaseResult.skip(name, "Disabled")
            else:
                self.listener.on_progress(f"Running {name.lower()}...")
                phase = await self._run_phase(name, family)
            result.phases[flag] = phase
            self.listener.on_phase_complete(flag, phase)

        for phase in result.phases.values():
            if phase.skipped:
                continue
            result.total_errors += phase.error_count
            result.total_warnings += phase.warning_count
            if not phase.passed:
                result.success = False

        result.total_duration = time.monotonic() - start
        result.summary = self.summary(result)
        result.report = self.report(result)
        logger.info(
            "Unified verification: %d error(s), %d warning(s) in %.1fs",
            result.total_errors,
            result.total_warnings,
            result.total_duration,
        )
        return result

    async def _run_phase(self, name: str, family: DiagnosticFamily) -> PhaseResult:
        start = time.monotonic()
        try:
            collected = await self.collector.collect(family)
        except Exception as e:
            logger.warning("%s phase crashed: %s", name, e)
            return PhaseResult(name=name, passed=False, error_count=1, duration=time.monotonic() - start)

        if collected.skipped:
            return PhaseResult(
                name=name,
                passed=True,
                duration=time.monotonic() - start,
                skipped=True,
                skip_reason=collected.skip_reason,
                result=collected,
            )
        return PhaseResult(
            name=name,
            passed=collected.success and not collected.errors,
            error_count=collected.error_count,
            warning_count=collected.warning_count,
            duration=time.monotonic() - start,
            result=collected,
        )

    @staticmethod
    def summary(result: UnifiedResult) -> str:
        ran = [p for p in result.phases.values() if not p.skipped]
        status = "PASSED" if result.success else "FAILED"
        return (
            f"Verification {status}: {result.total_errors} error(s), "
            f"{result.total_warnings} warning(s) across {len(ran)} phase(s) "
            f"in {result.total_duration:.1f}s"
        )

    @staticmethod
    def report(result: UnifiedResult) -> str:
        lines = [
            "## Unified Verification Report",
            "",
            f"**Status:** {'✅ Passed' if result.success else '❌ Failed'}",
            f"**Errors:** {result.total_errors} | **Warnings:** {result.total_warnings}",
            "",
            "| Phase | Status | Errors | Warnings | Duration |",
            "|-------|--------|--------|----------|----------|",
        ]
        for phase in result.phases.values():
            if phase.skipped:
                status = f"⏭️ Skipped ({phase.skip_reason})" if phase.skip_reason else "⏭️ Skipped"
                lines.append(f"| {phase.name} | {status} | - | - | - |")
                continue
            status = "✅" if phase.passed else "❌"
            lines.append(
                f"| {phase.name} | {status} | {phase.error_count} | {phase.warning_count} "
                f"| {phase.duration:.2f}s |"
            )
        return "\n".join(lines)
