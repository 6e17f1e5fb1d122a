"""Evidence reporter.

"Fixed" claims are only accepted when backed by before/after counts that
were actually measured. Every verdict and report line is derived from
those counts; with no after-state the reporter says it cannot verify.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from core.diagnostics.models import CollectionResult, DiagnosticFamily, TestCounts
from core.events import VerificationListener, as_listener

if TYPE_CHECKING:
    from config.schema import EvidenceConfig

logger = logging.getLogger(__name__)


@dataclass
class ErrorCounts:
    typescript: int = 0
    build: int = 0
    lint: int = 0
    tests: TestCounts = field(default_factory=TestCounts)
    runtime: int = 0
    # Families whose tool crashed or timed out; their counts are not measurements
    unmeasured: list[DiagnosticFamily] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.typescript + self.build + self.lint + self.tests.failed

    @property
    def complete(self) -> bool:
        return not self.unmeasured

    @classmethod
    def from_results(cls, results: dict[DiagnosticFamily, CollectionResult]) -> ErrorCounts:
        """Aggregate collector output; skipped families count as zero."""

        def errors(*families: DiagnosticFamily) -> int:
            return sum(
                results[f].error_count for f in families if f in results and not results[f].skipped
            )

        test_result = results.get(DiagnosticFamily.TEST)
        tests = TestCounts()
        if test_result is not None and not test_result.skipped:
            if test_result.crashed or test_result.timed_out:
                reported = test_result.tests.failed if test_result.tests is not None else 0
                failed = max(reported, test_result.error_count)
                tests = TestCounts(failed=failed, total=failed)
            elif test_result.tests is not None:
                tests = test_result.tests
            else:
                tests = TestCounts(failed=test_result.error_count, total=test_result.error_count)
        return cls(
            typescript=errors(DiagnosticFamily.TYPE_CHECK),
            build=errors(DiagnosticFamily.BUILD),
            lint=errors(DiagnosticFamily.LINT, DiagnosticFamily.STYLE_LINT),
            tests=tests,
            runtime=errors(DiagnosticFamily.ENV, DiagnosticFamily.CIRCULAR),
            unmeasured=[
                family
                for family, result in results.items()
                if not result.skipped and (result.crashed or result.timed_out)
            ],
        )


@dataclass
class VerificationEvidence:
    """What a verification run actually observed."""

    timestamp: float = field(default_factory=time.time)
    families_run: list[DiagnosticFamily] = field(default_factory=list)
    counts: ErrorCounts = field(default_factory=ErrorCounts)
    error_samples: list[str] = field(default_factory=list)

    @classmethod
    def from_results(
        cls, results: dict[DiagnosticFamily, CollectionResult], max_samples: int = 5
    ) -> VerificationEvidence:
        samples = [
            error.format()
            for result in results.values()
            if not result.skipped
            for error in result.errors
        ]
        return cls(
            families_run=[family for family, result in results.items() if not result.skipped],
            counts=ErrorCounts.from_results(results),
            error_samples=samples[:max_samples],
        )


class Verdict(str, Enum):
    ALL_FIXED = "all fixed"
    PARTIAL = "partial progress"
    NEW_ERRORS = "new errors introduced"
    NO_CHANGE = "no change"
    ALREADY_CLEAN = "already clean"
    UNVERIFIED = "cannot verify"


@dataclass
class CompletionClaim:
    claim: str
    valid: bool
    evidence: VerificationEvidence | None = None
    reason: str | None = None


@dataclass
class EvidenceReport:
    before: ErrorCounts | None
    after: ErrorCounts | None
    verdict: Verdict
    errors_fixed: int
    errors_introduced: int
    improved: bool
    summary: str
    completion_message: str
    evidence: VerificationEvidence | None = None


def verdict_for(before: ErrorCounts | None, after: ErrorCounts | None) -> Verdict:
    if before is None or after is None or not after.complete:
        return Verdict.UNVERIFIED
    if before.total == 0 and after.total == 0:
        return Verdict.ALREADY_CLEAN
    if after.total < before.total:
        return Verdict.ALL_FIXED if after.total == 0 else Verdict.PARTIAL
    if after.total > before.total:
        return Verdict.NEW_ERRORS
    return Verdict.NO_CHANGE


def unmeasured_reason(counts: ErrorCounts) -> str:
    names = ", ".join(family.value for family in counts.unmeasured)
    return f"Verification incomplete: {names} crashed or timed out. Cannot verify improvement."


def format_change(before: int, after: int) -> str:
    diff = after - before
    if diff == 0:
        return "-"
    return f"+{diff}" if diff > 0 else str(diff)


def validate_fix_claim(
    claim: str,
    before: ErrorCounts,
    after: ErrorCounts,
    evidence_recorded: bool,
) -> CompletionClaim:
    """Stateless check of a single claim against two measured counts."""
    if not evidence_recorded:
        return CompletionClaim(
            claim, valid=False, reason='No verification evidence. Run verification before claiming "fixed".'
        )
    if not after.complete:
        return CompletionClaim(claim, valid=False, reason=unmeasured_reason(after))
    if before.total - after.total <= 0 and before.total > 0:
        return CompletionClaim(
            claim, valid=False, reason=f"No improvement. Errors: {before.total} -> {after.total}"
        )
    return CompletionClaim(claim, valid=True)


class EvidenceReporter:
    def __init__(self, config: EvidenceConfig | None = None, listener: VerificationListener | None = None):
        if config is None:
            from config.schema import EvidenceConfig

            config = EvidenceConfig()
        self.config = config
        self.listener = as_listener(listener)
        self._before: ErrorCounts | None = None
        self._after: ErrorCounts | None = None
        self._evidence: VerificationEvidence | None = None
        self._verification_ran = False

    # -- capture --

    def capture_pre_change_state(self, counts: ErrorCounts) -> None:
        self._before = counts
        self.listener.on_progress(f"[Evidence] Captured baseline: {counts.total} error(s)")

    def capture_post_change_state(self, counts: ErrorCounts) -> None:
        self._after = counts
        self.listener.on_progress(f"[Evidence] Captured result: {counts.total} error(s)")

    def record_evidence(self, evidence: VerificationEvidence) -> None:
        self._evidence = evidence
        self._verification_ran = True
        self.listener.on_progress("[Evidence] Verification evidence recorded")

    # -- claims --

    def validate_completion_claim(self, claim: str) -> CompletionClaim:
        if self.config.require_verification and not self._verification_ran:
            return CompletionClaim(
                claim, valid=False, reason='Verification was not run. Cannot claim "fixed" without proof.'
            )
        if self._before is None or self._after is None:
            return CompletionClaim(
                claim,
                valid=False,
                evidence=self._evidence,
                reason="Error counts not captured. Cannot verify improvement.",
            )
        if not self._after.complete:
            logger.info("Rejected completion claim %r: %s", claim, self._after.unmeasured)
            return CompletionClaim(
                claim, valid=False, evidence=self._evidence, reason=unmeasured_reason(self._after)
            )
        improved = self._before.total > self._after.total or self._after.total == 0
        if not improved and self._before.total > 0:
            logger.info("Rejected completion claim %r", claim)
            return CompletionClaim(
                claim,
                valid=False,
                evidence=self._evidence,
                reason=f"Errors not reduced. Before: {self._before.total}, After: {self._after.total}",
            )
        return CompletionClaim(claim, valid=True, evidence=self._evidence)

    # -- reporting --

    def generate_report(self) -> EvidenceReport:
        before, after = self._before, self._after
        verdict = verdict_for(before, after)
        if verdict == Verdict.UNVERIFIED:
            if after is not None and not after.complete:
                cause = f"{', '.join(f.value for f in after.unmeasured)} crashed or timed out"
            else:
                cause = "no post-change error counts were captured"
            message = (
                f"### Cannot verify: {cause}.\n\n"
                "Run verification before reporting this change as fixed."
            )
            return EvidenceReport(
                before=before,
                after=after,
                verdict=verdict,
                errors_fixed=0,
                errors_introduced=0,
                improved=False,
                summary=message,
                completion_message=message,
                evidence=self._evidence,
            )

        errors_fixed = max(0, before.total - after.total)
        errors_introduced = max(0, after.total - before.total)
        return EvidenceReport(
            before=before,
            after=after,
            verdict=verdict,
            errors_fixed=errors_fixed,
            errors_introduced=errors_introduced,
            improved=verdict in (Verdict.ALL_FIXED, Verdict.PARTIAL, Verdict.ALREADY_CLEAN),
            summary=self._summary(before, after, verdict),
            completion_message=self._completion_message(before, after, verdict),
            evidence=self._evidence,
        )

    def _summary(self, before: ErrorCounts, after: ErrorCounts, verdict: Verdict) -> str:
        lines = [
            "## Verification Summary",
            "",
            "| Category | Before | After | Change |",
            "|----------|--------|-------|--------|",
            f"| TypeScript | {before.typescript} | {after.typescript} | {format_change(before.typescript, after.typescript)} |",
            f"| Build | {before.build} | {after.build} | {format_change(before.build, after.build)} |",
            f"| Lint | {before.lint} | {after.lint} | {format_change(before.lint, after.lint)} |",
            f"| Tests | {before.tests.failed}/{before.tests.total} failed | "
            f"{after.tests.failed}/{after.tests.total} failed | "
            f"{format_change(before.tests.failed, after.tests.failed)} |",
            f"| **Total** | **{before.total}** | **{after.total}** | **{format_change(before.total, after.total)}** |",
            "",
        ]
        fixed = before.total - after.total
        if verdict == Verdict.ALL_FIXED:
            lines.append(f"### Result: All {fixed} error(s) fixed")
        elif verdict == Verdict.PARTIAL:
            lines.append(f"### Result: {fixed} error(s) fixed, {after.total} remaining")
        elif verdict == Verdict.NEW_ERRORS:
            lines.append(f"### Result: {-fixed} new error(s) introduced")
        elif verdict == Verdict.ALREADY_CLEAN:
            lines.append("### Result: Project was clean, remains clean")
        else:
            lines.append("### Result: No change in error count")

        if self.config.include_details and self._evidence and self._evidence.error_samples:
            lines.append("")
            lines.append("Remaining errors:")
            limit = self.config.max_errors_in_summary
            lines.extend(f"- {sample}" for sample in self._evidence.error_samples[:limit])
        return "\n".join(lines)

    def _completion_message(self, before: ErrorCounts, after: ErrorCounts, verdict: Verdict) -> str:
        if verdict == Verdict.ALL_FIXED:
            lines = [f"### Fixed {before.total} error(s). Verification passed:"]
        elif verdict == Verdict.ALREADY_CLEAN:
            lines = ["### No errors detected. Project is clean:"]
        elif verdict == Verdict.PARTIAL:
            lines = [f"### Fixed {before.total - after.total} error(s). {after.total} remaining:"]
        else:
            lines = [f"### Verification completed ({after.total} error(s)):"]
        lines.append("")
        lines.append(f"- TypeScript: {after.typescript} error(s)" if after.typescript else "- TypeScript: 0 errors")
        lines.append(f"- Build: {after.build} error(s)" if after.build else "- Build: Success")
        lines.append(f"- Lint: {after.lint} issue(s)" if after.lint else "- Lint: Passed")
        tests = after.tests
        if tests.total == 0:
            lines.append("- Tests: Not configured")
        elif tests.failed == 0:
            lines.append(f"- Tests: {tests.passed}/{tests.total} passed")
        else:
            lines.append(f"- Tests: {tests.passed}/{tests.total} passed, {tests.failed} failed")
        return "\n".join(lines)

    # -- state --

    @property
    def before(self) -> ErrorCounts | None:
        return self._before

    @property
    def after(self) -> ErrorCounts | None:
        return self._after

    def has_evidence(self) -> bool:
        return self._verification_ran and self._evidence is not None

    def has_comparison(self) -> bool:
        return self._before is not None and self._after is not None

    def reset(self) -> None:
        self._before = None
        self._after = None
        self._evidence = None
        self._verification_ran = False
