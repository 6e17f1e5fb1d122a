"""Error snapshots and the snapshot comparator.

A snapshot is the set of errors the configured diagnostics families
report at one moment. The first snapshot of a batch is kept as the
baseline; later snapshots are compared against it.

Errors are identified by (file, line, code), so an error that moves to
another line shows up as one fixed plus one new error.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.diagnostics.base import dedupe_errors
from core.diagnostics.models import CollectionResult, DiagnosticError, DiagnosticFamily, DiagnosticScope
from core.events import VerificationListener, as_listener

if TYPE_CHECKING:
    from core.diagnostics.collector import DiagnosticsCollector

logger = logging.getLogger(__name__)

UNKNOWN_FILE = "(unknown)"
REPORT_LIST_LIMIT = 10


@dataclass(frozen=True)
class ErrorSnapshot:
    id: str
    label: str
    errors: tuple[DiagnosticError, ...]
    by_file: dict[str, int] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def error_count(self) -> int:
        return len(self.errors)


@dataclass(frozen=True)
class ErrorComparison:
    baseline: ErrorSnapshot
    current: ErrorSnapshot
    delta: int
    new_errors: list[DiagnosticError]
    fixed_errors: list[DiagnosticError]
    summary: str

    @property
    def errors_increased(self) -> bool:
        return self.delta > 0

    @property
    def errors_decreased(self) -> bool:
        return self.delta < 0


@dataclass
class ErrorStateCheck:
    acceptable: bool
    comparison: ErrorComparison | None
    message: str


@dataclass
class FileChangeCheck:
    acceptable: bool
    new_errors: list[DiagnosticError]
    message: str


def errors_not_in(errors: list[DiagnosticError] | tuple[DiagnosticError, ...], reference) -> list[DiagnosticError]:
    """Errors whose (file, line, code) does not occur in ``reference``."""
    keys = {e.key for e in reference}
    return [e for e in errors if e.key not in keys]


def compare_snapshots(baseline: ErrorSnapshot, current: ErrorSnapshot) -> ErrorComparison:
    delta = current.error_count - baseline.error_count
    if delta == 0:
        summary = "No change in error count"
    elif delta > 0:
        summary = f"Error count increased by {delta} ({baseline.error_count} -> {current.error_count})"
    else:
        summary = f"Error count decreased by {-delta} ({baseline.error_count} -> {current.error_count})"
    return ErrorComparison(
        baseline=baseline,
        current=current,
        delta=delta,
        new_errors=errors_not_in(current.errors, baseline.errors),
        fixed_errors=errors_not_in(baseline.errors, current.errors),
        summary=summary,
    )


class ErrorTracker:
    """Captures snapshots through the diagnostics collector and compares them."""

    def __init__(
        self,
        collector: DiagnosticsCollector,
        families: list[DiagnosticFamily] | None = None,
        increase_threshold: int = 0,
        listener: VerificationListener | None = None,
    ):
        self.collector = collector
        self.families = families or [DiagnosticFamily.TYPE_CHECK]
        self.increase_threshold = increase_threshold
        self.listener = as_listener(listener)
        self._baseline: ErrorSnapshot | None = None
        self._snapshots: list[ErrorSnapshot] = []
        self._counter = 0
        self.baseline_results: dict[DiagnosticFamily, CollectionResult] = {}
        self.last_results: dict[DiagnosticFamily, CollectionResult] = {}

    # -- capture --

    async def _collect(self) -> list[DiagnosticError]:
        self.last_results = await self.collector.collect_all(self.families)
        return dedupe_errors([e for r in self.last_results.values() if not r.skipped for e in r.errors])

    def make_snapshot(self, errors: list[DiagnosticError], label: str) -> ErrorSnapshot:
        """Build a snapshot from already-collected errors."""
        self._counter += 1
        by_file = Counter(e.file or UNKNOWN_FILE for e in errors)
        snapshot = ErrorSnapshot(
            id=f"snapshot_{self._counter}_{int(time.time() * 1000)}",
            label=label,
            errors=tuple(errors),
            by_file=dict(by_file),
        )
        self._snapshots.append(snapshot)
        return snapshot

    async def capture_baseline(self) -> ErrorSnapshot:
        self.listener.on_progress("Capturing baseline error state...")
        errors = await self._collect()
        snapshot = self.make_snapshot(errors, "baseline")
        self._baseline = snapshot
        self.baseline_results = self.last_results
        self.listener.on_progress(f"Baseline: {snapshot.error_count} error(s)")
        logger.info("Baseline captured: %d error(s)", snapshot.error_count)
        return snapshot

    async def capture_snapshot(self, label: str) -> ErrorSnapshot:
        errors = await self._collect()
        snapshot = self.make_snapshot(errors, label)
        logger.debug("Snapshot %s (%s): %d error(s)", snapshot.id, label, snapshot.error_count)
        return snapshot

    # -- comparison --

    def compare(self, baseline: ErrorSnapshot, current: ErrorSnapshot) -> ErrorComparison:
        return compare_snapshots(baseline, current)

    def is_acceptable(self, comparison: ErrorComparison) -> bool:
        return comparison.delta <= self.increase_threshold

    async def check_error_state(self) -> ErrorStateCheck:
        if self._baseline is None:
            return ErrorStateCheck(
                acceptable=True,
                comparison=None,
                message="No baseline captured - accepting current state",
            )
        current = await self.capture_snapshot("current")
        comparison = self.compare(self._baseline, current)
        return ErrorStateCheck(
            acceptable=self.is_acceptable(comparison),
            comparison=comparison,
            message=comparison.summary,
        )

    async def check_after_file_change(self, path: str) -> FileChangeCheck:
        """Errors in a file-scoped run that the baseline did not already have."""
        errors = await self.collector.collect_errors(self.families, DiagnosticScope(files=[path]))
        if not errors:
            return FileChangeCheck(acceptable=True, new_errors=[], message=f"File {path} has no errors")

        new_errors = errors_not_in(errors, self._baseline.errors) if self._baseline else errors
        if new_errors:
            message = f"File {path} introduced {len(new_errors)} new error(s)"
        else:
            message = f"File {path} has errors but they existed before"
        return FileChangeCheck(acceptable=not new_errors, new_errors=new_errors, message=message)

    # -- accessors --

    @property
    def baseline(self) -> ErrorSnapshot | None:
        return self._baseline

    @property
    def snapshots(self) -> list[ErrorSnapshot]:
        return list(self._snapshots)

    @property
    def latest_snapshot(self) -> ErrorSnapshot | None:
        return self._snapshots[-1] if self._snapshots else None

    def reset(self) -> None:
        self._baseline = None
        self._snapshots = []
        self._counter = 0
        self.baseline_results = {}
        self.last_results = {}

    # -- reporting --

    def generate_evidence_report(self) -> str:
        if self._baseline is None:
            return "No baseline captured - cannot generate evidence report"
        current = self.latest_snapshot
        if current is None:
            return "No current snapshot - cannot generate evidence report"

        comparison = self.compare(self._baseline, current)
        sign = "+" if comparison.delta >= 0 else ""
        lines = [
            "## Error Resolution Evidence",
            "",
            "| Metric | Before | After | Change |",
            "|--------|--------|-------|--------|",
            f"| Total Errors | {comparison.baseline.error_count} | {comparison.current.error_count} "
            f"| {sign}{comparison.delta} |",
            "",
        ]
        for title, errors in (
            ("### Fixed Errors:", comparison.fixed_errors),
            ("### New Errors Introduced:", comparison.new_errors),
        ):
            if not errors:
                continue
            lines.append(title)
            for error in errors[:REPORT_LIST_LIMIT]:
                lines.append(f"- {error.file}:{error.line} - {error.code}: {error.message}")
            if len(errors) > REPORT_LIST_LIMIT:
                lines.append(f"- ... and {len(errors) - REPORT_LIST_LIMIT} more")
            lines.append("")

        if comparison.current.error_count == 0:
            lines.append("**All errors have been resolved.**")
        elif comparison.errors_decreased:
            lines.append(f"**Progress made:** {-comparison.delta} error(s) fixed.")
        elif comparison.errors_increased:
            lines.append(f"**Warning:** {comparison.delta} new error(s) introduced.")
        return "\n".join(lines)
