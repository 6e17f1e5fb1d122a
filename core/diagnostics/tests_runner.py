"""Test-runner adapters (Jest / Vitest).

JSON reporter output is preferred; when the runner prints plain text, the
summary line and ``FAIL <file>`` markers are used instead. Failing tests
become TEST_FAILED diagnostics so they count like any other error.
"""

from __future__ import annotations

import json
import logging
import re
import shlex
import time
from dataclasses import dataclass, field
from enum import Enum

from core.diagnostics.base import CommandAdapter, DiagnosticAdapter
from core.diagnostics.lint import relative_to
from core.diagnostics.models import (
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
    TestCounts,
)

logger = logging.getLogger(__name__)

TEST_FAILED = "TEST_FAILED"

# Tests  2 passed | 1 failed (3)
_VITEST_SUMMARY = re.compile(r"Tests\s+(\d+)\s+passed\s*\|\s*(\d+)\s+failed\s*\((\d+)\)", re.IGNORECASE)
# Tests  3 passed (3)
_VITEST_ALL_PASSED = re.compile(r"Tests\s+(\d+)\s+passed\s*\((\d+)\)", re.IGNORECASE)
# Tests:       1 failed, 2 passed, 3 total
_JEST_SUMMARY = re.compile(r"Tests:\s*(\d+)\s+failed,\s*(\d+)\s+passed,\s*(\d+)\s+total", re.IGNORECASE)
# Tests:       3 passed, 3 total
_JEST_ALL_PASSED = re.compile(r"Tests:\s*(\d+)\s+passed,\s*(\d+)\s+total", re.IGNORECASE)
_FAIL_LINE = re.compile(r"^\s*(?:FAIL|❯|×)\s+(\S+\.(?:test|spec)\.[cm]?[jt]sx?)", re.MULTILINE)
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _first_line(text: str, limit: int = 200) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()[:limit]
    return ""


def parse_test_json(output: str, root: str | None = None) -> tuple[TestCounts, list[DiagnosticError]] | None:
    """Parse ``--json`` reporter output shared by Jest and Vitest. None if absent."""
    match = _JSON_OBJECT.search(output)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or "testResults" not in data:
        return None

    counts = TestCounts(
        passed=int(data.get("numPassedTests", 0)),
        failed=int(data.get("numFailedTests", 0)),
        total=int(data.get("numTotalTests", 0)),
        skipped=int(data.get("numPendingTests", 0)),
    )
    errors: list[DiagnosticError] = []
    for suite in data.get("testResults") or []:
        file = relative_to(suite.get("name") or suite.get("testFilePath") or "", root)
        unlocated: list[str] = []
        for assertion in suite.get("assertionResults") or []:
            if assertion.get("status") != "failed":
                continue
            title = assertion.get("fullName") or assertion.get("title") or "test"
            detail = _first_line("\n".join(assertion.get("failureMessages") or []))
            location = assertion.get("location") or {}
            if location.get("line"):
                errors.append(
                    DiagnosticError(
                        code=TEST_FAILED,
                        message=f"{title}: {detail}" if detail else title,
                        file=file,
                        line=int(location["line"]),
                        column=int(location.get("column") or 0),
                    )
                )
            else:
                unlocated.append(title)
        if unlocated:
            errors.append(
                DiagnosticError(
                    code=TEST_FAILED,
                    message=f"{len(unlocated)} test(s) failed: {'; '.join(unlocated)}",
                    file=file,
                )
            )
        elif suite.get("status") == "failed" and not any(e.file == file for e in errors):
            # Suite-level failure such as a syntax error in the test file
            errors.append(
                DiagnosticError(
                    code=TEST_FAILED,
                    message=_first_line(suite.get("message") or "") or "Test suite failed to run",
                    file=file,
                )
            )
        if suite.get("status") == "failed" and file:
            counts.failed_files.append(file)
    return counts, errors


def parse_test_text(output: str, root: str | None = None) -> tuple[TestCounts, list[DiagnosticError]]:
    """Recover counts from the summary line and failing files from FAIL markers."""
    counts = TestCounts()
    if m := _VITEST_SUMMARY.search(output):
        counts.passed, counts.failed, counts.total = int(m.group(1)), int(m.group(2)), int(m.group(3))
    elif m := _JEST_SUMMARY.search(output):
        counts.failed, counts.passed, counts.total = int(m.group(1)), int(m.group(2)), int(m.group(3))
    elif m := _VITEST_ALL_PASSED.search(output):
        counts.passed, counts.total = int(m.group(1)), int(m.group(2))
    elif m := _JEST_ALL_PASSED.search(output):
        counts.passed, counts.total = int(m.group(1)), int(m.group(2))

    failed_files: list[str] = []
    for file in _FAIL_LINE.findall(output):
        file = relative_to(file, root)
        if file not in failed_files:
            failed_files.append(file)
    counts.failed_files = failed_files

    errors = [DiagnosticError(code=TEST_FAILED, message="Test file failed", file=f) for f in failed_files]
    if counts.failed and not errors:
        errors.append(DiagnosticError(code=TEST_FAILED, message=f"{counts.failed} test(s) failed"))
    return counts, errors


class TestRunnerAdapter(CommandAdapter):
    """Runs the whole suite, or the ``{file}`` template for a targeted scope."""

    __test__ = False

    family = DiagnosticFamily.TEST
    name = "tests"

    def __init__(self, host, command: str | None, file_command: str | None = None, **kwargs):
        super().__init__(host, command, **kwargs)
        self.file_command = file_command
        self._counts: TestCounts | None = None

    def build_command(self, scope: DiagnosticScope) -> str | None:
        if scope.is_targeted:
            if not self.file_command:
                return None
            files = " ".join(shlex.quote(f) for f in scope.files)
            return self.file_command.replace("{file}", files)
        return self.command

    def parse(self, output: str) -> list[DiagnosticError]:
        parsed = parse_test_json(output, self.host.working_dir)
        if parsed is None:
            parsed = parse_test_text(output, self.host.working_dir)
        self._counts, errors = parsed
        return errors

    def finish(self, collection: CollectionResult, output: str) -> CollectionResult:
        # A runner that died reported no counts; leave them unknown
        if not (collection.crashed or collection.timed_out):
            collection.tests = self._counts or TestCounts()
        self._counts = None
        return collection


# ---------------------------------------------------------------------------
# Failure-first strategy
# ---------------------------------------------------------------------------


class TestStrategy(str, Enum):
    __test__ = False

    FULL = "full"
    TARGETED = "targeted"
    SKIP = "skip"


@dataclass
class FailedTest:
    test_file: str
    error: str
    timestamp: float = field(default_factory=time.time)
    failure_count: int = 1


@dataclass
class TargetedTestResult:
    strategy: TestStrategy
    passed: bool
    summary: str
    targeted: CollectionResult | None = None
    full: CollectionResult | None = None
    duration: float = 0.0

    @property
    def final(self) -> CollectionResult:
        result = self.full or self.targeted
        assert result is not None
        return result


class TargetedTestRunner(DiagnosticAdapter):
    """Re-runs previously failing test files before the full suite.

    If the known failures still fail and ``skip_full_on_failure`` is set,
    the full suite is skipped and the targeted result is reported.
    """

    __test__ = False

    family = DiagnosticFamily.TEST
    name = "tests (targeted)"

    def __init__(self, runner: TestRunnerAdapter, skip_full_on_failure: bool = True, max_tracked: int = 20):
        self.runner = runner
        self.skip_full_on_failure = skip_full_on_failure
        self.max_tracked = max_tracked
        self._failures: dict[str, FailedTest] = {}

    # -- failure tracking --

    def record_failure(self, test_file: str, error: str) -> None:
        existing = self._failures.get(test_file)
        self._failures[test_file] = FailedTest(
            test_file=test_file,
            error=error,
            failure_count=existing.failure_count + 1 if existing else 1,
        )
        while len(self._failures) > self.max_tracked:
            oldest = min(self._failures.values(), key=lambda f: f.timestamp)
            del self._failures[oldest.test_file]

    def clear_failure(self, test_file: str) -> None:
        self._failures.pop(test_file, None)

    def clear_all_failures(self) -> None:
        self._failures.clear()

    def failed_files(self) -> list[str]:
        return list(self._failures)

    def failures(self) -> list[FailedTest]:
        return sorted(self._failures.values(), key=lambda f: f.timestamp, reverse=True)

    def has_known_failures(self) -> bool:
        return bool(self._failures)

    def _update_failures(self, result: CollectionResult) -> None:
        if result.success:
            self._failures.clear()
            return
        for error in result.errors:
            if error.file:
                self.record_failure(error.file, error.message)

    # -- running --

    async def run(self) -> TargetedTestResult:
        start = time.monotonic()
        known = self.failed_files()

        if not known:
            full = await self.runner.collect()
            self._update_failures(full)
            counts = full.tests or TestCounts()
            summary = (
                f"All {counts.total} tests passed"
                if full.success
                else f"{counts.failed or full.error_count} test(s) failed"
            )
            return TargetedTestResult(
                strategy=TestStrategy.FULL,
                passed=full.success,
                summary=summary,
                full=full,
                duration=time.monotonic() - start,
            )

        logger.info("Re-running %d previously failed test file(s) first", len(known))
        targeted = await self.runner.collect(DiagnosticScope(files=known))

        if not targeted.success and self.skip_full_on_failure:
            self._update_failures(targeted)
            return TargetedTestResult(
                strategy=TestStrategy.TARGETED,
                passed=False,
                summary=(
                    f"Targeted tests still failing: {targeted.error_count} failure(s). "
                    "Fix these before running full suite."
                ),
                targeted=targeted,
                duration=time.monotonic() - start,
            )

        if targeted.success:
            for file in known:
                self.clear_failure(file)

        full = await self.runner.collect()
        self._update_failures(full)
        return TargetedTestResult(
            strategy=TestStrategy.FULL,
            passed=full.success,
            summary=(
                f"All tests pass! ({len(known)} previously-failed now fixed)"
                if full.success
                else f"{full.error_count} test(s) failed in full suite"
            ),
            targeted=targeted,
            full=full,
            duration=time.monotonic() - start,
        )

    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        if scope is not None and scope.is_targeted:
            return await self.runner.collect(scope)
        if not self.runner.command:
            return CollectionResult.skip(self.family, "no test script")
        return (await self.run()).final

    def format_failures(self) -> str:
        failures = self.failures()
        if not failures:
            return "No known test failures."
        lines = ["## Known Test Failures", ""]
        for failure in failures[:10]:
            lines.append(f"- **{failure.test_file}** (failed {failure.failure_count}x)")
            lines.append(f"  - {failure.error}")
        if len(failures) > 10:
            lines.append(f"- ... and {len(failures) - 10} more")
        return "\n".join(lines)
