"""Tests for error snapshots and the comparator."""

import pytest

from config.schema import VerifySettings
from core.diagnostics.collector import DiagnosticsCollector
from core.diagnostics.models import DiagnosticFamily
from core.verification.snapshot import ErrorTracker, compare_snapshots
from tests.fakes.adapters import StaticAdapter, ts_error
from tests.fakes.host import make_host

A = ts_error("src/a.ts", 1)
B = ts_error("src/a.ts", 5, code="TS2322")
C = ts_error("src/b.ts", 2)


@pytest.fixture
def adapter():
    return StaticAdapter(DiagnosticFamily.TYPE_CHECK)


@pytest.fixture
def tracker(adapter):
    collector = DiagnosticsCollector(make_host(), VerifySettings())
    collector.register(adapter)
    return ErrorTracker(collector)


class TestCompareSnapshots:
    def test_moved_error_is_fixed_plus_new(self, tracker):
        moved = ts_error("src/a.ts", 6, code="TS2322")
        baseline = tracker.make_snapshot([A, B], "baseline")
        current = tracker.make_snapshot([A, moved], "current")

        comparison = compare_snapshots(baseline, current)

        assert comparison.delta == 0
        assert comparison.new_errors == [moved]
        assert comparison.fixed_errors == [B]
        assert comparison.summary == "No change in error count"

    def test_comparison_is_symmetric(self, tracker):
        first = tracker.make_snapshot([A, B], "one")
        second = tracker.make_snapshot([B, C], "two")

        forward = compare_snapshots(first, second)
        backward = compare_snapshots(second, first)

        assert forward.new_errors == backward.fixed_errors
        assert forward.fixed_errors == backward.new_errors
        assert forward.delta == -backward.delta == 0

    def test_by_file_counts(self, tracker):
        snapshot = tracker.make_snapshot([A, B, C, ts_error("", 0)], "mixed")
        assert snapshot.by_file == {"src/a.ts": 2, "src/b.ts": 1, "(unknown)": 1}


class TestErrorTracker:
    @pytest.mark.asyncio
    async def test_no_baseline_accepts(self, tracker):
        check = await tracker.check_error_state()
        assert check.acceptable
        assert check.comparison is None

    @pytest.mark.asyncio
    async def test_increase_against_baseline(self, tracker, adapter):
        adapter.errors = [A]
        baseline = await tracker.capture_baseline()
        assert baseline.error_count == 1
        assert DiagnosticFamily.TYPE_CHECK in tracker.baseline_results

        adapter.errors = [A, C]
        check = await tracker.check_error_state()

        assert not check.acceptable
        assert check.comparison.delta == 1
        assert check.comparison.new_errors == [C]
        assert check.message == "Error count increased by 1 (1 -> 2)"

    @pytest.mark.asyncio
    async def test_threshold_tolerates_increase(self, adapter):
        collector = DiagnosticsCollector(make_host(), VerifySettings())
        collector.register(adapter)
        tracker = ErrorTracker(collector, increase_threshold=1)

        await tracker.capture_baseline()
        adapter.errors = [A]
        assert (await tracker.check_error_state()).acceptable
        adapter.errors = [A, C]
        assert not (await tracker.check_error_state()).acceptable

    @pytest.mark.asyncio
    async def test_file_change_ignores_existing_errors(self, tracker, adapter):
        adapter.errors = [A, C]
        await tracker.capture_baseline()

        check = await tracker.check_after_file_change("src/a.ts")
        assert check.acceptable
        assert "existed before" in check.message
        assert adapter.scopes[-1].files == ["src/a.ts"]

        adapter.errors = [A, B, C]
        check = await tracker.check_after_file_change("src/a.ts")
        assert not check.acceptable
        assert check.new_errors == [B]

    @pytest.mark.asyncio
    async def test_evidence_report(self, tracker, adapter):
        adapter.errors = [A, B]
        await tracker.capture_baseline()
        adapter.errors = []
        await tracker.capture_snapshot("after fix")

        report = tracker.generate_evidence_report()

        assert "| Total Errors | 2 | 0 | -2 |" in report
        assert "### Fixed Errors:" in report
        assert "**All errors have been resolved.**" in report

    @pytest.mark.asyncio
    async def test_reset(self, tracker, adapter):
        await tracker.capture_baseline()
        tracker.reset()
        assert tracker.baseline is None
        assert tracker.snapshots == []
        assert tracker.baseline_results == {}
        assert tracker.generate_evidence_report().startswith("No baseline captured")


class TestComparatorScenario:
    def test_fixed_and_new_sets(self, tracker):
        x = ts_error("a.ts", 10, code="X")
        y = ts_error("a.ts", 20, code="Y")
        z = ts_error("b.ts", 5, code="Z")
        w = ts_error("c.ts", 1, code="W")
        baseline = tracker.make_snapshot([x, y, z], "baseline")
        after = tracker.make_snapshot([x, w], "after")

        comparison = compare_snapshots(baseline, after)

        assert comparison.fixed_errors == [y, z]
        assert comparison.new_errors == [w]
        assert comparison.delta == -1
        assert comparison.errors_decreased
        assert not comparison.errors_increased
