"""Tests for the unified verifier."""

import pytest

from config.schema import UnifiedConfig, VerifySettings
from core.diagnostics.collector import DiagnosticsCollector
from core.diagnostics.models import DiagnosticFamily
from core.verification.unified import PHASES, UnifiedVerifier
from tests.fakes.adapters import StaticAdapter, ts_error
from tests.fakes.host import RecordingListener, make_host


@pytest.fixture
def collector():
    collector = DiagnosticsCollector(make_host(), VerifySettings())
    for family in (DiagnosticFamily.TYPE_CHECK, DiagnosticFamily.LINT, DiagnosticFamily.ENV):
        collector.register(StaticAdapter(family))
    return collector


class TestUnifiedVerifier:
    @pytest.mark.asyncio
    async def test_clean_project(self, collector):
        listener = RecordingListener()

        result = await UnifiedVerifier(collector, listener=listener).verify()

        assert result.success
        assert result.total_errors == 0
        assert [name for name, _ in listener.of("on_phase_complete")] == [flag for _, flag, _ in PHASES]
        assert result.phases["tests"].skip_reason == "Disabled"
        assert result.phases["build"].skip_reason == "Disabled"
        assert result.phases["style_lint"].skipped
        assert result.summary.startswith("Verification PASSED")

    @pytest.mark.asyncio
    async def test_errors_fail_the_run(self, collector):
        collector.adapter(DiagnosticFamily.TYPE_CHECK).errors = [ts_error("src/a.ts", 1), ts_error("src/a.ts", 2)]

        result = await UnifiedVerifier(collector).verify()

        assert not result.success
        assert result.total_errors == 2
        assert not result.phases["type_check"].passed
        assert result.phases["lint"].passed
        assert "| Type Check | ❌ | 2 | 0 |" in result.report
        assert "| Tests | ⏭️ Skipped (Disabled) | - | - | - |" in result.report
        counted = result.collection_results()
        assert counted[DiagnosticFamily.TYPE_CHECK].error_count == 2
        assert DiagnosticFamily.TEST not in counted

    @pytest.mark.asyncio
    async def test_crashing_phase_does_not_stop_the_run(self, collector):
        collector.adapter(DiagnosticFamily.LINT).raises = RuntimeError("eslint config broken")
        collector.adapter(DiagnosticFamily.ENV).errors = [ts_error("src/env.ts", 4, code="ENV_MISSING")]

        result = await UnifiedVerifier(collector).verify()

        lint = result.phases["lint"]
        assert not lint.passed
        assert lint.error_count == 1
        assert result.phases["env"].error_count == 1
        assert result.total_errors == 2

    @pytest.mark.asyncio
    async def test_enabled_phases_follow_config(self, collector):
        collector.register(StaticAdapter(DiagnosticFamily.TEST, [ts_error("src/a.test.ts", 0, code="TEST_FAILED")]))

        result = await UnifiedVerifier(
            collector, UnifiedConfig(type_check=False, tests=True)
        ).verify()

        assert result.phases["type_check"].skip_reason == "Disabled"
        assert result.phases["tests"].error_count == 1
        assert not result.success
