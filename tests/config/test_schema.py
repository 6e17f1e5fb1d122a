"""Tests for config.schema module."""

import pytest
from pydantic import ValidationError

from config.schema import (
    DEFAULT_CRITICAL_CODES,
    DiagnosticsConfig,
    PackageSpec,
    PerFileConfig,
    SnapshotConfig,
    ToolCommands,
    VerifySettings,
    WorkspaceConfig,
)
from core.diagnostics.models import DiagnosticFamily


class TestToolCommands:
    def test_defaults_unconfigured(self):
        tools = ToolCommands()
        assert tools.package_manager == "npm"
        assert tools.for_family(DiagnosticFamily.TYPE_CHECK) is None
        assert tools.for_family(DiagnosticFamily.CIRCULAR) is None

    def test_for_family(self):
        tools = ToolCommands(lint="npx eslint . --format json", test="npx vitest run")
        assert tools.for_family(DiagnosticFamily.LINT) == "npx eslint . --format json"
        assert tools.for_family(DiagnosticFamily.TEST) == "npx vitest run"

    def test_test_file_requires_placeholder(self):
        with pytest.raises(ValidationError):
            ToolCommands(test_file="npx vitest run")
        assert ToolCommands(test_file="npx vitest run {file}").test_file == "npx vitest run {file}"


class TestVerifySettings:
    def test_defaults(self):
        settings = VerifySettings()
        assert settings.per_file.critical_error_codes == DEFAULT_CRITICAL_CODES
        assert settings.rollback.max_error_increase == 0
        assert settings.unified.tests is False
        assert settings.unified.type_check is True

    def test_build_mode_derived_from_tsc(self):
        settings = VerifySettings(tools={"type_check": "npx tsc --noEmit --pretty false"})
        assert settings.tools.type_check_build == "npx tsc --build --noEmit --pretty false"

    def test_explicit_build_mode_kept(self):
        settings = VerifySettings(tools={"type_check": "npx tsc --noEmit", "type_check_build": "npx tsc -b"})
        assert settings.tools.type_check_build == "npx tsc -b"

    def test_non_tsc_type_check_not_derived(self):
        settings = VerifySettings(tools={"type_check": "npx vue-tsc --noEmit"})
        assert settings.tools.type_check_build is None

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValidationError):
            SnapshotConfig(increase_threshold=-1)

    def test_negative_max_error_increase_rejected(self):
        with pytest.raises(ValidationError):
            VerifySettings(rollback={"max_error_increase": -2})

    def test_zero_timeout_rejected(self):
        with pytest.raises(ValidationError):
            DiagnosticsConfig(timeouts={"lint": 0})


class TestDiagnosticsConfig:
    def test_timeout_for_falls_back_to_default(self):
        config = DiagnosticsConfig(default_timeout=45)
        assert config.timeout_for(DiagnosticFamily.LINT) == 45
        assert config.timeout_for(DiagnosticFamily.BUILD) == 120


class TestWorkspaceConfig:
    def test_single_package_is_not_monorepo(self):
        assert not WorkspaceConfig(packages=[PackageSpec(name="app", path=".")]).is_monorepo

    def test_monorepo(self):
        workspace = WorkspaceConfig(
            packages=[PackageSpec(name="web", path="apps/web"), PackageSpec(name="ui", path="packages/ui")]
        )
        assert workspace.is_monorepo


class TestPerFileConfig:
    def test_extensions_normalized(self):
        config = PerFileConfig(families_by_extension={"VUE": ["lint"], ".Svelte": ["lint"]})
        assert set(config.families_by_extension) == {".vue", ".svelte"}
        assert config.families_by_extension[".vue"] == [DiagnosticFamily.LINT]
