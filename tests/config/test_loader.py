"""Tests for config.loader module."""

import json

import pytest

from config.loader import ConfigLoader, load_config
from config.schema import VerifySettings
from core.diagnostics.models import DiagnosticFamily


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    (root / ".patchwarden").mkdir(parents=True)
    return root


class TestConfigLoader:
    def test_init(self, tmp_path):
        loader = ConfigLoader(workspace_root=str(tmp_path))
        assert loader.workspace_root == tmp_path.resolve()

    def test_init_no_workspace(self):
        loader = ConfigLoader()
        assert loader.workspace_root is None

    def test_system_defaults_only(self, isolated_home):
        settings = ConfigLoader().load()
        assert isinstance(settings, VerifySettings)
        assert settings.executor.max_history == 50
        assert settings.snapshot.families == [DiagnosticFamily.TYPE_CHECK]
        assert settings.diagnostics.timeout_for(DiagnosticFamily.BUILD) == 120
        assert settings.tools.type_check is None

    def test_load_system_defaults_missing(self, tmp_path):
        loader = ConfigLoader()
        loader._system_defaults_dir = tmp_path / "nonexistent"
        assert loader._load_system_defaults() == {}

    def test_project_overrides_user(self, isolated_home, project):
        (isolated_home / ".patchwarden").mkdir()
        (isolated_home / ".patchwarden" / "verify.json").write_text(
            json.dumps({"rollback": {"max_error_increase": 3}, "checkpoints": {"max_checkpoints": 4}})
        )
        (project / ".patchwarden" / "verify.json").write_text(json.dumps({"rollback": {"max_error_increase": 1}}))

        settings = ConfigLoader(project).load()

        assert settings.rollback.max_error_increase == 1
        assert settings.checkpoints.max_checkpoints == 4
        # untouched keys of the same group keep their defaults
        assert settings.rollback.auto_rollback_on_error_increase is True

    def test_yaml_project_config(self, isolated_home, project):
        (project / ".patchwarden" / "verify.yaml").write_text(
            "tools:\n  type_check: npx tsc --noEmit --pretty false\n  lint: npx eslint . --format json\n"
        )
        settings = ConfigLoader(project).load()
        assert settings.tools.lint == "npx eslint . --format json"
        assert settings.tools.type_check_build == "npx tsc --build --noEmit --pretty false"

    def test_json_wins_over_yaml(self, isolated_home, project):
        (project / ".patchwarden" / "verify.json").write_text(json.dumps({"executor": {"max_history": 7}}))
        (project / ".patchwarden" / "verify.yaml").write_text("executor:\n  max_history: 9\n")
        assert ConfigLoader(project).load().executor.max_history == 7

    def test_cli_overrides_win(self, isolated_home, project):
        (project / ".patchwarden" / "verify.json").write_text(json.dumps({"executor": {"max_history": 7}}))
        settings = ConfigLoader(project).load({"executor": {"max_history": 3}})
        assert settings.executor.max_history == 3

    def test_none_override_keeps_lower_tier(self, isolated_home, project):
        (project / ".patchwarden" / "verify.json").write_text(json.dumps({"executor": {"max_history": 7}}))
        settings = ConfigLoader(project).load({"executor": {"max_history": None}})
        assert settings.executor.max_history == 7

    def test_malformed_file_is_ignored(self, isolated_home, project):
        (project / ".patchwarden" / "verify.json").write_text("{not json")
        settings = ConfigLoader(project).load()
        assert settings.executor.max_history == 50

    def test_non_mapping_file_is_ignored(self, isolated_home, project):
        (project / ".patchwarden" / "verify.yaml").write_text("- just\n- a list\n")
        assert ConfigLoader(project).load().executor.max_history == 50

    def test_env_var_expansion(self, isolated_home, project, monkeypatch):
        monkeypatch.setenv("PW_TSC", "npx tsc")
        (project / ".patchwarden" / "verify.json").write_text(
            json.dumps({"tools": {"type_check": "${PW_TSC} --noEmit"}})
        )
        assert ConfigLoader(project).load().tools.type_check == "npx tsc --noEmit"


class TestDeepMerge:
    def test_nested(self):
        loader = ConfigLoader()
        merged = loader._deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}})
        assert merged == {"a": {"b": 1, "c": 3}}

    def test_scalar_replaces_dict(self):
        loader = ConfigLoader()
        assert loader._deep_merge({"a": {"b": 1}}, {"a": 5}) == {"a": 5}

    def test_lists_replace(self):
        loader = ConfigLoader()
        assert loader._deep_merge({"a": [1, 2]}, {"a": [3]}) == {"a": [3]}


def test_load_config_convenience(isolated_home, project):
    (project / ".patchwarden" / "verify.json").write_text(json.dumps({"per_file": {"timeout": 5}}))
    settings = load_config(project, {"per_file": {"rollback_on_any_error": False}})
    assert settings.per_file.timeout == 5
    assert settings.per_file.rollback_on_any_error is False
