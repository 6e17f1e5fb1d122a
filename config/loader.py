"""Verification settings loader.

Configuration priority (highest to lowest):
1. CLI / caller overrides
2. Project config (.patchwarden/verify.json or verify.yaml in workspace)
3. User config (~/.patchwarden/verify.json or verify.yaml)
4. System defaults (config/defaults/verify.json)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from config.schema import VerifySettings

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".patchwarden"
CONFIG_STEM = "verify"


class ConfigLoader:
    """Three-tier loader for verification settings."""

    def __init__(self, workspace_root: str | Path | None = None):
        self.workspace_root = Path(workspace_root).resolve() if workspace_root else None
        self._system_defaults_dir = Path(__file__).parent / "defaults"

    def load(self, cli_overrides: dict[str, Any] | None = None) -> VerifySettings:
        """Load settings with three-tier merge."""
        merged = self._deep_merge(
            self._load_system_defaults(),
            self._load_user_config(),
            self._load_project_config(),
        )

        if cli_overrides:
            merged = self._deep_merge(merged, cli_overrides)

        merged = self._expand_env_vars(merged)
        merged = self._remove_none_values(merged)

        return VerifySettings(**merged)

    # ── Tier loading ──

    def _load_system_defaults(self) -> dict[str, Any]:
        """Load system defaults from verify.json."""
        return self._load_file(self._system_defaults_dir / f"{CONFIG_STEM}.json")

    def _load_user_config(self) -> dict[str, Any]:
        """Load user config from ~/.patchwarden/."""
        return self._load_first(Path.home() / CONFIG_DIR_NAME)

    def _load_project_config(self) -> dict[str, Any]:
        """Load project config from <workspace>/.patchwarden/."""
        if not self.workspace_root:
            return {}
        return self._load_first(self.workspace_root / CONFIG_DIR_NAME)

    def _load_first(self, config_dir: Path) -> dict[str, Any]:
        """First existing of verify.json / verify.yaml / verify.yml wins."""
        for suffix in (".json", ".yaml", ".yml"):
            path = config_dir / f"{CONFIG_STEM}{suffix}"
            if path.exists():
                return self._load_file(path)
        return {}

    @staticmethod
    def _load_file(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: top level is not a mapping", path)
            return {}
        return data

    # ── Merge helpers ──

    def _deep_merge(self, *dicts: dict[str, Any]) -> dict[str, Any]:
        """Deep merge multiple dictionaries. Later dicts override earlier ones."""
        result: dict[str, Any] = {}
        for d in dicts:
            for key, value in d.items():
                if key not in result:
                    result[key] = value
                elif value is None:
                    continue
                elif isinstance(value, dict) and isinstance(result[key], dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value
        return result

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively expand ${VAR} and ~ in string values."""
        if isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self._expand_env_vars(v) for v in obj]
        if isinstance(obj, str):
            return os.path.expandvars(os.path.expanduser(obj))
        return obj

    def _remove_none_values(self, obj: Any) -> Any:
        """Recursively remove None values to allow Pydantic defaults."""
        if isinstance(obj, dict):
            return {k: self._remove_none_values(v) for k, v in obj.items() if v is not None}
        if isinstance(obj, list):
            return [self._remove_none_values(v) for v in obj if v is not None]
        return obj


def load_config(
    workspace_root: str | Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> VerifySettings:
    """Convenience function to load verification settings."""
    return ConfigLoader(workspace_root=workspace_root).load(cli_overrides=cli_overrides)
