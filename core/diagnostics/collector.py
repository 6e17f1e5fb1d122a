"""DiagnosticsCollector - one registry of adapters per project session.

Usage:
    collector = DiagnosticsCollector(host, settings, listener)
    result = await collector.collect(DiagnosticFamily.TYPE_CHECK)
    errors = await collector.collect_errors([DiagnosticFamily.TYPE_CHECK, DiagnosticFamily.LINT])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.diagnostics.base import DiagnosticAdapter, dedupe_errors
from core.diagnostics.build import BuildAdapter
from core.diagnostics.circular import CircularImportAdapter
from core.diagnostics.env_scan import EnvVarAdapter
from core.diagnostics.lint import EslintAdapter, StylelintAdapter
from core.diagnostics.models import (
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
)
from core.diagnostics.tests_runner import TargetedTestRunner, TestRunnerAdapter
from core.diagnostics.typecheck import MonorepoTypeCheckAdapter, TypeCheckAdapter
from core.events import VerificationListener, as_listener

if TYPE_CHECKING:
    from config.schema import VerifySettings
    from sandbox.base import ExecutionHost

logger = logging.getLogger(__name__)


class DiagnosticsCollector:
    """Runs diagnostics families through their adapters.

    Adapters are built from the tool commands in settings; ``register``
    replaces the adapter for a family (custom tools, tests).
    """

    def __init__(
        self,
        host: ExecutionHost,
        settings: VerifySettings | None = None,
        listener: VerificationListener | None = None,
    ):
        if settings is None:
            from config.schema import VerifySettings

            settings = VerifySettings()
        self.host = host
        self.settings = settings
        self.listener = as_listener(listener)
        self._adapters: dict[DiagnosticFamily, DiagnosticAdapter] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        tools = self.settings.tools
        workspace = self.settings.workspace
        timeouts = self.settings.diagnostics

        def t(family: DiagnosticFamily) -> float:
            return timeouts.timeout_for(family)

        if workspace.is_monorepo and workspace.per_package_type_check:
            type_check: DiagnosticAdapter = MonorepoTypeCheckAdapter(
                self.host,
                workspace.packages,
                tools.type_check,
                build_mode_command=tools.type_check_build,
                timeout=t(DiagnosticFamily.TYPE_CHECK),
                listener=self.listener,
                detect_project_references=workspace.detect_project_references,
            )
        else:
            type_check = TypeCheckAdapter(
                self.host,
                tools.type_check,
                build_mode_command=tools.type_check_build,
                timeout=t(DiagnosticFamily.TYPE_CHECK),
                listener=self.listener,
                detect_project_references=workspace.detect_project_references,
            )
        self.register(type_check)
        self.register(
            BuildAdapter(self.host, tools.build, timeout=t(DiagnosticFamily.BUILD), listener=self.listener)
        )
        self.register(
            EslintAdapter(self.host, tools.lint, timeout=t(DiagnosticFamily.LINT), listener=self.listener)
        )
        self.register(
            StylelintAdapter(
                self.host, tools.style_lint, timeout=t(DiagnosticFamily.STYLE_LINT), listener=self.listener
            )
        )
        self.register(
            TargetedTestRunner(
                TestRunnerAdapter(
                    self.host,
                    tools.test,
                    file_command=tools.test_file,
                    timeout=t(DiagnosticFamily.TEST),
                    listener=self.listener,
                )
            )
        )
        self.register(CircularImportAdapter(self.host.fs, workspace.source_dirs, workspace.skip_dirs))
        self.register(EnvVarAdapter(self.host.fs, workspace.source_dirs, workspace.skip_dirs))

    # ------------------------------------------------------------------

    def register(self, adapter: DiagnosticAdapter) -> None:
        self._adapters[adapter.family] = adapter

    def adapter(self, family: DiagnosticFamily) -> DiagnosticAdapter | None:
        return self._adapters.get(family)

    @property
    def families(self) -> list[DiagnosticFamily]:
        return list(self._adapters)

    async def collect(
        self,
        family: DiagnosticFamily,
        scope: DiagnosticScope | None = None,
    ) -> CollectionResult:
        adapter = self._adapters.get(family)
        if adapter is None:
            return CollectionResult.skip(family, f"no adapter for {family.value}")

        result = await adapter.collect(scope)
        if result.skipped:
            logger.debug("%s skipped: %s", family.value, result.skip_reason)
        elif result.timed_out:
            logger.warning("%s timed out", family.value)
        else:
            logger.info(
                "%s: %d error(s), %d warning(s) in %.1fs",
                family.value,
                result.error_count,
                result.warning_count,
                result.duration,
            )
        return result

    async def collect_all(
        self,
        families: list[DiagnosticFamily],
        scope: DiagnosticScope | None = None,
    ) -> dict[DiagnosticFamily, CollectionResult]:
        """Run families one after another; they share the host's process slot."""
        results: dict[DiagnosticFamily, CollectionResult] = {}
        for family in families:
            results[family] = await self.collect(family, scope)
        return results

    async def collect_errors(
        self,
        families: list[DiagnosticFamily],
        scope: DiagnosticScope | None = None,
    ) -> list[DiagnosticError]:
        """Errors from every non-skipped family, deduplicated across families."""
        results = await self.collect_all(families, scope)
        return dedupe_errors([e for r in results.values() if not r.skipped for e in r.errors])
