"""Per-file verification right after a write.

The file's extension selects the diagnostics families to run, each scoped
to that one file. Rollback is recommended for any error (conservative
mode) or only for configured critical codes. A tool that crashes or times
out fails verification without recommending rollback.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.diagnostics.models import (
    VERIFY_ERROR_CODE,
    DiagnosticError,
    DiagnosticScope,
)
from core.events import VerificationListener, as_listener

if TYPE_CHECKING:
    from config.schema import PerFileConfig
    from core.diagnostics.collector import DiagnosticsCollector

logger = logging.getLogger(__name__)


@dataclass
class PerFileVerifyResult:
    path: str
    passed: bool = True
    errors: list[DiagnosticError] = field(default_factory=list)
    warnings: list[DiagnosticError] = field(default_factory=list)
    should_rollback: bool = False
    rollback_reason: str | None = None
    duration: float = 0.0
    tool_failed: bool = False


@dataclass
class PerFileSummary:
    total_verified: int = 0
    passed: int = 0
    failed: int = 0
    needing_rollback: int = 0
    total_errors: int = 0


class PerFileVerifier:
    def __init__(
        self,
        collector: DiagnosticsCollector,
        config: PerFileConfig | None = None,
        listener: VerificationListener | None = None,
    ):
        if config is None:
            from config.schema import PerFileConfig

            config = PerFileConfig()
        self.collector = collector
        self.config = config
        self.listener = as_listener(listener)
        self._verified: dict[str, PerFileVerifyResult] = {}

    def _decide(self, result: PerFileVerifyResult) -> None:
        if not result.errors:
            return
        if self.config.rollback_on_any_error:
            result.should_rollback = True
            result.rollback_reason = f"File has {len(result.errors)} error(s)"
            return
        critical = [e for e in result.errors if e.code in self.config.critical_error_codes]
        if critical:
            codes = ", ".join(dict.fromkeys(e.code for e in critical))
            result.should_rollback = True
            result.rollback_reason = f"File has {len(critical)} critical error(s): {codes}"

    async def verify_file(self, path: str) -> PerFileVerifyResult:
        start = time.monotonic()
        result = PerFileVerifyResult(path=path)
        ext = posixpath.splitext(path)[1].lower()
        families = self.config.families_by_extension.get(ext, [])
        self.listener.on_progress(f"Verifying {path}...")

        scope = DiagnosticScope(files=[path])
        try:
            for family in families:
                collected = await asyncio.wait_for(
                    self.collector.collect(family, scope),
                    timeout=self.config.timeout,
                )
                if collected.skipped:
                    continue
                if collected.crashed or collected.timed_out:
                    result.tool_failed = True
                    result.errors.extend(
                        DiagnosticError(
                            code=VERIFY_ERROR_CODE,
                            message=f"Verification failed: {e.message}",
                            file=path,
                        )
                        for e in collected.errors
                    )
                    continue
                result.errors.extend(collected.errors)
                result.warnings.extend(collected.warnings)
        except Exception as e:
            message = "timed out" if isinstance(e, TimeoutError) else str(e) or e.__class__.__name__
            logger.warning("Verification of %s failed: %s", path, message)
            result.tool_failed = True
            result.errors.append(
                DiagnosticError(code=VERIFY_ERROR_CODE, message=f"Verification failed: {message}", file=path)
            )

        real_errors = [e for e in result.errors if e.code != VERIFY_ERROR_CODE]
        result.passed = not result.errors
        if real_errors:
            saved = result.errors
            result.errors = real_errors
            self._decide(result)
            result.errors = saved

        result.duration = time.monotonic() - start
        self._verified[path] = result

        if result.should_rollback:
            self.listener.on_progress(f"ROLLBACK NEEDED: {result.rollback_reason}")
        elif result.passed:
            self.listener.on_progress(f"{path} passed verification")
        elif result.tool_failed and not real_errors:
            self.listener.on_progress(f"Verification tool failed for {path}; not rolling back")
        else:
            self.listener.on_progress(f"{path} has {len(result.errors)} error(s) but rollback not required")
        return result

    async def verify_files(self, paths: list[str]) -> dict[str, PerFileVerifyResult]:
        """Verify in order, stopping at the first file that needs rollback."""
        results: dict[str, PerFileVerifyResult] = {}
        for path in paths:
            result = await self.verify_file(path)
            results[path] = result
            if result.should_rollback:
                self.listener.on_progress(f"Stopping batch verification - rollback needed for {path}")
                break
        return results

    # -- session state --

    def needs_rollback(self) -> bool:
        return any(r.should_rollback for r in self._verified.values())

    def files_needing_rollback(self) -> list[str]:
        return [path for path, r in self._verified.items() if r.should_rollback]

    def get_result(self, path: str) -> PerFileVerifyResult | None:
        return self._verified.get(path)

    @property
    def results(self) -> dict[str, PerFileVerifyResult]:
        return dict(self._verified)

    def summary(self) -> PerFileSummary:
        summary = PerFileSummary(total_verified=len(self._verified))
        for result in self._verified.values():
            if result.passed:
                summary.passed += 1
            else:
                summary.failed += 1
            if result.should_rollback:
                summary.needing_rollback += 1
            summary.total_errors += len(result.errors)
        return summary

    def format_results(self) -> str:
        if not self._verified:
            return "No files verified yet."
        s = self.summary()
        lines = [
            "## Per-File Verification Results",
            "",
            f"**Total:** {s.total_verified} | **Passed:** {s.passed} | **Failed:** {s.failed}",
            "",
        ]
        if s.needing_rollback:
            lines.append(f"**⚠️ {s.needing_rollback} file(s) need rollback**")
            lines.append("")
        for path, result in self._verified.items():
            icon = "✅" if result.passed else ("🔄" if result.should_rollback else "❌")
            lines.append(f"{icon} `{path}` ({result.duration:.2f}s)")
            for error in result.errors[:3]:
                lines.append(f"   - Line {error.line}: {error.code} - {error.message}")
            if len(result.errors) > 3:
                lines.append(f"   - ... and {len(result.errors) - 3} more")
        return "\n".join(lines)

    def reset(self) -> None:
        self._verified.clear()
