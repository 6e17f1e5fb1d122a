"""Adapter interfaces for diagnostics tool families."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from core.diagnostics.models import (
    TIMEOUT_CODE,
    TOOL_ERROR_CODE,
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
    Severity,
)
from core.events import VerificationListener, as_listener

if TYPE_CHECKING:
    from sandbox.base import ExecutionHost
    from sandbox.interfaces.executor import ExecuteResult

logger = logging.getLogger(__name__)

# How much of a crashed tool's output ends up in the synthetic error message
_CRASH_TAIL = 500


def dedupe_errors(errors: list[DiagnosticError]) -> list[DiagnosticError]:
    """Drop repeats of the same (file, line, code), keeping first-seen order.

    Findings without a location also key on their message so that distinct
    unlocated errors from one tool are not collapsed into one.
    """
    seen: set[tuple] = set()
    unique: list[DiagnosticError] = []
    for error in errors:
        key: tuple = error.key if error.is_located else (*error.key, error.message)
        if key in seen:
            continue
        seen.add(key)
        unique.append(error)
    return unique


def normalize_path(path: str) -> str:
    """Forward slashes, no leading ``./``."""
    path = path.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


class DiagnosticAdapter(ABC):
    """One tool family.

    ``collect`` never raises for tool problems: skips, timeouts and crashes
    come back as CollectionResult values.
    """

    family: DiagnosticFamily
    name: str = "adapter"

    @abstractmethod
    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        """Run the check and return parsed findings."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(family={self.family.value})>"


class CommandAdapter(DiagnosticAdapter):
    """Adapter that runs one external command and parses its output.

    Subclasses implement ``parse``; ``build_command`` may be overridden to
    add scope-specific arguments. A command of None means the tool is not
    configured and the family is skipped.
    """

    # Build logs from a successful run are noise, not findings
    parse_on_success: bool = True

    def __init__(
        self,
        host: ExecutionHost,
        command: str | None,
        timeout: float = 60.0,
        cwd: str | None = None,
        listener: VerificationListener | None = None,
    ):
        self.host = host
        self.command = command
        self.timeout = timeout
        self.cwd = cwd
        self.listener = as_listener(listener)

    @abstractmethod
    def parse(self, output: str) -> list[DiagnosticError]:
        """Recover findings from raw tool output."""
        ...

    def build_command(self, scope: DiagnosticScope) -> str | None:
        return self.command

    def is_clean_exit(self, result: ExecuteResult) -> bool:
        return result.exit_code == 0

    def finish(self, collection: CollectionResult, output: str) -> CollectionResult:
        """Hook for adapters that extract more than findings (test counts)."""
        return collection

    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        scope = scope or DiagnosticScope()
        command = self.build_command(scope)
        if not command:
            return CollectionResult.skip(self.family, f"{self.name} is not configured")

        logger.debug("Running %s: %s", self.name, command)
        start = time.monotonic()
        try:
            result = await self.host.executor.execute(
                command,
                cwd=self.cwd,
                timeout=self.timeout,
                on_output=self.listener.on_terminal_output,
            )
        except Exception as e:
            logger.warning("%s failed to start: %s", self.name, e)
            return CollectionResult(
                family=self.family,
                success=False,
                errors=[DiagnosticError(code=TOOL_ERROR_CODE, message=f"{self.name} failed to start: {e}")],
                duration=time.monotonic() - start,
                crashed=True,
            )
        duration = time.monotonic() - start

        if result.timed_out:
            return CollectionResult(
                family=self.family,
                success=False,
                errors=[
                    DiagnosticError(
                        code=TIMEOUT_CODE,
                        message=f"{self.name} timed out after {self.timeout}s",
                    )
                ],
                raw=result.stdout,
                duration=duration,
                timed_out=True,
            )

        if self.parse_on_success or not self.is_clean_exit(result):
            findings = dedupe_errors(self.parse(result.stdout))
        else:
            findings = []
        errors = [f for f in findings if f.severity == Severity.ERROR]
        warnings = [f for f in findings if f.severity == Severity.WARNING]

        if not findings and not self.is_clean_exit(result):
            tail = result.stdout.strip()[-_CRASH_TAIL:]
            logger.warning("%s exited %s without parseable output", self.name, result.exit_code)
            return self.finish(
                CollectionResult(
                    family=self.family,
                    success=False,
                    errors=[
                        DiagnosticError(
                            code=TOOL_ERROR_CODE,
                            message=f"{self.name} exited with code {result.exit_code}: {tail}".rstrip(": "),
                        )
                    ],
                    raw=result.stdout,
                    duration=duration,
                    crashed=True,
                ),
                result.stdout,
            )

        return self.finish(
            CollectionResult(
                family=self.family,
                success=not errors,
                errors=errors,
                warnings=warnings,
                raw=result.stdout,
                duration=duration,
            ),
            result.stdout,
        )
