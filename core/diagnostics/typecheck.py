"""TypeScript compiler adapter (``tsc --noEmit --pretty false``)."""

from __future__ import annotations

import logging
import posixpath
import re
import shlex
from typing import TYPE_CHECKING

from core.diagnostics.base import CommandAdapter, DiagnosticAdapter, normalize_path
from core.diagnostics.models import (
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
    Severity,
)
from core.diagnostics.project_refs import uses_project_references
from core.events import VerificationListener, as_listener

if TYPE_CHECKING:
    from config.schema import PackageSpec
    from sandbox.base import ExecutionHost

logger = logging.getLogger(__name__)

# src/app.ts(12,5): error TS2304: Cannot find name 'foo'.
TSC_ERROR_PATTERN = re.compile(r"^(.+?)\((\d+),(\d+)\):\s*(error|warning)\s+(TS\d+):\s*(.+)$")
# src/app.ts:12:5 - error TS2304: Cannot find name 'foo'.
TSC_ERROR_PATTERN_ALT = re.compile(r"^(.+?):(\d+):(\d+)\s*-\s*(error|warning)\s+(TS\d+):\s*(.+)$")


def parse_tsc_output(output: str) -> list[DiagnosticError]:
    errors: list[DiagnosticError] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        match = TSC_ERROR_PATTERN.match(line) or TSC_ERROR_PATTERN_ALT.match(line)
        if not match:
            continue
        file, line_no, col, severity, code, message = match.groups()
        errors.append(
            DiagnosticError(
                code=code,
                message=message.strip(),
                file=normalize_path(file),
                line=int(line_no),
                column=int(col),
                severity=Severity.WARNING if severity == "warning" else Severity.ERROR,
            )
        )
    return errors


class TypeCheckAdapter(CommandAdapter):
    """Single-project type check, switching to build mode for project references.

    A targeted scope appends the files to the single-project command.
    """

    family = DiagnosticFamily.TYPE_CHECK
    name = "tsc"

    def __init__(
        self,
        host: ExecutionHost,
        command: str | None,
        build_mode_command: str | None = None,
        timeout: float = 60.0,
        cwd: str | None = None,
        listener: VerificationListener | None = None,
        detect_project_references: bool = True,
        tsconfig: str = "tsconfig.json",
    ):
        super().__init__(host, command, timeout=timeout, cwd=cwd, listener=listener)
        self.build_mode_command = build_mode_command
        self.detect_project_references = detect_project_references
        self.tsconfig = posixpath.join(cwd, tsconfig) if cwd and cwd != "." else tsconfig

    def build_command(self, scope: DiagnosticScope) -> str | None:
        if not self.command:
            return None
        if scope.is_targeted:
            return " ".join([self.command, *(shlex.quote(f) for f in scope.files)])
        if (
            self.detect_project_references
            and self.build_mode_command
            and uses_project_references(self.host.fs, self.tsconfig)
        ):
            logger.info("Project references detected in %s; using build mode", self.tsconfig)
            return self.build_mode_command
        return self.command

    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        if self.command and not self.host.fs.file_exists(self.tsconfig):
            return CollectionResult.skip(self.family, f"no {self.tsconfig}")
        return await super().collect(scope)

    def parse(self, output: str) -> list[DiagnosticError]:
        return parse_tsc_output(output)


class MonorepoTypeCheckAdapter(DiagnosticAdapter):
    """Type-checks each package separately and aggregates path-prefixed results."""

    family = DiagnosticFamily.TYPE_CHECK
    name = "tsc (workspace)"

    def __init__(
        self,
        host: ExecutionHost,
        packages: list[PackageSpec],
        command: str | None,
        build_mode_command: str | None = None,
        timeout: float = 60.0,
        listener: VerificationListener | None = None,
        detect_project_references: bool = True,
    ):
        self.host = host
        self.packages = packages
        self.listener = as_listener(listener)
        self.adapters = {
            pkg.path: TypeCheckAdapter(
                host,
                command,
                build_mode_command=build_mode_command,
                timeout=timeout,
                cwd=pkg.path,
                listener=listener,
                detect_project_references=detect_project_references,
            )
            for pkg in packages
            if pkg.has_tsconfig
        }

    def _package_for(self, path: str) -> str | None:
        best = None
        for pkg_path in self.adapters:
            prefix = pkg_path.rstrip("/") + "/"
            if path.startswith(prefix) and (best is None or len(pkg_path) > len(best)):
                best = pkg_path
        return best

    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        scope = scope or DiagnosticScope()
        if not self.adapters:
            return CollectionResult.skip(self.family, "no package has a tsconfig")

        targets: dict[str, DiagnosticScope] = {}
        if scope.package:
            if scope.package in self.adapters:
                targets[scope.package] = DiagnosticScope()
        elif scope.is_targeted:
            for file in scope.files:
                pkg_path = self._package_for(file)
                if pkg_path is None:
                    continue
                targets.setdefault(pkg_path, DiagnosticScope()).files.append(file[len(pkg_path.rstrip("/")) + 1:])
        else:
            targets = {pkg_path: DiagnosticScope() for pkg_path in self.adapters}

        results: list[CollectionResult] = []
        for pkg_path, pkg_scope in targets.items():
            self.listener.on_progress(f"Type-checking {pkg_path}...")
            result = await self.adapters[pkg_path].collect(pkg_scope)
            result.errors = [e.with_file_prefix(pkg_path) for e in result.errors]
            result.warnings = [w.with_file_prefix(pkg_path) for w in result.warnings]
            results.append(result)

        if not results:
            return CollectionResult.skip(self.family, "no package matches the requested scope")
        return CollectionResult.merge(self.family, results)
