"""Environment-variable scan.

Finds ``process.env.X`` and ``import.meta.env.X`` references in source
files and checks them against the project's ``.env*`` files. A variable
that is referenced, not defined, and has no inline fallback is an error;
with a fallback it is a warning.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.diagnostics.base import DiagnosticAdapter
from core.diagnostics.circular import walk_sources
from core.diagnostics.models import (
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
    Severity,
)

if TYPE_CHECKING:
    from sandbox.interfaces.filesystem import FileSystemBackend

logger = logging.getLogger(__name__)

ENV_MISSING = "ENV_MISSING"
ENV_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
DEFAULT_ENV_FILES = [".env", ".env.local", ".env.development", ".env.production", ".env.example"]
SYSTEM_ENV_VARS = frozenset({"NODE_ENV", "PUBLIC_URL", "BASE_URL", "MODE", "DEV", "PROD", "SSR"})

_USAGE_PATTERNS = (
    re.compile(r"process\.env\.([A-Z_][A-Z0-9_]*)"),
    re.compile(r"process\.env\[['\"]([A-Z_][A-Z0-9_]*)['\"]\]"),
    re.compile(r"import\.meta\.env\.([A-Z_][A-Z0-9_]*)"),
    re.compile(r"import\.meta\.env\[['\"]([A-Z_][A-Z0-9_]*)['\"]\]"),
)
_FALLBACK = re.compile(r"^\s*(?:\|\||\?\?)\s*(?:['\"`]|\w)")
_DEFINITION = re.compile(r"^(?:export\s+)?([A-Z_][A-Z0-9_]*)\s*=")


@dataclass
class EnvUsage:
    name: str
    file: str
    line: int
    expression: str
    has_fallback: bool


def find_env_usages(source: str, file: str) -> list[EnvUsage]:
    usages: list[EnvUsage] = []
    for line_no, line in enumerate(source.splitlines(), 1):
        for pattern in _USAGE_PATTERNS:
            for match in pattern.finditer(line):
                usages.append(
                    EnvUsage(
                        name=match.group(1),
                        file=file,
                        line=line_no,
                        expression=match.group(0),
                        has_fallback=bool(_FALLBACK.match(line[match.end():])),
                    )
                )
    return usages


def parse_env_file(content: str) -> set[str]:
    names: set[str] = set()
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _DEFINITION.match(line)
        if match:
            names.add(match.group(1))
    return names


class EnvVarAdapter(DiagnosticAdapter):
    family = DiagnosticFamily.ENV
    name = "env-vars"

    def __init__(
        self,
        fs: FileSystemBackend,
        source_dirs: list[str],
        skip_dirs: list[str],
        env_files: list[str] | None = None,
        ignore: list[str] | None = None,
    ):
        self.fs = fs
        self.source_dirs = source_dirs
        self.skip_dirs = skip_dirs
        self.env_files = env_files or DEFAULT_ENV_FILES
        self.ignore = SYSTEM_ENV_VARS | set(ignore or [])

    def defined_names(self) -> set[str]:
        names: set[str] = set()
        for env_file in self.env_files:
            content = self.fs.read_text(env_file)
            if content is not None:
                names |= parse_env_file(content)
        return names

    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        start = time.monotonic()
        if scope is not None and scope.is_targeted:
            files = [f for f in scope.files if f.endswith(ENV_EXTENSIONS)]
        else:
            files = walk_sources(self.fs, self.source_dirs, self.skip_dirs, ENV_EXTENSIONS)
        if not files:
            return CollectionResult.skip(self.family, "no source files found")

        usages: list[EnvUsage] = []
        for file in files:
            source = self.fs.read_text(file)
            if source is not None:
                usages.extend(find_env_usages(source, file))

        defined = self.defined_names()
        errors: list[DiagnosticError] = []
        warnings: list[DiagnosticError] = []
        for usage in usages:
            if usage.name in self.ignore or usage.name in defined:
                continue
            if usage.has_fallback:
                warnings.append(
                    DiagnosticError(
                        code=ENV_MISSING,
                        message=f"{usage.expression} is not defined in any .env file (fallback used)",
                        file=usage.file,
                        line=usage.line,
                        severity=Severity.WARNING,
                    )
                )
            else:
                errors.append(
                    DiagnosticError(
                        code=ENV_MISSING,
                        message=f"{usage.expression} is not defined in any .env file",
                        file=usage.file,
                        line=usage.line,
                    )
                )

        logger.debug("Env scan: %d usage(s), %d missing", len(usages), len(errors))
        return CollectionResult(
            family=self.family,
            success=not errors,
            errors=errors,
            warnings=warnings,
            duration=time.monotonic() - start,
        )
