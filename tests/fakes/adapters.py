"""Diagnostic adapters whose findings are set directly by the test."""

from __future__ import annotations

import asyncio

from core.diagnostics.base import DiagnosticAdapter
from core.diagnostics.models import (
    TOOL_ERROR_CODE,
    CollectionResult,
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
)


class StaticAdapter(DiagnosticAdapter):
    """Reports ``errors`` on every run; a targeted scope filters them by file."""

    def __init__(self, family: DiagnosticFamily, errors: list[DiagnosticError] | None = None):
        self.family = family
        self.errors = list(errors or [])
        self.crash = False
        self.delay = 0.0
        self.raises: Exception | None = None
        self.scopes: list[DiagnosticScope | None] = []

    async def collect(self, scope: DiagnosticScope | None = None) -> CollectionResult:
        self.scopes.append(scope)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.crash:
            return CollectionResult(
                family=self.family,
                success=False,
                errors=[DiagnosticError(code=TOOL_ERROR_CODE, message="tool exited with code 1")],
                crashed=True,
            )
        errors = self.errors
        if scope is not None and scope.is_targeted:
            errors = [e for e in errors if e.file in scope.files]
        return CollectionResult(family=self.family, success=not errors, errors=list(errors))


def ts_error(file: str, line: int, code: str = "TS2304", message: str = "Cannot find name 'x'.") -> DiagnosticError:
    return DiagnosticError(code=code, message=message, file=file, line=line)
