"""Build/bundle adapter.

Bundler output has no single format, so several patterns are tried:
TypeScript diagnostics, missing modules, syntax errors, vite/rollup
messages, and a generic ``error:`` fallback used only when nothing more
specific matched.
"""

from __future__ import annotations

import re

from core.diagnostics.base import CommandAdapter, normalize_path
from core.diagnostics.models import DiagnosticError, DiagnosticFamily

_TS_PATTERNS = (
    re.compile(r"^(.+?)\((\d+),(\d+)\):\s*error\s+(TS\d+):\s*(.+)$", re.MULTILINE),
    re.compile(r"^(.+?):(\d+):(\d+)\s*-\s*error\s+(TS\d+):\s*(.+)$", re.MULTILINE),
)
_MODULE_PATTERN = re.compile(r"(?:Cannot find module|Module not found).*?['\"](.+?)['\"]", re.IGNORECASE)
_SYNTAX_PATTERN = re.compile(r"(?:SyntaxError|Unexpected token|Parsing error):?\s*(.+)", re.IGNORECASE)
_VITE_PATTERN = re.compile(r"\[vite\](?:\s*\[.*?\])?\s*(.+)", re.IGNORECASE)
_GENERIC_PATTERN = re.compile(r"^(?:error|ERROR|Error)(?:\s*\[.*?\])?:?\s*(.+)", re.MULTILINE)

MODULE_NOT_FOUND = "MODULE_NOT_FOUND"
SYNTAX_ERROR = "SYNTAX_ERROR"
BUNDLER_ERROR = "BUNDLER_ERROR"
BUILD_ERROR = "BUILD_ERROR"


def parse_build_output(output: str) -> list[DiagnosticError]:
    errors: list[DiagnosticError] = []

    for pattern in _TS_PATTERNS:
        for file, line, col, code, message in pattern.findall(output):
            errors.append(
                DiagnosticError(
                    code=code,
                    message=message.strip(),
                    file=normalize_path(file),
                    line=int(line),
                    column=int(col),
                )
            )

    for module in _MODULE_PATTERN.findall(output):
        errors.append(DiagnosticError(code=MODULE_NOT_FOUND, message=f"Cannot find module '{module}'"))

    for message in _SYNTAX_PATTERN.findall(output):
        errors.append(DiagnosticError(code=SYNTAX_ERROR, message=message.strip()))

    for message in _VITE_PATTERN.findall(output):
        errors.append(DiagnosticError(code=BUNDLER_ERROR, message=f"[vite] {message.strip()}"))

    if not errors:
        for message in _GENERIC_PATTERN.findall(output):
            errors.append(DiagnosticError(code=BUILD_ERROR, message=message.strip()))

    return errors


class BuildAdapter(CommandAdapter):
    family = DiagnosticFamily.BUILD
    name = "build"
    parse_on_success = False

    def parse(self, output: str) -> list[DiagnosticError]:
        return parse_build_output(output)
