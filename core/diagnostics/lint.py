"""ESLint and Stylelint adapters (JSON formatters, with a text fallback for Stylelint)."""

from __future__ import annotations

import json
import logging
import re
import shlex

from core.diagnostics.base import CommandAdapter, normalize_path
from core.diagnostics.models import (
    DiagnosticError,
    DiagnosticFamily,
    DiagnosticScope,
    Severity,
)

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_STYLE_FILE_LINE = re.compile(r"^(\S.*\.(?:css|scss|sass|less))$")
_STYLE_TEXT_LINE = re.compile(r"^\s*(\d+):(\d+)\s+(✖|⚠)\s+(.+?)\s{2,}(\S+)$")

ESLINT_UNKNOWN_RULE = "eslint"
STYLELINT_UNKNOWN_RULE = "unknown"


def relative_to(path: str, root: str | None) -> str:
    path = normalize_path(path)
    if root:
        prefix = normalize_path(root).rstrip("/") + "/"
        if path.startswith(prefix):
            return path[len(prefix):]
    return path


def parse_eslint_json(output: str, root: str | None = None) -> list[DiagnosticError]:
    """Parse ``eslint --format json``. Severity 2 is an error, 1 a warning."""
    match = _JSON_ARRAY.search(output)
    if not match:
        return []
    try:
        results = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("Unparseable ESLint JSON: %s", e)
        return []

    errors: list[DiagnosticError] = []
    for file_result in results:
        file = relative_to(file_result.get("filePath", ""), root)
        for msg in file_result.get("messages") or []:
            errors.append(
                DiagnosticError(
                    code=msg.get("ruleId") or ESLINT_UNKNOWN_RULE,
                    message=msg.get("message", ""),
                    file=file,
                    line=msg.get("line") or 1,
                    column=msg.get("column") or 1,
                    severity=Severity.ERROR if msg.get("severity") == 2 else Severity.WARNING,
                )
            )
    return errors


def parse_stylelint_output(output: str, root: str | None = None) -> list[DiagnosticError]:
    """Parse ``stylelint --formatter json``, falling back to the string formatter."""
    try:
        results = json.loads(output)
    except json.JSONDecodeError:
        return _parse_stylelint_text(output, root)
    if not isinstance(results, list):
        return []

    errors: list[DiagnosticError] = []
    for file_result in results:
        file = relative_to(file_result.get("source") or "", root)
        for warning in file_result.get("warnings") or []:
            errors.append(
                DiagnosticError(
                    code=warning.get("rule") or STYLELINT_UNKNOWN_RULE,
                    message=warning.get("text", ""),
                    file=file,
                    line=warning.get("line") or 1,
                    column=warning.get("column") or 1,
                    severity=Severity.ERROR if warning.get("severity") == "error" else Severity.WARNING,
                )
            )
    return errors


def _parse_stylelint_text(output: str, root: str | None) -> list[DiagnosticError]:
    errors: list[DiagnosticError] = []
    current_file = ""
    for line in output.splitlines():
        file_match = _STYLE_FILE_LINE.match(line.strip())
        if file_match:
            current_file = relative_to(file_match.group(1), root)
            continue
        match = _STYLE_TEXT_LINE.match(line)
        if match:
            line_no, col, icon, message, rule = match.groups()
            errors.append(
                DiagnosticError(
                    code=rule,
                    message=message,
                    file=current_file or "unknown",
                    line=int(line_no),
                    column=int(col),
                    severity=Severity.ERROR if icon == "✖" else Severity.WARNING,
                )
            )
    return errors


class _FileScopedAdapter(CommandAdapter):
    """Linters accept explicit files; a targeted scope appends them."""

    def build_command(self, scope: DiagnosticScope) -> str | None:
        if not self.command:
            return None
        if scope.is_targeted:
            return " ".join([self.command, *(shlex.quote(f) for f in scope.files)])
        return self.command


class EslintAdapter(_FileScopedAdapter):
    family = DiagnosticFamily.LINT
    name = "eslint"

    def is_clean_exit(self, result) -> bool:
        return result.exit_code == 0 or "No files matching" in result.stdout

    def parse(self, output: str) -> list[DiagnosticError]:
        return parse_eslint_json(output, self.host.working_dir)


class StylelintAdapter(_FileScopedAdapter):
    family = DiagnosticFamily.STYLE_LINT
    name = "stylelint"

    def is_clean_exit(self, result) -> bool:
        return result.exit_code == 0 or "No files matching" in result.stdout

    def parse(self, output: str) -> list[DiagnosticError]:
        return parse_stylelint_output(output, self.host.working_dir)
