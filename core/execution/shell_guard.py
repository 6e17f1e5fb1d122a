"""Shell guard - classifies shell actions before they run.

Three outcomes:
- allow:   run the command as-is
- rewrite: a pure file-deletion command (rm/rmdir/unlink) becomes one
           tracked delete action per path, so the deletion can be undone
- block:   history rewrites, hard resets, force pushes, custom patterns,
           and deletions that cannot be tracked (globs, paths outside the
           project, deletes chained with other commands)
"""

from __future__ import annotations

import logging
import posixpath
import re
import shlex
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

DELETE_COMMANDS = frozenset({"rm", "rmdir", "unlink"})
_SEPARATORS = frozenset({"&&", ";", "||"})
_DELETE_LAUNCHERS = frozenset({"|", "xargs", "sudo", "exec", "nohup", "-exec"})
_GLOB_CHARS = re.compile(r"[*?\[\]{}]")


class ShellVerdict(str, Enum):
    ALLOW = "allow"
    REWRITE = "rewrite"
    BLOCK = "block"


@dataclass
class ShellDecision:
    verdict: ShellVerdict
    reason: str = ""
    delete_paths: list[str] = field(default_factory=list)
    pattern: str | None = None

    @classmethod
    def allow_command(cls) -> ShellDecision:
        return cls(ShellVerdict.ALLOW)

    @classmethod
    def block_command(cls, reason: str, pattern: str | None = None) -> ShellDecision:
        return cls(ShellVerdict.BLOCK, reason=reason, pattern=pattern)

    @classmethod
    def rewrite_as_deletes(cls, paths: list[str]) -> ShellDecision:
        return cls(
            ShellVerdict.REWRITE,
            reason=f"Rewritten into {len(paths)} tracked delete action(s)",
            delete_paths=paths,
        )

    @property
    def allowed(self) -> bool:
        return self.verdict != ShellVerdict.BLOCK


class ShellGuard:
    """Destructive-command policy for shell actions."""

    DEFAULT_BLOCKED_COMMANDS = [
        (r"\bgit\s+push\b.*(?:\s--force(?:-with-lease)?\b|\s-[a-zA-Z]*f\b)", "force push rewrites remote history"),
        (r"\bgit\s+reset\b.*\s--hard\b", "hard reset discards working-tree changes"),
        (r"\bgit\s+rebase\b", "rebase rewrites history"),
        (r"\bgit\s+filter-branch\b", "filter-branch rewrites history"),
        (r"\bgit\s+filter-repo\b", "filter-repo rewrites history"),
        (r"\bgit\s+commit\b.*\s--amend\b", "amend rewrites the last commit"),
        (r"\bgit\s+clean\b.*\s-[a-zA-Z]*f", "git clean deletes untracked files"),
        (r"\bgit\s+checkout\s+(?:--\s+)?\.(?:\s|$)", "checkout of . discards working-tree changes"),
    ]

    def __init__(
        self,
        block_destructive: bool = True,
        intercept_deletes: bool = True,
        custom_blocked: list[str] | None = None,
    ):
        self.intercept_deletes = intercept_deletes
        patterns: list[tuple[str, str]] = []
        if block_destructive:
            patterns.extend(self.DEFAULT_BLOCKED_COMMANDS)
        for custom in custom_blocked or []:
            patterns.append((custom, "matches a blocked pattern"))
        self.compiled_patterns = [(re.compile(p, re.IGNORECASE), reason) for p, reason in patterns]

    def check_command(self, command: str) -> ShellDecision:
        command = command.strip()
        for pattern, reason in self.compiled_patterns:
            if pattern.search(command):
                logger.warning("Blocked shell command %r: %s", command[:100], reason)
                return ShellDecision.block_command(reason, pattern=pattern.pattern)

        if not self.intercept_deletes:
            return ShellDecision.allow_command()

        try:
            segments = split_segments(command)
        except ValueError as e:
            if any(tok in command.split() for tok in DELETE_COMMANDS):
                return ShellDecision.block_command(f"cannot parse delete command: {e}")
            return ShellDecision.allow_command()

        deleting = [seg for seg in segments if seg and seg[0] in DELETE_COMMANDS]
        if not deleting:
            for seg in segments:
                for prev, token in zip(seg, seg[1:]):
                    if token in DELETE_COMMANDS and prev in _DELETE_LAUNCHERS:
                        return ShellDecision.block_command(f"'{prev} {token}' cannot be tracked")
            return ShellDecision.allow_command()
        if len(deleting) != len(segments):
            return ShellDecision.block_command("delete chained with other commands cannot be tracked")

        paths: list[str] = []
        for segment in deleting:
            operands, error = delete_operands(segment)
            if error:
                return ShellDecision.block_command(error)
            paths.extend(operands)
        if not paths:
            return ShellDecision.block_command("delete command without paths")

        for path in paths:
            error = untrackable_reason(path)
            if error:
                return ShellDecision.block_command(error)
        return ShellDecision.rewrite_as_deletes(paths)


def split_segments(command: str) -> list[list[str]]:
    """Split on ``&&``, ``;`` and ``||``. Pipes stay inside a segment."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    segments: list[list[str]] = [[]]
    for token in lexer:
        if token in _SEPARATORS:
            segments.append([])
        else:
            segments[-1].append(token)
    return [seg for seg in segments if seg]


def delete_operands(segment: list[str]) -> tuple[list[str], str | None]:
    """Paths named by an rm/rmdir/unlink segment."""
    operands: list[str] = []
    options_done = False
    for token in segment[1:]:
        if token in ("|", "&", ">", ">>", "<"):
            return [], "delete command with redirection or pipes cannot be tracked"
        if not options_done and token == "--":
            options_done = True
            continue
        if not options_done and token.startswith("-") and token != "-":
            continue
        operands.append(token)
    return operands, None


def untrackable_reason(path: str) -> str | None:
    if _GLOB_CHARS.search(path):
        return f"glob in delete path cannot be tracked: {path}"
    if path.startswith("/") or path.startswith("~") or "$" in path:
        return f"delete outside the project is not allowed: {path}"
    normalized = posixpath.normpath(path)
    if normalized == "." or normalized == ".." or normalized.startswith("../"):
        return f"delete outside the project is not allowed: {path}"
    return None
