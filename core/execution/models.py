"""Data types for queued actions, backups and execution history."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum


class ActionKind(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    SHELL = "shell"


class ActionStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


FILE_KINDS = (ActionKind.CREATE, ActionKind.MODIFY, ActionKind.DELETE)


@dataclass(frozen=True)
class Action:
    """One requested mutation. File kinds carry ``path``; shell carries ``command``."""

    kind: ActionKind
    path: str | None = None
    content: str | None = None
    command: str | None = None

    def __post_init__(self) -> None:
        if self.kind == ActionKind.SHELL:
            if not self.command or not self.command.strip():
                raise ValueError("shell action requires a command")
        else:
            if not self.path:
                raise ValueError(f"{self.kind.value} action requires a path")
            if self.kind != ActionKind.DELETE and self.content is None:
                raise ValueError(f"{self.kind.value} action requires content")

    @classmethod
    def create(cls, path: str, content: str) -> Action:
        return cls(ActionKind.CREATE, path=path, content=content)

    @classmethod
    def modify(cls, path: str, content: str) -> Action:
        return cls(ActionKind.MODIFY, path=path, content=content)

    @classmethod
    def delete(cls, path: str) -> Action:
        return cls(ActionKind.DELETE, path=path)

    @classmethod
    def shell(cls, command: str) -> Action:
        return cls(ActionKind.SHELL, command=command)

    @property
    def is_file_action(self) -> bool:
        return self.kind in FILE_KINDS

    def describe(self) -> str:
        if self.kind == ActionKind.SHELL:
            return f"shell: {self.command}"
        return f"{self.kind.value} {self.path}"


@dataclass(frozen=True)
class FileBackup:
    """Pre-image of a path, captured before it was written or deleted.

    ``prior_content`` None means nothing existed at the path. A directory
    backup keeps every file beneath it in ``directory_contents`` keyed by
    project-relative path.
    """

    path: str
    prior_content: str | None
    captured_at: float = field(default_factory=time.time)
    directory_contents: dict[str, str] | None = None

    @property
    def existed(self) -> bool:
        return self.prior_content is not None or self.directory_contents is not None

    @property
    def is_directory(self) -> bool:
        return self.directory_contents is not None


@dataclass(frozen=True)
class LineDiff:
    added: int
    removed: int
    unchanged: int

    def __str__(self) -> str:
        return f"+{self.added} -{self.removed}"


def line_diff(old: str | None, new: str) -> LineDiff:
    """Line-set comparison for display; not a real diff algorithm."""
    new_lines = new.split("\n")
    if old is None:
        return LineDiff(added=len(new_lines), removed=0, unchanged=0)
    old_lines = old.split("\n")
    old_set = set(old_lines)
    new_set = set(new_lines)
    unchanged = sum(1 for line in new_lines if line in old_set)
    return LineDiff(
        added=len(new_lines) - unchanged,
        removed=sum(1 for line in old_lines if line not in new_set),
        unchanged=unchanged,
    )


def generate_action_id() -> str:
    return f"action_{int(time.time() * 1000)}_{uuid.uuid4().hex[:5]}"


@dataclass
class QueuedAction:
    """An Action plus queue bookkeeping. Only the executor mutates it."""

    action: Action
    id: str = field(default_factory=generate_action_id)
    queued_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None
    status: ActionStatus = ActionStatus.PENDING
    backup: FileBackup | None = None
    error: str | None = None

    @property
    def kind(self) -> ActionKind:
        return self.action.kind

    @property
    def path(self) -> str | None:
        return self.action.path


@dataclass
class ActionResult:
    kind: ActionKind
    success: bool
    path: str | None = None
    command: str | None = None
    exit_code: int | None = None
    error: str | None = None
    diff: LineDiff | None = None
    output: str = ""
    # The write was undone by per-write verification before reporting
    restored: bool = False
    # Ids of the tracked delete actions a shell command was rewritten into
    replaced_by: list[str] = field(default_factory=list)


@dataclass
class ExecutionHistoryEntry:
    id: str
    action: QueuedAction
    result: ActionResult
    timestamp: float = field(default_factory=time.time)
    can_rollback: bool = False
