"""Action execution: mutation log, shell guard, sequential action executor."""

from core.execution.action_executor import ActionExecutor, ExecutorState
from core.execution.errors import ActionError, DestructiveCommandBlocked, RestoreError
from core.execution.models import (
    Action,
    ActionKind,
    ActionResult,
    ActionStatus,
    ExecutionHistoryEntry,
    FileBackup,
    LineDiff,
    QueuedAction,
    line_diff,
)
from core.execution.mutation_log import MutationLog
from core.execution.shell_guard import ShellDecision, ShellGuard, ShellVerdict

__all__ = [
    "Action",
    "ActionError",
    "ActionExecutor",
    "ActionKind",
    "ActionResult",
    "ActionStatus",
    "DestructiveCommandBlocked",
    "ExecutionHistoryEntry",
    "ExecutorState",
    "FileBackup",
    "LineDiff",
    "MutationLog",
    "QueuedAction",
    "RestoreError",
    "ShellDecision",
    "ShellGuard",
    "ShellVerdict",
    "line_diff",
]
