"""ActionExecutor - applies queued actions to the project one at a time.

Every file mutation is preceded by a backup in the mutation log, so any
successful file action can be rolled back individually. Shell commands
go through the shell guard first.

Usage:
    executor = ActionExecutor(host, listener=listener)
    executor.enqueue([Action.create("src/a.ts", "export {}"), Action.shell("npm install")])
    await executor.drain()
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.events import CYAN, GREEN, RED, YELLOW, VerificationListener, as_listener, colorize
from core.execution.errors import ActionError, DestructiveCommandBlocked, RestoreError
from core.execution.models import (
    Action,
    ActionKind,
    ActionResult,
    ActionStatus,
    ExecutionHistoryEntry,
    QueuedAction,
    line_diff,
)
from core.execution.mutation_log import MutationLog, ensure_parent
from core.execution.shell_guard import ShellGuard, ShellVerdict

if TYPE_CHECKING:
    from config.schema import ExecutorConfig
    from core.verification.per_file import PerFileVerifier
    from core.verification.rollback import RollbackController
    from sandbox.base import ExecutionHost

logger = logging.getLogger(__name__)


@dataclass
class ExecutorState:
    """Point-in-time view of the executor."""

    pending: list[QueuedAction] = field(default_factory=list)
    executing: QueuedAction | None = None
    completed: list[QueuedAction] = field(default_factory=list)
    failed: list[QueuedAction] = field(default_factory=list)
    history: list[ExecutionHistoryEntry] = field(default_factory=list)


class ActionExecutor:
    """Sequential FIFO executor. One instance per project session."""

    def __init__(
        self,
        host: ExecutionHost,
        config: ExecutorConfig | None = None,
        listener: VerificationListener | None = None,
        verifier: PerFileVerifier | None = None,
        change_tracker: RollbackController | None = None,
        shell_guard: ShellGuard | None = None,
    ):
        if config is None:
            from config.schema import ExecutorConfig

            config = ExecutorConfig()
        self.host = host
        self.config = config
        self.listener = as_listener(listener)
        self.verifier = verifier
        self.change_tracker = change_tracker
        self.shell_guard = shell_guard or ShellGuard(
            block_destructive=config.block_destructive,
            intercept_deletes=config.intercept_deletes,
            custom_blocked=config.custom_blocked,
        )
        self.mutation_log = MutationLog(host.fs)

        self._queue: deque[QueuedAction] = deque()
        self._executing: QueuedAction | None = None
        self._completed: list[QueuedAction] = []
        self._failed: list[QueuedAction] = []
        self._history: deque[ExecutionHistoryEntry] = deque(maxlen=config.max_history)
        self._processing = False

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(self, actions: list[Action]) -> list[QueuedAction]:
        """Append actions to the queue. Nothing runs until ``drain``."""
        queued = [QueuedAction(action=a) for a in actions]
        self._queue.extend(queued)
        logger.debug("Enqueued %d action(s), %d pending", len(queued), len(self._queue))
        return queued

    async def execute(self, actions: list[Action]) -> list[ActionResult]:
        """Enqueue and drain; returns the results for these actions in order."""
        queued = self.enqueue(actions)
        processed = await self.drain()
        by_id = {entry.id: entry.result for entry in processed}
        return [by_id[q.id] for q in queued if q.id in by_id]

    async def drain(self) -> list[ExecutionHistoryEntry]:
        """Process the queue until empty. Re-entrant calls return immediately."""
        if self._processing:
            logger.debug("drain() called while already processing; ignoring")
            return []

        self._processing = True
        processed: list[ExecutionHistoryEntry] = []
        try:
            while self._queue:
                queued = self._queue.popleft()
                processed.append(await self._process(queued))
        finally:
            self._processing = False
            self._executing = None
        return processed

    async def _process(self, queued: QueuedAction) -> ExecutionHistoryEntry:
        queued.started_at = time.time()
        queued.status = ActionStatus.EXECUTING
        self._executing = queued
        self.listener.on_action_start(queued)

        try:
            result = await self._run(queued)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.warning("Action %s failed: %s", queued.action.describe(), message)
            result = ActionResult(
                kind=queued.kind,
                success=False,
                path=queued.path,
                command=queued.action.command,
                error=message,
            )
            self._finish(queued, result)
            entry = self._add_to_history(queued, result)
            self.listener.on_action_error(queued, message)
            return entry

        self._finish(queued, result)
        entry = self._add_to_history(queued, result)
        self.listener.on_action_complete(queued, result)
        return entry

    def _finish(self, queued: QueuedAction, result: ActionResult) -> None:
        queued.completed_at = time.time()
        queued.status = ActionStatus.SUCCESS if result.success else ActionStatus.ERROR
        if result.success:
            self._completed.append(queued)
        else:
            queued.error = result.error
            self._failed.append(queued)
        self._executing = None

    def _add_to_history(self, queued: QueuedAction, result: ActionResult) -> ExecutionHistoryEntry:
        entry = ExecutionHistoryEntry(
            id=queued.id,
            action=queued,
            result=result,
            can_rollback=(
                queued.action.is_file_action
                and result.success
                and queued.backup is not None
            ),
        )
        self._history.appendleft(entry)
        return entry

    # ------------------------------------------------------------------
    # Action kinds
    # ------------------------------------------------------------------

    async def _run(self, queued: QueuedAction) -> ActionResult:
        if queued.kind == ActionKind.SHELL:
            return await self._run_shell(queued)
        if queued.kind == ActionKind.DELETE:
            return self._run_delete(queued)
        return await self._run_write(queued)

    def _track(self, path: str, kind: ActionKind, new_content: str | None) -> None:
        tracker = self.change_tracker
        if tracker is not None and tracker.is_tracking:
            tracker.record_change(path, kind, new_content)

    async def _run_write(self, queued: QueuedAction) -> ActionResult:
        fs = self.host.fs
        path = queued.path
        content = queued.action.content
        assert path is not None and content is not None

        if fs.is_dir(path):
            raise ActionError(f"{path} is a directory", path=path)

        self._track(path, queued.kind, content)
        queued.backup = self.mutation_log.capture(path)
        prior = queued.backup.prior_content

        self.listener.on_progress(f"Writing {path}...")
        self.listener.on_terminal_output(colorize(f"[patchwarden] Writing {path}...", CYAN))

        ensure_parent(fs, path)
        written = fs.write_file(path, content)
        if not written.success:
            self.listener.on_terminal_output(colorize(f"[patchwarden] ✗ Failed to write {path}: {written.error}", RED))
            raise ActionError(written.error or f"write failed: {path}", path=path)

        diff = line_diff(prior, content)
        verb = "Updated" if prior is not None else "Created"
        self.listener.on_terminal_output(colorize(f"[patchwarden] ✓ {verb} {path} ({diff})", GREEN))
        self.listener.on_filesystem_change()

        result = ActionResult(kind=queued.kind, success=True, path=path, diff=diff)
        if self.config.verify_writes and self.verifier is not None:
            result = await self._verify_write(queued, result)
        return result

    async def _verify_write(self, queued: QueuedAction, result: ActionResult) -> ActionResult:
        assert queued.path is not None and queued.backup is not None
        check = await self.verifier.verify_file(queued.path)
        if not check.should_rollback:
            return result

        reason = check.rollback_reason or "verification failed"
        logger.info("Restoring %s after failed verification: %s", queued.path, reason)
        try:
            self.mutation_log.restore(queued.backup)
        except RestoreError as e:
            logger.warning("%s", e)
            return ActionResult(
                kind=queued.kind,
                success=False,
                path=queued.path,
                diff=result.diff,
                error=f"Verification failed ({reason}) and restore failed: {e}",
            )

        self.listener.on_terminal_output(colorize(f"[patchwarden] ↩ Restored {queued.path}: {reason}", YELLOW))
        self.listener.on_filesystem_change()
        return ActionResult(
            kind=queued.kind,
            success=False,
            path=queued.path,
            diff=result.diff,
            error=f"Verification failed: {reason}",
            restored=True,
        )

    def _run_delete(self, queued: QueuedAction) -> ActionResult:
        fs = self.host.fs
        path = queued.path
        assert path is not None

        if not fs.file_exists(path):
            logger.debug("Delete of missing path %s is a no-op", path)
            return ActionResult(kind=ActionKind.DELETE, success=True, path=path)

        self._track(path, ActionKind.DELETE, None)
        queued.backup = self.mutation_log.capture(path)
        fs.remove(path, recursive=queued.backup.is_directory)

        self.listener.on_terminal_output(colorize(f"[patchwarden] ✓ Deleted {path}", GREEN))
        self.listener.on_filesystem_change()
        return ActionResult(kind=ActionKind.DELETE, success=True, path=path)

    async def _run_shell(self, queued: QueuedAction) -> ActionResult:
        command = (queued.action.command or "").strip()
        decision = self.shell_guard.check_command(command)

        if decision.verdict == ShellVerdict.BLOCK:
            self.listener.on_terminal_output(colorize(f"[patchwarden] ✗ Blocked: {command} ({decision.reason})", RED))
            raise DestructiveCommandBlocked(command, decision.reason)

        if decision.verdict == ShellVerdict.REWRITE:
            deletes = [QueuedAction(action=Action.delete(p)) for p in decision.delete_paths]
            # Run the rewritten deletes next, ahead of anything queued later
            self._queue.extendleft(reversed(deletes))
            self.listener.on_terminal_output(
                colorize(f"[patchwarden] {command} → {len(deletes)} tracked delete(s)", CYAN)
            )
            return ActionResult(
                kind=ActionKind.SHELL,
                success=True,
                command=command,
                output=decision.reason,
                replaced_by=[d.id for d in deletes],
            )

        self.listener.on_progress(f"Running: {command}...")
        self.listener.on_terminal_output(colorize(f"[patchwarden] Running: {command}", CYAN))
        executed = await self.host.executor.execute(
            command,
            timeout=self.config.shell_timeout,
            on_output=self.listener.on_terminal_output,
        )
        if executed.timed_out:
            self.listener.on_terminal_output(colorize(f"[patchwarden] ✗ Timed out: {command}", RED))
            return ActionResult(
                kind=ActionKind.SHELL,
                success=False,
                command=command,
                exit_code=executed.exit_code,
                output=executed.stdout,
                error=f"Command timed out after {self.config.shell_timeout}s",
            )
        if executed.exit_code == 0:
            self.listener.on_terminal_output(colorize("[patchwarden] ✓ Command completed successfully", GREEN))
            return ActionResult(
                kind=ActionKind.SHELL,
                success=True,
                command=command,
                exit_code=0,
                output=executed.stdout,
            )

        self.listener.on_terminal_output(colorize(f"[patchwarden] ⚠ Command exited with code {executed.exit_code}", YELLOW))
        return ActionResult(
            kind=ActionKind.SHELL,
            success=False,
            command=command,
            exit_code=executed.exit_code,
            output=executed.stdout,
            error=f"Exit code: {executed.exit_code}",
        )

    # ------------------------------------------------------------------
    # Rollback and queue management
    # ------------------------------------------------------------------

    def rollback(self, action_id: str) -> bool:
        """Undo one successful file action. False if it is not rollback-eligible."""
        entry = self.get_entry(action_id)
        if entry is None or not entry.can_rollback or entry.action.backup is None:
            return False

        backup = entry.action.backup
        try:
            self.mutation_log.restore(backup)
        except RestoreError as e:
            logger.warning("%s", e)
            self.listener.on_terminal_output(colorize(f"[patchwarden] ✗ Rollback failed: {e}", RED))
            return False

        verb = "Deleted" if not backup.existed else "Restored"
        self.listener.on_terminal_output(colorize(f"[patchwarden] ↩ {verb} {backup.path} (rollback)", YELLOW))
        entry.can_rollback = False
        self.listener.on_filesystem_change()
        return True

    def rollback_all(self) -> int:
        """Undo every eligible action, newest first. Returns how many were undone."""
        count = 0
        for entry in list(self._history):
            if entry.can_rollback and self.rollback(entry.id):
                count += 1
        return count

    async def retry_action(self, action_id: str) -> QueuedAction | None:
        """Re-run a failed action as a fresh queued action."""
        entry = self.get_entry(action_id)
        if entry is None or entry.result.success:
            return None
        (retry,) = self.enqueue([entry.action.action])
        await self.drain()
        return retry

    def cancel_pending(self) -> int:
        """Drop actions not yet dequeued. The in-flight action is unaffected."""
        cancelled = list(self._queue)
        self._queue.clear()
        for queued in cancelled:
            queued.status = ActionStatus.CANCELLED
        if cancelled:
            self.listener.on_progress(f"Cancelled {len(cancelled)} pending action(s)")
        return len(cancelled)

    def clear_completed(self) -> None:
        self._completed.clear()
        self._failed.clear()

    def clear_history(self) -> None:
        self._history.clear()

    def get_entry(self, action_id: str) -> ExecutionHistoryEntry | None:
        for entry in self._history:
            if entry.id == action_id:
                return entry
        return None

    @property
    def history(self) -> list[ExecutionHistoryEntry]:
        """Newest first."""
        return list(self._history)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def is_executing(self) -> bool:
        return self._processing

    @property
    def state(self) -> ExecutorState:
        return ExecutorState(
            pending=list(self._queue),
            executing=self._executing,
            completed=list(self._completed),
            failed=list(self._failed),
            history=list(self._history),
        )
