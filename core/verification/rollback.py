"""Rollback controller - batch change tracking with automatic restore decisions.

Lifecycle of one batch:

    IDLE ──start_tracking()──▶ TRACKING ──rollback()──▶ ROLLED_BACK
                                  │
                                  └──commit()──▶ COMMITTED

``record_change`` must be called before each mutation so the pre-image
can be captured. Two triggers produce rollback decisions: a whole-project
error increase over the baseline, and a failed per-file verification.
Restoration runs newest change first and keeps going past per-file
failures.
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from core.events import VerificationListener, as_listener
from core.execution.errors import RestoreError
from core.execution.models import ActionKind, FileBackup
from core.execution.mutation_log import MutationLog

if TYPE_CHECKING:
    from config.schema import RollbackConfig
    from core.verification.per_file import PerFileVerifier, PerFileVerifyResult
    from core.verification.snapshot import ErrorSnapshot, ErrorTracker
    from sandbox.interfaces.filesystem import FileSystemBackend

logger = logging.getLogger(__name__)


class NotTrackingError(RuntimeError):
    """record_change was called outside a tracked batch."""


class RollbackState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    ROLLED_BACK = "rolled_back"
    COMMITTED = "committed"


class Severity(str, Enum):
    NONE = "none"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class FileChange:
    path: str
    kind: ActionKind
    original: FileBackup
    new_content: str | None
    timestamp: float = field(default_factory=time.time)
    sequence: int = 0
    rolled_back: bool = False
    verify_result: PerFileVerifyResult | None = None

    @property
    def original_content(self) -> str | None:
        return self.original.prior_content


@dataclass(frozen=True)
class RollbackDecision:
    should_rollback: bool
    reason: str
    files_to_rollback: list[str] = field(default_factory=list)
    severity: Severity = Severity.NONE


@dataclass
class RollbackResult:
    success: bool = True
    files_rolled_back: int = 0
    rolled_back_paths: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration: float = 0.0


class RollbackController:
    def __init__(
        self,
        fs: FileSystemBackend,
        tracker: ErrorTracker,
        verifier: PerFileVerifier,
        config: RollbackConfig | None = None,
        listener: VerificationListener | None = None,
    ):
        if config is None:
            from config.schema import RollbackConfig

            config = RollbackConfig()
        self.fs = fs
        self.tracker = tracker
        self.verifier = verifier
        self.config = config
        self.listener = as_listener(listener)
        self._log = MutationLog(fs)
        self._changes: dict[str, FileChange] = {}
        self._sequence = itertools.count()
        self._state = RollbackState.IDLE
        self._last_result: RollbackResult | None = None

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    async def start_tracking(self) -> ErrorSnapshot:
        """Clear prior state and capture a fresh baseline. Batches do not nest."""
        self.listener.on_progress("Starting change tracking...")
        self._changes.clear()
        self._last_result = None
        self.verifier.reset()
        self.tracker.reset()
        baseline = await self.tracker.capture_baseline()
        self._state = RollbackState.TRACKING
        logger.info("Tracking started, baseline %d error(s)", baseline.error_count)
        return baseline

    def record_change(self, path: str, kind: ActionKind | str, new_content: str | None = None) -> FileChange:
        """Capture the pre-image of ``path``. Call before mutating it."""
        if self._state != RollbackState.TRACKING:
            raise NotTrackingError(f"record_change({path!r}) called while {self._state.value}")
        kind = ActionKind(kind)
        if kind == ActionKind.SHELL:
            raise ValueError("shell actions cannot be tracked as file changes")

        previous = self._changes.get(path)
        if previous is not None and not previous.rolled_back:
            # Same path again within the batch: keep the pre-batch content, not the
            # intermediate state left by the earlier action, so rollback undoes the whole batch
            original = previous.original
        else:
            original = self._log.capture(path)

        if kind == ActionKind.CREATE and original.existed:
            kind = ActionKind.MODIFY
        if kind == ActionKind.DELETE:
            new_content = None

        change = FileChange(
            path=path,
            kind=kind,
            original=original,
            new_content=new_content,
            sequence=next(self._sequence),
        )
        self._changes[path] = change
        logger.debug("Recorded %s for %s", kind.value, path)
        return change

    def commit(self) -> None:
        """Accept the batch. Tracked changes are kept for reporting only."""
        self._state = RollbackState.COMMITTED
        self.listener.on_progress(f"Committed {len(self.pending_changes())} change(s)")

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def check_error_increase(self) -> RollbackDecision:
        state = await self.tracker.check_error_state()
        comparison = state.comparison
        if comparison is None:
            return RollbackDecision(should_rollback=False, reason="No baseline for comparison")

        if comparison.delta > self.config.max_error_increase:
            decision = RollbackDecision(
                should_rollback=self.config.auto_rollback_on_error_increase,
                reason=comparison.summary,
                files_to_rollback=[c.path for c in self.pending_changes()],
                severity=Severity.CRITICAL,
            )
            if decision.should_rollback:
                self.listener.on_rollback_triggered(decision)
            return decision

        return RollbackDecision(
            should_rollback=False,
            reason=comparison.summary,
            severity=Severity.NONE if comparison.errors_decreased else Severity.WARNING,
        )

    async def verify_and_decide(self, path: str) -> RollbackDecision:
        result = await self.verifier.verify_file(path)
        change = self._changes.get(path)
        if change is not None:
            change.verify_result = result

        if result.should_rollback and self.config.auto_rollback_on_verify_fail:
            decision = RollbackDecision(
                should_rollback=True,
                reason=result.rollback_reason or "Per-file verification failed",
                files_to_rollback=[path],
                severity=Severity.ERROR,
            )
            self.listener.on_rollback_triggered(decision)
            return decision

        return RollbackDecision(should_rollback=False, reason="Verification passed")

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def rollback(self, paths: list[str] | None = None) -> RollbackResult:
        """Restore tracked paths newest first; failures are collected, not raised."""
        start = time.monotonic()
        wanted = paths if paths is not None else list(self._changes)
        changes = [
            c for c in (self._changes.get(p) for p in dict.fromkeys(wanted))
            if c is not None and not c.rolled_back
        ]
        changes.sort(key=lambda c: (c.timestamp, c.sequence), reverse=True)

        self.listener.on_progress(f"Rolling back {len(changes)} file(s)...")
        result = RollbackResult()
        for change in changes:
            try:
                self._restore(change)
            except RestoreError as e:
                result.success = False
                result.errors.append(f"Failed to rollback {change.path}: {e.__cause__ or e}")
                logger.warning("Failed to rollback %s: %s", change.path, e)
                continue
            change.rolled_back = True
            result.files_rolled_back += 1
            result.rolled_back_paths.append(change.path)
            logger.info("Rolled back %s %s", change.kind.value, change.path)

        result.duration = time.monotonic() - start
        self._last_result = result
        if self._state == RollbackState.TRACKING and not self.pending_changes():
            self._state = RollbackState.ROLLED_BACK
        if changes:
            self.listener.on_filesystem_change()
        self.listener.on_rollback_complete(result)
        self.listener.on_progress(f"Rollback complete: {result.files_rolled_back} file(s) restored")
        return result

    def rollback_all(self) -> RollbackResult:
        return self.rollback()

    def _restore(self, change: FileChange) -> None:
        if change.kind == ActionKind.CREATE:
            # Nothing existed before a create
            if self.fs.file_exists(change.path):
                try:
                    self.fs.remove(change.path, recursive=self.fs.is_dir(change.path))
                except OSError as e:
                    raise RestoreError(str(e), path=change.path) from e
            return
        self._log.restore(change.original)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> RollbackState:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state == RollbackState.TRACKING

    @property
    def changes(self) -> dict[str, FileChange]:
        return dict(self._changes)

    def pending_changes(self) -> list[FileChange]:
        return [c for c in self._changes.values() if not c.rolled_back]

    def has_changes(self) -> bool:
        return bool(self._changes)

    @property
    def last_rollback_result(self) -> RollbackResult | None:
        return self._last_result

    def status_report(self) -> str:
        pending = self.pending_changes()
        rolled_back = [c for c in self._changes.values() if c.rolled_back]
        lines = [
            "## Rollback Controller Status",
            "",
            f"- State: {self._state.value}",
            f"- Total changes tracked: {len(self._changes)}",
            f"- Pending (not rolled back): {len(pending)}",
            f"- Rolled back: {len(rolled_back)}",
            "",
        ]
        if pending:
            lines.append("### Pending Changes:")
            for change in pending:
                status = "✓" if change.verify_result and change.verify_result.passed else "✗"
                lines.append(f"  {status} {change.kind.value} {change.path}")
            lines.append("")
        if rolled_back:
            lines.append("### Rolled Back:")
            lines.extend(f"  ↩ {c.path}" for c in rolled_back)
        return "\n".join(lines)
