"""Observer interface for verification progress.

Presentation layers subclass VerificationListener and override the hooks
they care about. Every hook defaults to a no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from core.execution.models import ActionResult, QueuedAction
    from core.verification.checkpoint import Checkpoint
    from core.verification.rollback import RollbackDecision, RollbackResult
    from core.verification.unified import PhaseResult

logger = logging.getLogger(__name__)

# ANSI colours for terminal output
CYAN = "\x1b[36m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
RED = "\x1b[31m"
RESET = "\x1b[0m"


def colorize(text: str, color: str) -> str:
    """Wrap a terminal line in an ANSI colour."""
    return f"{color}{text}{RESET}\r\n"


class VerificationListener:
    """Base class for progress observers. Override what you need."""

    def on_progress(self, message: str) -> None:
        """Human-readable progress message."""

    def on_terminal_output(self, data: str) -> None:
        """Raw subprocess output or ANSI-coloured status line."""

    def on_action_start(self, action: QueuedAction) -> None:
        pass

    def on_action_complete(self, action: QueuedAction, result: ActionResult) -> None:
        pass

    def on_action_error(self, action: QueuedAction, error: str) -> None:
        pass

    def on_filesystem_change(self) -> None:
        pass

    def on_rollback_triggered(self, decision: RollbackDecision) -> None:
        pass

    def on_rollback_complete(self, result: RollbackResult) -> None:
        pass

    def on_phase_complete(self, name: str, phase: PhaseResult) -> None:
        pass

    def on_checkpoint_created(self, checkpoint: Checkpoint) -> None:
        pass

    def on_checkpoint_restored(self, checkpoint: Checkpoint, restored_count: int) -> None:
        pass


class ListenerGroup(VerificationListener):
    """Fans every event out to registered listeners in registration order.

    A listener that raises is logged and skipped; the remaining listeners
    still receive the event.
    """

    def __init__(self, listeners: list[VerificationListener] | None = None):
        self._listeners: list[VerificationListener] = list(listeners or [])

    def add(self, listener: VerificationListener) -> None:
        self._listeners.append(listener)

    def remove(self, listener: VerificationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._listeners)

    def _emit(self, hook: str, *args: Any) -> None:
        for listener in self._listeners:
            try:
                getattr(listener, hook)(*args)
            except Exception as e:
                logger.warning("Listener %r failed in %s: %s", listener, hook, e)

    def on_progress(self, message: str) -> None:
        self._emit("on_progress", message)

    def on_terminal_output(self, data: str) -> None:
        self._emit("on_terminal_output", data)

    def on_action_start(self, action: QueuedAction) -> None:
        self._emit("on_action_start", action)

    def on_action_complete(self, action: QueuedAction, result: ActionResult) -> None:
        self._emit("on_action_complete", action, result)

    def on_action_error(self, action: QueuedAction, error: str) -> None:
        self._emit("on_action_error", action, error)

    def on_filesystem_change(self) -> None:
        self._emit("on_filesystem_change")

    def on_rollback_triggered(self, decision: RollbackDecision) -> None:
        self._emit("on_rollback_triggered", decision)

    def on_rollback_complete(self, result: RollbackResult) -> None:
        self._emit("on_rollback_complete", result)

    def on_phase_complete(self, name: str, phase: PhaseResult) -> None:
        self._emit("on_phase_complete", name, phase)

    def on_checkpoint_created(self, checkpoint: Checkpoint) -> None:
        self._emit("on_checkpoint_created", checkpoint)

    def on_checkpoint_restored(self, checkpoint: Checkpoint, restored_count: int) -> None:
        self._emit("on_checkpoint_restored", checkpoint, restored_count)


def as_listener(listener: VerificationListener | None) -> VerificationListener:
    """Normalize an optional listener argument."""
    return listener if listener is not None else VerificationListener()
