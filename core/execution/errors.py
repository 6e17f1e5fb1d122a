"""Exceptions raised by the execution layer."""

from __future__ import annotations


class ActionError(Exception):
    """An action could not be applied to the project."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class DestructiveCommandBlocked(ActionError):
    """A shell command was refused before it ran."""

    def __init__(self, command: str, reason: str):
        super().__init__(f"Blocked command: {reason}")
        self.command = command
        self.reason = reason


class RestoreError(ActionError):
    """A backup could not be written back."""
