"""Mutation log: pre-images of every path the executor touches."""

from __future__ import annotations

import logging
import posixpath
from collections import deque
from typing import TYPE_CHECKING

from core.execution.errors import RestoreError
from core.execution.models import FileBackup

if TYPE_CHECKING:
    from sandbox.interfaces.filesystem import FileSystemBackend

logger = logging.getLogger(__name__)


def parent_dir(path: str) -> str:
    return posixpath.dirname(path.rstrip("/"))


def ensure_parent(fs: FileSystemBackend, path: str) -> None:
    parent = parent_dir(path)
    if parent and not fs.is_dir(parent):
        fs.mkdir(parent, recursive=True)


def write_or_raise(fs: FileSystemBackend, path: str, content: str) -> None:
    result = fs.write_file(path, content)
    if not result.success:
        raise OSError(result.error or f"write failed: {path}")


class MutationLog:
    """Captures backups before mutations and writes them back on request.

    Backups are immutable; the log keeps the most recent ``max_entries``.
    """

    def __init__(self, fs: FileSystemBackend, max_entries: int = 200):
        self.fs = fs
        self._entries: deque[FileBackup] = deque(maxlen=max_entries)

    def capture(self, path: str) -> FileBackup:
        if self.fs.is_dir(path):
            backup = FileBackup(path=path, prior_content=None, directory_contents=self._read_tree(path))
        else:
            backup = FileBackup(path=path, prior_content=self.fs.read_text(path))
        self._entries.append(backup)
        return backup

    def _read_tree(self, root: str) -> dict[str, str]:
        contents: dict[str, str] = {}
        pending = [root.rstrip("/")]
        while pending:
            directory = pending.pop()
            listing = self.fs.list_dir(directory)
            if listing.error:
                logger.warning("Cannot list %s for backup: %s", directory, listing.error)
                continue
            for entry in listing.entries:
                child = f"{directory}/{entry.name}"
                if entry.is_dir:
                    pending.append(child)
                    continue
                content = self.fs.read_text(child)
                if content is None:
                    logger.warning("Skipping unreadable file in backup: %s", child)
                    continue
                contents[child] = content
        return contents

    def restore(self, backup: FileBackup) -> None:
        """Write a backup back; raises RestoreError when the host refuses."""
        try:
            if backup.is_directory:
                self.fs.mkdir(backup.path.rstrip("/"), recursive=True)
                for child, content in sorted(backup.directory_contents.items()):
                    ensure_parent(self.fs, child)
                    write_or_raise(self.fs, child, content)
            elif backup.prior_content is None:
                if self.fs.file_exists(backup.path):
                    self.fs.remove(backup.path, recursive=self.fs.is_dir(backup.path))
            else:
                ensure_parent(self.fs, backup.path)
                write_or_raise(self.fs, backup.path, backup.prior_content)
        except OSError as e:
            raise RestoreError(f"Failed to restore {backup.path}: {e}", path=backup.path) from e

    def latest(self, path: str) -> FileBackup | None:
        for backup in reversed(self._entries):
            if backup.path == path:
                return backup
        return None

    @property
    def entries(self) -> list[FileBackup]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
