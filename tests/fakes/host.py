"""In-memory execution host for unit tests.

InMemoryBackend keeps files in a dict; directories are implied by file
paths or created explicitly. ScriptedExecutor answers spawns from a table
of command prefixes, optionally after a delay so timeouts can be tested.
"""

from __future__ import annotations

import asyncio
import posixpath
from collections.abc import AsyncIterator
from dataclasses import dataclass

from core.events import VerificationListener
from sandbox.base import ExecutionHost
from sandbox.interfaces.executor import BaseExecutor, SpawnedProcess
from sandbox.interfaces.filesystem import (
    DirEntry,
    DirListResult,
    FileReadResult,
    FileSystemBackend,
    FileWriteResult,
)


def _norm(path: str) -> str:
    path = posixpath.normpath(path.replace("\\", "/")).lstrip("/")
    return "" if path == "." else path


class InMemoryBackend(FileSystemBackend):
    def __init__(self, files: dict[str, str] | None = None):
        self.files: dict[str, str] = {}
        self.dirs: set[str] = set()
        self.read_only: set[str] = set()
        for path, content in (files or {}).items():
            self.seed(path, content)

    def seed(self, path: str, content: str) -> None:
        path = _norm(path)
        self.files[path] = content
        self._add_parents(path)

    def _add_parents(self, path: str) -> None:
        parent = posixpath.dirname(path)
        while parent:
            self.dirs.add(parent)
            parent = posixpath.dirname(parent)

    def read_file(self, path: str) -> FileReadResult:
        path = _norm(path)
        if path not in self.files:
            raise FileNotFoundError(path)
        content = self.files[path]
        return FileReadResult(content=content, size=len(content))

    def write_file(self, path: str, content: str) -> FileWriteResult:
        path = _norm(path)
        if path in self.read_only:
            return FileWriteResult(success=False, error=f"permission denied: {path}")
        parent = posixpath.dirname(path)
        if parent and parent not in self.dirs:
            return FileWriteResult(success=False, error=f"no such directory: {parent}")
        self.files[path] = content
        return FileWriteResult(success=True)

    def mkdir(self, path: str, recursive: bool = True) -> None:
        path = _norm(path)
        if path:
            self.dirs.add(path)
            self._add_parents(path)

    def remove(self, path: str, recursive: bool = False) -> None:
        path = _norm(path)
        if path in self.read_only:
            raise PermissionError(path)
        if path in self.files:
            del self.files[path]
            return
        if path not in self.dirs:
            raise FileNotFoundError(path)
        prefix = path + "/"
        children = [f for f in self.files if f.startswith(prefix)] + [d for d in self.dirs if d.startswith(prefix)]
        if children and not recursive:
            raise OSError(f"directory not empty: {path}")
        for f in [f for f in self.files if f.startswith(prefix)]:
            del self.files[f]
        self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}

    def file_exists(self, path: str) -> bool:
        path = _norm(path)
        return path in self.files or path in self.dirs

    def is_dir(self, path: str) -> bool:
        return _norm(path) in self.dirs

    def list_dir(self, path: str) -> DirListResult:
        path = _norm(path)
        if path and path not in self.dirs:
            return DirListResult(error=f"not a directory: {path}")
        entries: dict[str, DirEntry] = {}
        for d in self.dirs:
            if posixpath.dirname(d) == path:
                entries[posixpath.basename(d)] = DirEntry(name=posixpath.basename(d), is_dir=True)
        for f, content in self.files.items():
            if posixpath.dirname(f) == path:
                entries[posixpath.basename(f)] = DirEntry(name=posixpath.basename(f), is_dir=False, size=len(content))
        return DirListResult(entries=sorted(entries.values(), key=lambda e: e.name))


@dataclass
class Script:
    output: str = ""
    exit_code: int = 0
    delay: float = 0.0
    raises: Exception | None = None


class ScriptedExecutor(BaseExecutor):
    """Answers commands by longest matching prefix; unknown commands exit 127."""

    name = "scripted"

    def __init__(self):
        super().__init__(default_cwd=".")
        self.scripts: dict[str, Script | list[Script]] = {}
        self.calls: list[tuple[str, str | None]] = []

    def on(self, prefix: str, output: str = "", exit_code: int = 0, delay: float = 0.0, raises: Exception | None = None):
        self.scripts[prefix] = Script(output, exit_code, delay, raises)

    def sequence(self, prefix: str, *scripts: Script) -> None:
        """Successive calls matching ``prefix`` consume ``scripts`` in order; the last one repeats."""
        self.scripts[prefix] = list(scripts)

    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]

    def _match(self, command_line: str) -> Script:
        matches = [p for p in self.scripts if command_line.startswith(p)]
        if not matches:
            return Script(output=f"command not found: {command_line}", exit_code=127)
        entry = self.scripts[max(matches, key=len)]
        if isinstance(entry, list):
            return entry.pop(0) if len(entry) > 1 else entry[0]
        return entry

    async def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> SpawnedProcess:
        command_line = " ".join([command, *(args or [])])
        self.calls.append((command_line, cwd))
        script = self._match(command_line)
        if script.raises is not None:
            raise script.raises

        async def _stream() -> AsyncIterator[str]:
            if script.delay:
                await asyncio.sleep(script.delay)
            if script.output:
                yield script.output

        async def _wait() -> int:
            return script.exit_code

        return SpawnedProcess(command_line=command_line, output=_stream(), wait=_wait)


class RecordingListener(VerificationListener):
    """Remembers every event as (hook, args)."""

    def __init__(self):
        self.events: list[tuple[str, tuple]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, hook: str) -> list[tuple]:
        return [args for name, args in self.events if name == hook]

    def on_progress(self, message):
        self.events.append(("on_progress", (message,)))

    def on_terminal_output(self, data):
        self.events.append(("on_terminal_output", (data,)))

    def on_action_start(self, action):
        self.events.append(("on_action_start", (action,)))

    def on_action_complete(self, action, result):
        self.events.append(("on_action_complete", (action, result)))

    def on_action_error(self, action, error):
        self.events.append(("on_action_error", (action, error)))

    def on_filesystem_change(self):
        self.events.append(("on_filesystem_change", ()))

    def on_rollback_triggered(self, decision):
        self.events.append(("on_rollback_triggered", (decision,)))

    def on_rollback_complete(self, result):
        self.events.append(("on_rollback_complete", (result,)))

    def on_phase_complete(self, name, phase):
        self.events.append(("on_phase_complete", (name, phase)))

    def on_checkpoint_created(self, checkpoint):
        self.events.append(("on_checkpoint_created", (checkpoint,)))

    def on_checkpoint_restored(self, checkpoint, restored_count):
        self.events.append(("on_checkpoint_restored", (checkpoint, restored_count)))


def make_host(files: dict[str, str] | None = None) -> ExecutionHost:
    return ExecutionHost(fs=InMemoryBackend(files), executor=ScriptedExecutor(), name="memory", working_dir=".")
