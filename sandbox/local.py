"""Local execution host: project-rooted filesystem + asyncio subprocesses."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import AsyncIterator
from pathlib import Path

from sandbox.base import ExecutionHost
from sandbox.interfaces.executor import BaseExecutor, SpawnedProcess
from sandbox.interfaces.filesystem import (
    DirEntry,
    DirListResult,
    FileReadResult,
    FileSystemBackend,
    FileWriteResult,
)

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


class LocalBackend(FileSystemBackend):
    """Backend that operates directly on the local filesystem.

    Relative paths resolve against ``root``.
    """

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root).resolve() if root else Path.cwd()

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.root / p

    def read_file(self, path: str) -> FileReadResult:
        p = self._resolve(path)
        content = p.read_text(encoding="utf-8")
        return FileReadResult(content=content, size=p.stat().st_size)

    def write_file(self, path: str, content: str) -> FileWriteResult:
        p = self._resolve(path)
        try:
            with open(p, "w", encoding="utf-8") as f:
                f.write(content)
            return FileWriteResult(success=True)
        except Exception as e:
            return FileWriteResult(success=False, error=str(e))

    def mkdir(self, path: str, recursive: bool = True) -> None:
        self._resolve(path).mkdir(parents=recursive, exist_ok=True)

    def remove(self, path: str, recursive: bool = False) -> None:
        p = self._resolve(path)
        if p.is_dir():
            if recursive:
                shutil.rmtree(p)
            else:
                p.rmdir()
        else:
            p.unlink()

    def file_exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def is_dir(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def list_dir(self, path: str) -> DirListResult:
        p = self._resolve(path)
        try:
            entries = []
            for item in sorted(p.iterdir()):
                if item.is_file():
                    entries.append(DirEntry(
                        name=item.name,
                        is_dir=False,
                        size=item.stat().st_size,
                    ))
                elif item.is_dir():
                    count = sum(1 for _ in item.iterdir())
                    entries.append(DirEntry(
                        name=item.name,
                        is_dir=True,
                        children_count=count,
                    ))
            return DirListResult(entries=entries)
        except Exception as e:
            return DirListResult(error=str(e))


class LocalExecutor(BaseExecutor):
    """Spawns local processes with stdout and stderr merged into one stream."""

    name = "local"

    async def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> SpawnedProcess:
        work_dir = cwd or self.default_cwd or os.getcwd()
        if cwd and self.default_cwd and not os.path.isabs(cwd):
            work_dir = os.path.join(self.default_cwd, cwd)

        merged_env = os.environ.copy()
        if env:
            merged_env.update(env)

        proc = await asyncio.create_subprocess_exec(
            command,
            *(args or []),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=work_dir,
            env=merged_env,
        )
        logger.debug("Spawned pid=%s: %s %s", proc.pid, command, " ".join(args or []))

        async def _stream() -> AsyncIterator[str]:
            assert proc.stdout is not None
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                yield chunk.decode("utf-8", errors="replace")

        return SpawnedProcess(
            command_line=" ".join([command, *(args or [])]),
            output=_stream(),
            wait=proc.wait,
            pid=proc.pid,
        )


def create_local_host(root: str | Path | None = None) -> ExecutionHost:
    """Host rooted at a project directory (defaults to cwd)."""
    root_path = Path(root).resolve() if root else Path.cwd()
    return ExecutionHost(
        fs=LocalBackend(root_path),
        executor=LocalExecutor(default_cwd=str(root_path)),
        name="local",
        working_dir=str(root_path),
    )
