"""Base executor class and result types for process execution."""

from __future__ import annotations

import asyncio
import logging
import shlex
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class ExecuteResult:
    """Result of command execution."""

    exit_code: int
    stdout: str
    stderr: str = ""
    timed_out: bool = False
    command_line: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass
class SpawnedProcess:
    """A running process: an output stream plus an awaitable exit code.

    ``output`` yields decoded chunks (stdout and stderr merged) until the
    process closes its pipes. ``wait`` resolves to the exit code.
    """

    command_line: str
    output: AsyncIterator[str]
    wait: Callable[[], Awaitable[int]]
    pid: int | None = None


class BaseExecutor(ABC):
    """Base class for process executors.

    Only ``spawn`` is host specific. ``execute`` collects a spawned process
    to completion or to a timeout. On timeout the process is abandoned, not
    killed; reaping it is the host's business.
    """

    name: str = "unknown"

    def __init__(self, default_cwd: str | None = None):
        self.default_cwd = default_cwd

    @abstractmethod
    async def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> SpawnedProcess:
        """
        Start a process without waiting for completion.

        Args:
            command: Program to run
            args: Program arguments
            cwd: Working directory (uses default if not specified)
            env: Extra environment variables

        Returns:
            SpawnedProcess with an output stream and exit awaitable
        """
        ...

    async def execute(
        self,
        command_line: str,
        cwd: str | None = None,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> ExecuteResult:
        """
        Run a command line to completion and collect its output.

        Args:
            command_line: Shell-style command line, split with shlex
            cwd: Working directory
            timeout: Seconds before the process is abandoned (None = no limit)
            env: Extra environment variables
            on_output: Called with each output chunk as it arrives

        Returns:
            ExecuteResult; ``timed_out`` is set when the budget ran out
        """
        parts = shlex.split(command_line)
        if not parts:
            return ExecuteResult(exit_code=1, stdout="", stderr="Empty command", command_line=command_line)

        chunks: list[str] = []
        process = await self.spawn(parts[0], parts[1:], cwd=cwd, env=env)

        async def _collect() -> int:
            async for chunk in process.output:
                chunks.append(chunk)
                if on_output is not None:
                    on_output(chunk)
            return await process.wait()

        try:
            exit_code = await asyncio.wait_for(_collect(), timeout=timeout)
        except TimeoutError:
            logger.warning("Command timed out after %ss: %s", timeout, command_line)
            return ExecuteResult(
                exit_code=-1,
                stdout="".join(chunks),
                stderr=f"Command timed out after {timeout}s",
                timed_out=True,
                command_line=command_line,
            )

        return ExecuteResult(exit_code=exit_code, stdout="".join(chunks), command_line=command_line)
