"""ExecutionHost - the minimal surface the verification core depends on.

A host bundles sub-capabilities by interaction surface:
- fs       → FileSystemBackend  (reads, writes, mkdir, remove)
- executor → BaseExecutor       (spawn + collect external processes)

Everything else about the sandbox (virtual filesystem, network, process
reaping) stays behind these two objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sandbox.interfaces.executor import BaseExecutor
    from sandbox.interfaces.filesystem import FileSystemBackend


@dataclass
class ExecutionHost:
    """One host per project session."""

    fs: FileSystemBackend
    executor: BaseExecutor
    name: str = "custom"
    working_dir: str = "."

    def close(self) -> None:
        """Clean up on session exit. Default: no-op."""
        pass
