"""Sandbox interfaces - ABC + data classes for executor and filesystem.

Re-exports everything from executor and filesystem submodules.
"""

from sandbox.interfaces.executor import (
    BaseExecutor,
    ExecuteResult,
    SpawnedProcess,
)
from sandbox.interfaces.filesystem import (
    DirEntry,
    DirListResult,
    FileReadResult,
    FileSystemBackend,
    FileWriteResult,
)

__all__ = [
    # Executor
    "BaseExecutor",
    "ExecuteResult",
    "SpawnedProcess",
    # Filesystem
    "FileSystemBackend",
    "FileReadResult",
    "FileWriteResult",
    "DirEntry",
    "DirListResult",
]
