"""Sandbox - infrastructure layer for execution environments.

Usage:
    from sandbox import create_local_host

    host = create_local_host("/path/to/project")
    host.fs.read_file("package.json")
    await host.executor.execute("npx tsc --noEmit", timeout=60)
"""

from __future__ import annotations

from sandbox.base import ExecutionHost
from sandbox.local import LocalBackend, LocalExecutor, create_local_host

__all__ = [
    "ExecutionHost",
    "LocalBackend",
    "LocalExecutor",
    "create_local_host",
]
