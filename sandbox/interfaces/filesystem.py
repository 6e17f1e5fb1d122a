"""FileSystem backend abstraction.

Separates I/O mechanism (local fs, remote sandbox, in-memory fake) from
verification policy (backups, rollback, checkpoints).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class FileReadResult:
    """Raw file content from backend."""

    content: str
    size: int = 0


@dataclass
class FileWriteResult:
    """Result of a write operation."""

    success: bool
    error: str | None = None


@dataclass
class DirEntry:
    """Single directory entry."""

    name: str
    is_dir: bool
    size: int = 0
    children_count: int | None = None  # only for directories


@dataclass
class DirListResult:
    """Result of listing a directory."""

    entries: list[DirEntry] = field(default_factory=list)
    error: str | None = None


class FileSystemBackend(ABC):
    """Abstract backend for filesystem I/O.

    Paths are project-relative (``src/app.ts``) or absolute; the backend
    decides how to resolve them.

    Implementations:
    - LocalBackend: direct local filesystem access rooted at a project dir
    - tests.fakes.host.InMemoryBackend: dict-backed fake used by tests
    """

    @abstractmethod
    def read_file(self, path: str) -> FileReadResult:
        """Read raw file content.

        Raises:
            FileNotFoundError: If the file does not exist
            IOError: If the file cannot be read
        """
        ...

    @abstractmethod
    def write_file(self, path: str, content: str) -> FileWriteResult:
        """Write content to file. Parent directories must already exist."""
        ...

    @abstractmethod
    def mkdir(self, path: str, recursive: bool = True) -> None:
        """Create a directory (and parents when recursive)."""
        ...

    @abstractmethod
    def remove(self, path: str, recursive: bool = False) -> None:
        """Remove a file, or a directory tree when recursive.

        Raises:
            FileNotFoundError: If nothing exists at path
        """
        ...

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Check if a file or directory exists."""
        ...

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """Check if path is a directory."""
        ...

    @abstractmethod
    def list_dir(self, path: str) -> DirListResult:
        """List directory contents."""
        ...

    def read_text(self, path: str) -> str | None:
        """Read a file, returning None when it is absent or unreadable."""
        try:
            return self.read_file(path).content
        except (OSError, UnicodeDecodeError):
            return None
