"""Named checkpoints of file contents.

A checkpoint records the content of a chosen set of files, including the
fact that a file did not exist. Restoring writes recorded content back
and deletes files that were absent when the checkpoint was taken.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from core.events import VerificationListener, as_listener
from core.execution.mutation_log import ensure_parent, write_or_raise

if TYPE_CHECKING:
    from config.schema import CheckpointConfig
    from sandbox.interfaces.filesystem import FileSystemBackend

logger = logging.getLogger(__name__)


class CheckpointNotFound(KeyError):
    pass


@dataclass(frozen=True)
class FileSnapshot:
    path: str
    content: str
    existed: bool


@dataclass
class Checkpoint:
    id: str
    name: str
    files: list[FileSnapshot]
    timestamp: float = field(default_factory=time.time)
    sequence: int = 0
    description: str | None = None
    error_count: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        data = dict(data)
        data["files"] = [FileSnapshot(**f) for f in data.get("files", [])]
        return cls(**data)


@dataclass
class RestoreFailure:
    path: str
    error: str


@dataclass
class RestoreResult:
    success: bool
    checkpoint: Checkpoint
    files_restored: int = 0
    files_deleted: int = 0
    failures: list[RestoreFailure] = field(default_factory=list)


class CheckpointManager:
    def __init__(
        self,
        fs: FileSystemBackend,
        config: CheckpointConfig | None = None,
        listener: VerificationListener | None = None,
    ):
        if config is None:
            from config.schema import CheckpointConfig

            config = CheckpointConfig()
        self.fs = fs
        self.config = config
        self.listener = as_listener(listener)
        self._checkpoints: dict[str, Checkpoint] = {}
        self._counter = 0
        if config.persist_path:
            self._load()

    # -- create --

    def create_checkpoint(
        self,
        name: str,
        paths: list[str],
        description: str | None = None,
        error_count: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Checkpoint:
        unique = list(dict.fromkeys(paths))
        directories = [p for p in unique if self.fs.is_dir(p)]
        if directories:
            raise ValueError(f"Checkpoints hold files, not directories: {', '.join(directories)}")

        self._counter += 1
        files = []
        for path in unique:
            content = self.fs.read_text(path)
            files.append(FileSnapshot(path=path, content=content or "", existed=content is not None))

        checkpoint = Checkpoint(
            id=f"checkpoint_{self._counter}_{int(time.time() * 1000)}",
            name=name,
            files=files,
            sequence=self._counter,
            description=description,
            error_count=error_count,
            metadata=metadata or {},
        )
        self._checkpoints[checkpoint.id] = checkpoint
        self._trim()
        self._save()
        logger.info("Checkpoint %s (%s) created with %d file(s)", checkpoint.id, name, len(files))
        self.listener.on_checkpoint_created(checkpoint)
        return checkpoint

    def auto_checkpoint(self, paths: list[str], reason: str | None = None) -> Checkpoint:
        stamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")
        return self.create_checkpoint(f"auto_{stamp}", paths, description=reason or "Auto-checkpoint")

    # -- restore --

    def restore_checkpoint(self, checkpoint_id: str) -> RestoreResult:
        checkpoint = self.get(checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFound(checkpoint_id)

        result = RestoreResult(success=True, checkpoint=checkpoint)
        for snapshot in checkpoint.files:
            try:
                if snapshot.existed:
                    ensure_parent(self.fs, snapshot.path)
                    write_or_raise(self.fs, snapshot.path, snapshot.content)
                    result.files_restored += 1
                elif self.fs.is_dir(snapshot.path):
                    raise IsADirectoryError(f"{snapshot.path} is now a directory; not removed")
                elif self.fs.file_exists(snapshot.path):
                    self.fs.remove(snapshot.path)
                    result.files_deleted += 1
            except OSError as e:
                result.failures.append(RestoreFailure(path=snapshot.path, error=str(e)))

        result.success = not result.failures
        if result.failures:
            logger.warning("Checkpoint %s restored with %d failure(s)", checkpoint.id, len(result.failures))
        self.listener.on_filesystem_change()
        self.listener.on_checkpoint_restored(checkpoint, result.files_restored + result.files_deleted)
        return result

    def restore_latest(self) -> RestoreResult | None:
        latest = self.latest()
        return self.restore_checkpoint(latest.id) if latest else None

    def restore_by_name(self, name: str) -> RestoreResult | None:
        checkpoint = self.get_by_name(name)
        return self.restore_checkpoint(checkpoint.id) if checkpoint else None

    # -- lookup --

    def get(self, checkpoint_id: str) -> Checkpoint | None:
        return self._checkpoints.get(checkpoint_id)

    def get_by_name(self, name: str) -> Checkpoint | None:
        return next((cp for cp in self.list_checkpoints() if cp.name == name), None)

    def latest(self) -> Checkpoint | None:
        checkpoints = self.list_checkpoints()
        return checkpoints[0] if checkpoints else None

    def list_checkpoints(self) -> list[Checkpoint]:
        """Newest first."""
        return sorted(self._checkpoints.values(), key=lambda cp: (cp.timestamp, cp.sequence), reverse=True)

    def has(self, checkpoint_id: str) -> bool:
        return checkpoint_id in self._checkpoints

    def __len__(self) -> int:
        return len(self._checkpoints)

    def delete(self, checkpoint_id: str) -> bool:
        removed = self._checkpoints.pop(checkpoint_id, None) is not None
        if removed:
            self._save()
        return removed

    def clear(self) -> None:
        self._checkpoints.clear()
        self._save()

    def format_checkpoints(self) -> str:
        checkpoints = self.list_checkpoints()
        if not checkpoints:
            return "No checkpoints available."
        lines = ["## Available Checkpoints", ""]
        for cp in checkpoints:
            created = datetime.fromtimestamp(cp.timestamp).strftime("%Y-%m-%d %H:%M:%S")
            error_info = f" ({cp.error_count} errors)" if cp.error_count is not None else ""
            lines.append(f"- **{cp.name}**{error_info}")
            lines.append(f"  - ID: {cp.id}")
            lines.append(f"  - Created: {created}")
            lines.append(f"  - Files: {len(cp.files)}")
            if cp.description:
                lines.append(f"  - Note: {cp.description}")
        return "\n".join(lines)

    # -- internals --

    def _trim(self) -> None:
        excess = len(self._checkpoints) - self.config.max_checkpoints
        if excess <= 0:
            return
        for cp in self.list_checkpoints()[-excess:]:
            del self._checkpoints[cp.id]
            logger.debug("Dropped oldest checkpoint %s", cp.id)

    def _save(self) -> None:
        path = self.config.persist_path
        if not path:
            return
        payload = json.dumps(
            {"counter": self._counter, "checkpoints": [cp.to_dict() for cp in self.list_checkpoints()]},
            indent=2,
        )
        try:
            ensure_parent(self.fs, path)
            write_or_raise(self.fs, path, payload)
        except OSError as e:
            logger.warning("Failed to persist checkpoints to %s: %s", path, e)

    def _load(self) -> None:
        raw = self.fs.read_text(self.config.persist_path)
        if raw is None:
            return
        try:
            data = json.loads(raw)
            checkpoints = [Checkpoint.from_dict(item) for item in data.get("checkpoints", [])]
        except (ValueError, TypeError) as e:
            logger.warning("Ignoring unreadable checkpoint file %s: %s", self.config.persist_path, e)
            return
        self._checkpoints = {cp.id: cp for cp in checkpoints}
        self._counter = max([data.get("counter", 0)] + [cp.sequence for cp in checkpoints])
        logger.info("Loaded %d checkpoint(s) from %s", len(checkpoints), self.config.persist_path)
