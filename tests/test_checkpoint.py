"""Tests for named checkpoints."""

import json

import pytest

from config.schema import CheckpointConfig
from core.verification.checkpoint import CheckpointManager, CheckpointNotFound
from tests.fakes.host import InMemoryBackend, RecordingListener


@pytest.fixture
def fs():
    return InMemoryBackend({"src/a.ts": "a0", "src/b.ts": "b0"})


class TestCheckpoints:
    def test_restore_after_delete_and_edit(self):
        fs = InMemoryBackend({"a.ts": "A", "b.ts": "B"})
        manager = CheckpointManager(fs)
        checkpoint = manager.create_checkpoint("before-refactor", ["a.ts", "b.ts"])

        fs.remove("a.ts")
        fs.write_file("b.ts", "B edited")
        manager.restore_checkpoint(checkpoint.id)

        assert fs.read_text("a.ts") == "A"
        assert fs.read_text("b.ts") == "B"

    def test_restore_scenario(self, fs):
        listener = RecordingListener()
        manager = CheckpointManager(fs, listener=listener)
        checkpoint = manager.create_checkpoint("before refactor", ["src/a.ts", "src/new.ts", "src/a.ts"])
        assert [f.path for f in checkpoint.files] == ["src/a.ts", "src/new.ts"]

        fs.write_file("src/a.ts", "a1")
        fs.write_file("src/new.ts", "created later")

        result = manager.restore_checkpoint(checkpoint.id)

        assert result.success
        assert (result.files_restored, result.files_deleted) == (1, 1)
        assert fs.read_text("src/a.ts") == "a0"
        assert not fs.file_exists("src/new.ts")
        assert listener.of("on_checkpoint_created") == [(checkpoint,)]
        assert listener.of("on_checkpoint_restored") == [(checkpoint, 2)]

    def test_unknown_id_raises(self, fs):
        with pytest.raises(CheckpointNotFound):
            CheckpointManager(fs).restore_checkpoint("checkpoint_404")

    def test_directory_paths_are_rejected(self, fs):
        manager = CheckpointManager(fs)

        with pytest.raises(ValueError, match="not directories: src"):
            manager.create_checkpoint("cp", ["src/a.ts", "src"])

        assert manager.list_checkpoints() == []
        assert fs.read_text("src/a.ts") == "a0"

    def test_absent_path_that_became_a_directory_is_kept(self, fs):
        manager = CheckpointManager(fs)
        checkpoint = manager.create_checkpoint("cp", ["gen"])
        fs.mkdir("gen")
        fs.write_file("gen/out.ts", "keep me")

        result = manager.restore_checkpoint(checkpoint.id)

        assert not result.success
        assert [f.path for f in result.failures] == ["gen"]
        assert fs.read_text("gen/out.ts") == "keep me"

    def test_restore_failure_is_collected(self, fs):
        manager = CheckpointManager(fs)
        checkpoint = manager.create_checkpoint("cp", ["src/a.ts", "src/b.ts"])
        fs.read_only.add("src/a.ts")

        result = manager.restore_checkpoint(checkpoint.id)

        assert not result.success
        assert [f.path for f in result.failures] == ["src/a.ts"]
        assert result.files_restored == 1

    def test_lookup_and_order(self, fs):
        manager = CheckpointManager(fs)
        first = manager.create_checkpoint("first", ["src/a.ts"])
        second = manager.create_checkpoint("second", ["src/b.ts"], error_count=3, description="after lint")

        assert manager.latest() is second
        assert manager.list_checkpoints() == [second, first]
        assert manager.get_by_name("first") is first
        assert manager.has(first.id)
        assert len(manager) == 2

        text = manager.format_checkpoints()
        assert "**second** (3 errors)" in text
        assert "Note: after lint" in text

        assert manager.delete(first.id)
        assert not manager.delete(first.id)
        manager.clear()
        assert manager.format_checkpoints() == "No checkpoints available."
        assert manager.restore_latest() is None
        assert manager.restore_by_name("second") is None

    def test_oldest_are_dropped(self, fs):
        manager = CheckpointManager(fs, CheckpointConfig(max_checkpoints=2))
        first = manager.create_checkpoint("1", ["src/a.ts"])
        manager.create_checkpoint("2", ["src/a.ts"])
        manager.create_checkpoint("3", ["src/a.ts"])

        assert len(manager) == 2
        assert not manager.has(first.id)

    def test_auto_checkpoint_name(self, fs):
        checkpoint = CheckpointManager(fs).auto_checkpoint(["src/a.ts"])
        assert checkpoint.name.startswith("auto_")
        assert ":" not in checkpoint.name
        assert checkpoint.description == "Auto-checkpoint"

    def test_persistence(self, fs):
        config = CheckpointConfig(persist_path=".patchwarden/checkpoints.json")
        original = CheckpointManager(fs, config)
        checkpoint = original.create_checkpoint("saved", ["src/a.ts", "src/missing.ts"], metadata={"task": "t1"})

        data = json.loads(fs.read_text(".patchwarden/checkpoints.json"))
        assert data["counter"] == 1

        reloaded = CheckpointManager(fs, config)
        restored = reloaded.get(checkpoint.id)
        assert restored == checkpoint
        assert restored.files[1].existed is False

        assert reloaded.create_checkpoint("next", []).sequence == 2

    def test_unreadable_persist_file_is_ignored(self, fs):
        fs.seed("cp.json", "{not json")
        manager = CheckpointManager(fs, CheckpointConfig(persist_path="cp.json"))
        assert len(manager) == 0
