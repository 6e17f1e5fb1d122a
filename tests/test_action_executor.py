"""Tests for ActionExecutor: queueing, backups, shell guard and rollback."""

import asyncio
from types import SimpleNamespace

import pytest

from config.schema import ExecutorConfig
from core.execution import Action, ActionExecutor, ActionKind, ActionStatus
from tests.fakes.host import RecordingListener, make_host


@pytest.fixture
def listener():
    return RecordingListener()


def executor_for(host, listener=None, **config):
    return ActionExecutor(host, ExecutorConfig(**config), listener=listener)


class TestFileActions:
    @pytest.mark.asyncio
    async def test_create_writes_file_and_parents(self, listener):
        host = make_host()
        executor = executor_for(host, listener)

        (result,) = await executor.execute([Action.create("src/new/util.ts", "export const a = 1;\n")])

        assert result.success
        assert result.kind == ActionKind.CREATE
        assert host.fs.read_text("src/new/util.ts") == "export const a = 1;\n"
        assert result.diff.added == 2
        assert "on_filesystem_change" in listener.names()
        assert any("Created src/new/util.ts" in args[0] for args in listener.of("on_terminal_output"))

    @pytest.mark.asyncio
    async def test_modify_reports_line_diff(self):
        host = make_host({"a.ts": "one\ntwo\nthree"})
        executor = executor_for(host)

        (result,) = await executor.execute([Action.modify("a.ts", "one\n2\nthree")])

        assert (result.diff.added, result.diff.removed, result.diff.unchanged) == (1, 1, 2)

    @pytest.mark.asyncio
    async def test_delete_missing_path_is_noop(self):
        executor = executor_for(make_host())
        (result,) = await executor.execute([Action.delete("nope.txt")])
        assert result.success
        assert executor.history[0].can_rollback is False

    @pytest.mark.asyncio
    async def test_write_to_directory_fails(self, listener):
        host = make_host({"src/a.ts": "x"})
        executor = executor_for(host, listener)

        (result,) = await executor.execute([Action.modify("src", "content")])

        assert not result.success
        assert "directory" in result.error
        assert listener.of("on_action_error")
        assert executor.state.failed[0].status == ActionStatus.ERROR

    @pytest.mark.asyncio
    async def test_failed_write_reported(self):
        host = make_host({"locked.ts": "old"})
        host.fs.read_only.add("locked.ts")
        executor = executor_for(host)

        (result,) = await executor.execute([Action.modify("locked.ts", "new")])

        assert not result.success
        assert "permission denied" in result.error
        assert host.fs.read_text("locked.ts") == "old"

    @pytest.mark.asyncio
    async def test_actions_run_in_order(self):
        host = make_host()
        executor = executor_for(host)

        await executor.execute(
            [Action.create("a.txt", "1"), Action.modify("a.txt", "2"), Action.modify("a.txt", "3")]
        )

        assert host.fs.read_text("a.txt") == "3"
        assert [e.action.action.content for e in executor.history] == ["3", "2", "1"]


class TestRollback:
    @pytest.mark.asyncio
    async def test_rollback_modify_restores_prior_content(self):
        host = make_host({"a.ts": "original"})
        executor = executor_for(host)
        await executor.execute([Action.modify("a.ts", "changed")])
        action_id = executor.history[0].id

        assert executor.rollback(action_id) is True
        assert host.fs.read_text("a.ts") == "original"

    @pytest.mark.asyncio
    async def test_rollback_is_not_repeated(self):
        host = make_host({"a.ts": "original"})
        executor = executor_for(host)
        await executor.execute([Action.modify("a.ts", "changed")])
        action_id = executor.history[0].id
        executor.rollback(action_id)
        host.fs.write_file("a.ts", "edited later")

        assert executor.rollback(action_id) is False
        assert host.fs.read_text("a.ts") == "edited later"

    @pytest.mark.asyncio
    async def test_rollback_create_deletes_file(self):
        host = make_host()
        executor = executor_for(host)
        await executor.execute([Action.create("fresh.ts", "x")])

        assert executor.rollback(executor.history[0].id)
        assert not host.fs.file_exists("fresh.ts")

    @pytest.mark.asyncio
    async def test_rollback_all_newest_first(self):
        host = make_host({"a.ts": "v0"})
        executor = executor_for(host)
        await executor.execute([Action.modify("a.ts", "v1"), Action.modify("a.ts", "v2")])

        assert executor.rollback_all() == 2
        assert host.fs.read_text("a.ts") == "v0"

    def test_rollback_unknown_id(self):
        assert executor_for(make_host()).rollback("action_missing") is False


class TestShellActions:
    @pytest.mark.asyncio
    async def test_rm_rf_becomes_tracked_delete(self):
        host = make_host({"build/a.js": "a", "build/sub/b.js": "b", "src/keep.ts": "k"})
        executor = executor_for(host)

        (result,) = await executor.execute([Action.shell("rm -rf build/")])

        assert result.success
        assert len(result.replaced_by) == 1
        assert not host.fs.file_exists("build")
        assert host.fs.read_text("src/keep.ts") == "k"
        assert host.executor.calls == []

        delete_entry = executor.get_entry(result.replaced_by[0])
        assert delete_entry.action.action == Action.delete("build/")
        assert delete_entry.can_rollback

        assert executor.rollback(delete_entry.id)
        assert host.fs.read_text("build/a.js") == "a"
        assert host.fs.read_text("build/sub/b.js") == "b"

    @pytest.mark.asyncio
    async def test_rewritten_deletes_run_before_later_actions(self):
        host = make_host({"old.txt": "x"})
        executor = executor_for(host)

        await executor.execute([Action.shell("rm old.txt"), Action.create("old.txt", "recreated")])

        assert host.fs.read_text("old.txt") == "recreated"

    @pytest.mark.asyncio
    async def test_blocked_command_not_executed(self, listener):
        host = make_host()
        executor = executor_for(host, listener)

        (result,) = await executor.execute([Action.shell("git reset --hard HEAD")])

        assert not result.success
        assert result.error.startswith("Blocked command")
        assert host.executor.calls == []

    @pytest.mark.asyncio
    async def test_command_runs_through_host(self, listener):
        host = make_host()
        host.executor.on("npm install", output="added 12 packages\n")
        executor = executor_for(host, listener)

        (result,) = await executor.execute([Action.shell("npm install")])

        assert result.success
        assert result.exit_code == 0
        assert "added 12 packages" in result.output
        assert ("added 12 packages\n",) in listener.of("on_terminal_output")

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_failure(self):
        host = make_host()
        host.executor.on("npm test", output="1 failed", exit_code=1)
        executor = executor_for(host)

        (result,) = await executor.execute([Action.shell("npm test")])

        assert not result.success
        assert result.exit_code == 1
        assert result.error == "Exit code: 1"

    @pytest.mark.asyncio
    async def test_shell_timeout(self):
        host = make_host()
        host.executor.on("sleep", delay=1.0)
        executor = executor_for(host, shell_timeout=0.05)

        (result,) = await executor.execute([Action.shell("sleep 5")])

        assert not result.success
        assert "timed out" in result.error


class TestQueue:
    @pytest.mark.asyncio
    async def test_reentrant_drain_returns_immediately(self):
        host = make_host()
        host.executor.on("slow", delay=0.05)
        executor = executor_for(host)
        executor.enqueue([Action.shell("slow task")])

        first, second = await asyncio.gather(executor.drain(), executor.drain())

        assert len(first) == 1
        assert second == []
        assert not executor.is_executing

    def test_cancel_pending(self):
        executor = executor_for(make_host())
        queued = executor.enqueue([Action.create("a", "1"), Action.create("b", "2")])

        assert executor.cancel_pending() == 2
        assert executor.pending_count == 0
        assert all(q.status == ActionStatus.CANCELLED for q in queued)

    @pytest.mark.asyncio
    async def test_retry_failed_action(self):
        host = make_host({"locked.ts": "old"})
        host.fs.read_only.add("locked.ts")
        executor = executor_for(host)
        await executor.execute([Action.modify("locked.ts", "new")])
        failed_id = executor.history[0].id

        host.fs.read_only.clear()
        retry = await executor.retry_action(failed_id)

        assert retry is not None and retry.id != failed_id
        assert host.fs.read_text("locked.ts") == "new"

    @pytest.mark.asyncio
    async def test_retry_successful_action_refused(self):
        executor = executor_for(make_host())
        await executor.execute([Action.create("a", "1")])
        assert await executor.retry_action(executor.history[0].id) is None

    @pytest.mark.asyncio
    async def test_history_bounded(self):
        executor = executor_for(make_host(), max_history=3)
        await executor.execute([Action.create(f"f{i}", str(i)) for i in range(5)])

        assert len(executor.history) == 3
        assert executor.history[0].action.path == "f4"

    @pytest.mark.asyncio
    async def test_results_outlive_history_eviction(self):
        executor = executor_for(make_host(), max_history=3)
        actions = [Action.shell("missing-tool --run")] + [Action.create(f"f{i}", str(i)) for i in range(4)]

        results = await executor.execute(actions)

        assert len(results) == 5
        assert not results[0].success
        assert results[0].command == "missing-tool --run"
        assert all(r.success for r in results[1:])
        assert len(executor.history) == 3

    @pytest.mark.asyncio
    async def test_clear_history_and_completed(self):
        executor = executor_for(make_host())
        await executor.execute([Action.create("a", "1")])
        executor.clear_completed()
        executor.clear_history()
        state = executor.state
        assert state.completed == [] and state.history == []


class TestVerificationHooks:
    @pytest.mark.asyncio
    async def test_verify_writes_restores_on_failure(self):
        host = make_host({"a.ts": "good"})

        class Verifier:
            async def verify_file(self, path):
                return SimpleNamespace(should_rollback=True, rollback_reason="File has 1 error(s)")

        executor = ActionExecutor(host, ExecutorConfig(verify_writes=True), verifier=Verifier())
        (result,) = await executor.execute([Action.modify("a.ts", "bad")])

        assert not result.success
        assert result.restored
        assert "File has 1 error(s)" in result.error
        assert host.fs.read_text("a.ts") == "good"

    @pytest.mark.asyncio
    async def test_verify_writes_keeps_passing_write(self):
        host = make_host({"a.ts": "good"})

        class Verifier:
            async def verify_file(self, path):
                return SimpleNamespace(should_rollback=False, rollback_reason=None)

        executor = ActionExecutor(host, ExecutorConfig(verify_writes=True), verifier=Verifier())
        (result,) = await executor.execute([Action.modify("a.ts", "better")])

        assert result.success and not result.restored
        assert host.fs.read_text("a.ts") == "better"

    @pytest.mark.asyncio
    async def test_changes_recorded_with_tracker(self):
        host = make_host({"a.ts": "x", "b.ts": "y"})
        recorded = []

        class Tracker:
            is_tracking = True

            def record_change(self, path, kind, new_content):
                recorded.append((path, kind, new_content, host.fs.read_text(path)))

        executor = ActionExecutor(host, change_tracker=Tracker())
        await executor.execute([Action.modify("a.ts", "x2"), Action.delete("b.ts")])

        # recorded before the mutation, so the pre-image is still on disk
        assert recorded == [
            ("a.ts", ActionKind.MODIFY, "x2", "x"),
            ("b.ts", ActionKind.DELETE, None, "y"),
        ]
