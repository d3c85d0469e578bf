"""OplogManager のテスト。"""

import pytest

from src.errors import WorkspaceReferenceError
from src.managers.oplog_manager import OplogManager


@pytest.fixture
def oplog(workspace):
    return OplogManager(workspace, enabled=True, max_entries=3)


class TestSnapshots:
    """スナップショットのテスト。"""

    def test_take_and_record_ok(self, oplog):
        """スナップショットと成功結果が記録されることをテスト。"""
        snapshot = oplog.take_snapshot("create_commit")
        oplog.record_outcome(snapshot, details={"new_commit": "abc"})

        assert oplog.oplog_path.exists()
        [entry] = oplog.list_entries()
        assert entry.snapshot_id == snapshot.id
        assert entry.operation == "create_commit"
        assert entry.status == "ok"
        assert entry.details == {"new_commit": "abc"}

    def test_record_error(self, oplog):
        snapshot = oplog.take_snapshot("amend_commit")
        oplog.record_outcome(snapshot, error=RuntimeError("conflict"))
        [entry] = oplog.list_entries()
        assert entry.status == "error"
        assert entry.error == "conflict"

    def test_disabled_returns_none(self, workspace):
        """無効化時はスナップショットを取らないことをテスト。"""
        oplog = OplogManager(workspace, enabled=False)
        snapshot = oplog.take_snapshot("create_commit")
        assert snapshot is None
        oplog.record_outcome(snapshot, details={})
        assert not oplog.oplog_path.exists()

    def test_failure_is_swallowed(self, oplog, monkeypatch):
        """保存に失敗しても例外を送出しないことをテスト。"""

        def fail(data):
            raise OSError("disk full")

        monkeypatch.setattr(oplog, "_save", fail)
        assert oplog.take_snapshot("create_commit") is None

    def test_record_failure_is_swallowed(self, oplog, monkeypatch):
        snapshot = oplog.take_snapshot("create_commit")
        monkeypatch.setattr(oplog, "_load", lambda: (_ for _ in ()).throw(ValueError("broken")))
        oplog.record_outcome(snapshot, details={})

    def test_orphaned_snapshot_is_tolerated(self, oplog):
        """結果の無いスナップショットが残っても一覧できることをテスト。"""
        oplog.take_snapshot("create_commit")
        assert len(oplog.list_snapshots()) == 1
        assert oplog.list_entries() == []

    def test_prunes_oldest(self, oplog):
        """上限を超えた古いスナップショットと記録が削除されることをテスト。"""
        snapshots = []
        for i in range(5):
            snapshot = oplog.take_snapshot(f"op{i}")
            oplog.record_outcome(snapshot)
            snapshots.append(snapshot)

        kept = [s.operation for s in oplog.list_snapshots()]
        assert kept == ["op4", "op3", "op2"]
        assert {e.snapshot_id for e in oplog.list_entries()} == {s.id for s in snapshots[2:]}


class TestRestore:
    """restore のテスト。"""

    def test_restores_previous_state(self, workspace, oplog):
        """スナップショット時点の状態に戻ることをテスト。"""
        snapshot = oplog.take_snapshot("create_branch")
        with workspace.access.exclusive() as guard:
            workspace.create_virtual_branch("feature-a", guard.write_permission())
        assert len(workspace.stacks()) == 1

        with workspace.access.exclusive() as guard:
            oplog.restore(snapshot.id, guard.write_permission())

        assert workspace.stacks() == []
        assert oplog.list_snapshots()[0].operation == "restore"

    def test_unknown_snapshot(self, workspace, oplog):
        with workspace.access.exclusive() as guard:
            with pytest.raises(WorkspaceReferenceError):
                oplog.restore("missing", guard.write_permission())

    def test_snapshot_excludes_blobs(self, workspace, oplog):
        """大きな blob を保存してもスナップショットが大きくならないことをテスト。"""
        oplog.take_snapshot("first")
        size_before = oplog.oplog_path.stat().st_size
        with workspace.access.exclusive() as guard:
            with workspace.transaction(guard.write_permission()):
                workspace.store_blob(b"x" * 200_000)

        snapshot = oplog.take_snapshot("second")

        assert "blobs" not in snapshot.state
        assert oplog.oplog_path.stat().st_size < size_before * 3

    def test_restore_keeps_blobs(self, workspace, oplog, project_dir):
        """戻した後もコミットの内容を読めることをテスト。"""
        snapshot = oplog.take_snapshot("create_branch")
        with workspace.access.exclusive() as guard:
            oplog.restore(snapshot.id, guard.write_permission())

        base = workspace.get_commit(workspace.state.base_commit_id)
        assert workspace.read_blob(base.tree["auth.go"]) == (project_dir / "auth.go").read_bytes()
