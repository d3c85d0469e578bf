"""ワークツリー排他アクセスのテスト。"""

import threading

import pytest

from src.errors import WorkspacePermissionError
from src.managers.worktree_access import (
    ReadPermission,
    WorktreeAccess,
    WritePermission,
    require_write,
)


@pytest.fixture
def access(temp_dir):
    return WorktreeAccess(temp_dir / "state" / "workspace.lock", timeout_seconds=0.2)


class TestWorktreeAccess:
    """WorktreeAccess のテスト。"""

    def test_exclusive_issues_write_permission(self, access):
        """排他アクセスから書き込み権限が得られることをテスト。"""
        with access.exclusive() as guard:
            assert isinstance(guard.write_permission(), WritePermission)
            assert not isinstance(guard.read_permission(), WritePermission)
        assert access.lock_path.exists()

    def test_shared_accesses_can_overlap(self, access):
        """共有アクセス同士は同時に取得できることをテスト。"""
        with access.shared() as first:
            with access.shared() as second:
                assert isinstance(first, ReadPermission)
                assert isinstance(second, ReadPermission)

    def test_exclusive_waits_for_readers_and_times_out(self, access):
        """読み取り中は排他アクセスがタイムアウトすることをテスト。"""
        with access.shared():
            with pytest.raises(WorkspacePermissionError) as exc_info:
                with access.exclusive():
                    pass
        assert exc_info.value.detail()["kind"] == "permission_error"

    def test_shared_times_out_during_write(self, access):
        """書き込み中は別スレッドの共有アクセスがタイムアウトすることをテスト。"""
        errors: list[Exception] = []

        def reader():
            try:
                with access.shared():
                    pass
            except WorkspacePermissionError as e:
                errors.append(e)

        with access.exclusive():
            thread = threading.Thread(target=reader)
            thread.start()
            thread.join()

        assert len(errors) == 1

    def test_released_after_exit(self, access):
        """解放後は再取得できることをテスト。"""
        with access.exclusive():
            pass
        with access.exclusive():
            pass

    def test_for_project_returns_same_instance(self, temp_dir):
        """同じロックファイルには同じガードを返すことをテスト。"""
        lock_path = temp_dir / "x" / "workspace.lock"
        assert WorktreeAccess.for_project(lock_path) is WorktreeAccess.for_project(lock_path)


class TestRequireWrite:
    """require_write のテスト。"""

    def test_accepts_write_permission(self, access):
        with access.exclusive() as guard:
            require_write(guard.write_permission())

    def test_rejects_read_permission(self, access):
        with access.shared() as perm:
            with pytest.raises(WorkspacePermissionError):
                require_write(perm)

    def test_rejects_none(self):
        with pytest.raises(WorkspacePermissionError):
            require_write(None)
