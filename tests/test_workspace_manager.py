"""WorkspaceManager のテスト。"""

import json

import pytest

from conftest import AUTH_GO, write_file
from src.config.settings import Settings
from src.errors import EngineError, WorkspaceReferenceError
from src.managers.workspace_manager import WorkspaceManager, validate_branch_name
from src.models.workspace import TreeStatus


class TestInitialize:
    """初期化のテスト。"""

    def test_creates_state_file(self, workspace, project_dir):
        """状態ファイルとベースコミットが作られることをテスト。"""
        state_path = project_dir / ".stack-workspace" / "workspace.json"
        assert state_path.exists()
        data = json.loads(state_path.read_text(encoding="utf-8"))
        assert data["base_commit_id"] == workspace.state.base_commit_id
        assert set(workspace.get_commit(workspace.state.base_commit_id).tree) == {
            "auth.go",
            "util.go",
            "README.md",
        }

    def test_no_pending_changes_after_initialize(self, workspace):
        """初期化直後は未コミットの変更が無いことをテスト。"""
        assert workspace.worktree_changes() == []

    def test_ensure_initialized_is_idempotent(self, workspace, project_dir, settings):
        """二度目の初期化でベースが変わらないことをテスト。"""
        base = workspace.state.base_commit_id
        other = WorkspaceManager(project_dir, settings)
        other.ensure_initialized()
        assert other.state.base_commit_id == base

    def test_uninitialized_state_raises(self, project_dir, settings):
        """未初期化の状態を参照すると WorkspaceReferenceError になることをテスト。"""
        manager = WorkspaceManager(project_dir, settings)
        with pytest.raises(WorkspaceReferenceError):
            _ = manager.state

    def test_git_base_is_head(self, git_repo):
        """git リポジトリでは HEAD がベースになることをテスト。"""
        settings = Settings(_env_file=None, enable_git=True)
        write_file(git_repo, "auth.go", AUTH_GO.replace("false", "true"))
        write_file(git_repo, "build/out.txt", "ignored\n")
        manager = WorkspaceManager(git_repo, settings)
        manager.ensure_initialized()

        changes = manager.worktree_changes()
        assert [(c.path, c.status) for c in changes] == [("auth.go", TreeStatus.MODIFIED)]


class TestPendingChanges:
    """未コミットの変更のテスト。"""

    def test_detects_changes_and_ignores_state_dir(self, workspace, project_dir):
        """作業ディレクトリの変更を検出し、状態ディレクトリを無視することをテスト。"""
        write_file(project_dir, "auth.go", AUTH_GO.replace("false", "true"))
        write_file(project_dir, "new.txt", "new\n")
        (project_dir / "README.md").unlink()

        changes = workspace.worktree_changes()
        assert [(c.path, c.status) for c in changes] == [
            ("README.md", TreeStatus.DELETED),
            ("auth.go", TreeStatus.MODIFIED),
            ("new.txt", TreeStatus.ADDED),
        ]


class TestStacks:
    """スタック・ブランチ操作のテスト。"""

    def test_create_virtual_branch(self, workspace):
        with workspace.access.exclusive() as guard:
            entry = workspace.create_virtual_branch("feature-a", guard.write_permission())
        assert entry.name == "feature-a"
        assert entry.heads == ["feature-a"]
        assert entry.tip == workspace.state.base_commit_id
        assert workspace.get_stack(entry.id).name == "feature-a"

    def test_branch_name_collision(self, workspace):
        """既存のブランチ名では作成できないことをテスト。"""
        with workspace.access.exclusive() as guard:
            perm = guard.write_permission()
            workspace.create_virtual_branch("feature-a", perm)
            with pytest.raises(EngineError):
                workspace.create_virtual_branch("feature-a", perm)
        assert len(workspace.stacks()) == 1

    def test_dependent_branch_is_stacked_on_top(self, workspace):
        """積んだブランチが最上位になることをテスト。"""
        with workspace.access.exclusive() as guard:
            perm = guard.write_permission()
            entry = workspace.create_virtual_branch("lower", perm)
            stacked = workspace.create_dependent_branch(entry.id, "upper", perm)
        assert stacked.id == entry.id
        assert stacked.heads == ["upper", "lower"]
        assert stacked.name == "upper"

    def test_update_branch_description_overwrites(self, workspace):
        """説明が上書きされることをテスト。"""
        with workspace.access.exclusive() as guard:
            perm = guard.write_permission()
            entry = workspace.create_virtual_branch("feature-a", perm)
            workspace.update_branch_description(entry.id, "feature-a", "first", perm)
            workspace.update_branch_description(entry.id, "feature-a", "second", perm)
        assert workspace.get_stack(entry.id).branches[0].description == "second"

    def test_unknown_stack(self, workspace):
        with pytest.raises(WorkspaceReferenceError):
            workspace.get_stack("missing")

    def test_find_stack_by_branch(self, workspace):
        with workspace.access.exclusive() as guard:
            entry = workspace.create_virtual_branch("feature-a", guard.write_permission())
        assert workspace.find_stack_by_branch("feature-a").id == entry.id
        assert workspace.find_stack_by_branch("feature-b") is None

    @pytest.mark.parametrize("name", ["", "  ", "has space", "a..b", "-lead", "x.lock", "a:b"])
    def test_invalid_branch_names(self, name):
        with pytest.raises(EngineError):
            validate_branch_name(name)


class TestTransaction:
    """トランザクションのテスト。"""

    def test_rolls_back_on_error(self, workspace):
        """例外時に変更が破棄されることをテスト。"""
        with workspace.access.exclusive() as guard:
            perm = guard.write_permission()
            with pytest.raises(RuntimeError):
                with workspace.transaction(perm) as state:
                    state.target_branch = "changed"
                    raise RuntimeError("boom")
        assert workspace.state.target_branch == "main"

    def test_reloads_state_written_by_another_manager(self, workspace, project_dir, settings):
        """他のインスタンスが保存した状態を読み直すことをテスト。"""
        other = WorkspaceManager(project_dir, settings)
        with other.access.exclusive() as guard:
            entry = other.create_virtual_branch("from-other", guard.write_permission())
        assert workspace.get_stack(entry.id).name == "from-other"


class TestCommitLookup:
    """コミット参照のテスト。"""

    def test_resolves_unique_prefix(self, workspace):
        base = workspace.state.base_commit_id
        assert workspace.resolve_commit_id(base[:10]) == base

    def test_short_prefix_is_rejected(self, workspace):
        with pytest.raises(WorkspaceReferenceError):
            workspace.resolve_commit_id(workspace.state.base_commit_id[:4])

    def test_unknown_commit(self, workspace):
        with pytest.raises(WorkspaceReferenceError):
            workspace.get_commit("0" * 40)
