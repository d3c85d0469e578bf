"""プロジェクトステータスのテスト。"""

import os
import subprocess

from conftest import AUTH_GO, README, UTIL_GO, write_file
from src.config.settings import Settings
from src.context import WorkspaceContext
from src.managers.diff_engine import NO_NEWLINE_MARKER
from src.models.status import SimpleCommit
from src.models.workspace import HunkAssignment
from src.tools.project_status import commit_details, get_project_status
from src.tools.workspace_tools import workspace_toolset


def commit(ctx, branch_name, files, title="Title"):
    result = workspace_toolset(ctx).dispatch(
        "commit",
        {
            "message_title": title,
            "message_body": "Body",
            "branch_name": branch_name,
            "branch_description": f"{branch_name} description",
            "files": files,
        },
    )
    assert result.is_ok
    return result.data["newCommit"]


class TestSimpleCommit:
    """SimpleCommit.from_message のテスト。"""

    def test_split_title_and_body(self):
        commit = SimpleCommit.from_message("abc", "Title\n\nFirst line\nSecond line")
        assert commit.message_title == "Title"
        assert commit.message_body == "First line\nSecond line"

    def test_title_only(self):
        commit = SimpleCommit.from_message("abc", "Title")
        assert commit.message_title == "Title"
        assert commit.message_body == ""


class TestStacks:
    """スタックビューのテスト。"""

    def test_archived_and_empty_branches_are_omitted(self, workspace_ctx, project_dir):
        """アーカイブ済みとコミットの無いブランチが除外されることをテスト。"""
        write_file(project_dir, "auth.go", AUTH_GO.replace("false", "true"))
        commit(workspace_ctx, "auth", ["auth.go"])
        write_file(project_dir, "util.go", UTIL_GO.replace("a + b", "b + a"))
        commit(workspace_ctx, "util", ["util.go"])
        workspace = workspace_ctx.workspace
        with workspace.access.exclusive() as guard:
            perm = guard.write_permission()
            workspace.create_virtual_branch("empty", perm)
            with workspace.transaction(perm) as state:
                util_stack = next(s for s in state.stacks if s.name == "util")
                util_stack.branches[0].archived = True

        status = get_project_status(workspace_ctx)

        assert [stack.name for stack in status.stacks] == ["auth"]
        assert status.stacks[0].branches[0].description == "auth description"

    def test_commits_newest_first(self, workspace_ctx, project_dir):
        write_file(project_dir, "auth.go", AUTH_GO.replace("false", "true"))
        first = commit(workspace_ctx, "feature", ["auth.go"], title="First")
        write_file(project_dir, "util.go", UTIL_GO.replace("a + b", "b + a"))
        second = commit(workspace_ctx, "feature", ["util.go"], title="Second")

        [stack] = get_project_status(workspace_ctx).stacks
        assert [c.id for c in stack.branches[0].commits] == [second, first]


class TestFileChanges:
    """ファイル変更ビューのテスト。"""

    def test_lists_pending_changes(self, workspace_ctx, project_dir):
        write_file(project_dir, "auth.go", AUTH_GO.replace("false", "true"))
        write_file(project_dir, "notes.txt", "hello\n")

        status = get_project_status(workspace_ctx)

        assert [(f.path, f.status) for f in status.file_changes] == [
            ("auth.go", "modified"),
            ("notes.txt", "added"),
        ]
        [hunk] = status.file_changes[0].hunks
        assert "-\treturn false" in hunk.diff
        assert "+\treturn true" in hunk.diff
        assert hunk.assigned_to_stack is None
        assert hunk.dependency_locks == []

    def test_filter_changes(self, workspace_ctx, project_dir):
        """指定したパスだけに絞り込み、一致しないパスは無視することをテスト。"""
        write_file(project_dir, "auth.go", AUTH_GO.replace("false", "true"))
        write_file(project_dir, "util.go", UTIL_GO.replace("a + b", "b + a"))

        status = get_project_status(workspace_ctx, ["util.go", "nope.txt"])

        assert [f.path for f in status.file_changes] == ["util.go"]

    def test_binary_changes_are_skipped(self, workspace_ctx, project_dir):
        """バイナリファイルの変更は表示されないことをテスト。"""
        (project_dir / "image.bin").write_bytes(b"\x89PNG\x00\x01\x02")
        write_file(project_dir, "README.md", README.replace("line two", "line 2"))

        status = get_project_status(workspace_ctx)

        assert [f.path for f in status.file_changes] == ["README.md"]

    def test_assigned_hunk(self, workspace_ctx, project_dir):
        """保存した割り当てがハンクに反映されることをテスト。"""
        write_file(project_dir, "README.md", README.replace("line two", "line 2"))
        workspace = workspace_ctx.workspace
        with workspace.access.exclusive() as guard:
            perm = guard.write_permission()
            stack_id = workspace.create_virtual_branch("docs", perm).id
            [(_, diff)] = workspace_ctx.diff_engine.unified_diff_for_changes(
                workspace.worktree_changes(), workspace_ctx.settings.context_lines
            )
            workspace_ctx.assignment_table.assign(
                [HunkAssignment(path="README.md", hunk_header=diff.hunks[0].header, stack_id=stack_id)],
                perm,
            )

        [file_change] = get_project_status(workspace_ctx).file_changes
        assert file_change.hunks[0].assigned_to_stack == stack_id

    def test_is_read_only(self, workspace_ctx, project_dir):
        """読み取りを繰り返しても結果も状態も変わらないことをテスト。"""
        write_file(project_dir, "auth.go", AUTH_GO.replace("false", "true"))
        commit(workspace_ctx, "auth", ["auth.go"])
        write_file(project_dir, "util.go", UTIL_GO.replace("a + b", "b + a"))
        state_path = workspace_ctx.workspace.state_path
        before = state_path.read_bytes()

        first = get_project_status(workspace_ctx)
        second = get_project_status(workspace_ctx)

        assert first == second
        assert state_path.read_bytes() == before

    def test_committed_symlink_is_not_pending(self, git_repo):
        """コミット済みのシンボリックリンクが削除扱いにならないことをテスト。"""
        os.symlink("auth.go", git_repo / "link.go")
        subprocess.run(
            ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", "add", "link.go"],
            cwd=git_repo,
            check=True,
            capture_output=True,
        )
        subprocess.run(
            ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", "commit", "-m", "link"],
            cwd=git_repo,
            check=True,
            capture_output=True,
        )
        ctx = WorkspaceContext.open(git_repo, Settings(_env_file=None, enable_git=True))

        assert get_project_status(ctx).file_changes == []

    def test_trailing_newline_change(self, workspace_ctx, project_dir):
        """末尾改行を消しただけの変更もハンクとして表示されることをテスト。"""
        write_file(project_dir, "util.go", UTIL_GO.rstrip("\n"))

        [file_change] = get_project_status(workspace_ctx).file_changes

        assert file_change.path == "util.go"
        [hunk] = file_change.hunks
        assert NO_NEWLINE_MARKER in hunk.diff
        assert hunk.dependency_locks == []


class TestCommitDetails:
    """commit_details のテスト。"""

    def test_returns_changes_of_commit(self, workspace_ctx, project_dir):
        write_file(project_dir, "auth.go", AUTH_GO.replace("false", "true"))
        write_file(project_dir, "docs/guide.md", "guide\n")
        commit_id = commit(workspace_ctx, "feature", ["auth.go", "docs/guide.md"])

        details = commit_details(workspace_ctx, commit_id[:12])

        assert [(f.path, f.status) for f in details] == [
            ("auth.go", "modified"),
            ("docs/guide.md", "added"),
        ]
        assert all(h.assigned_to_stack is None for f in details for h in f.hunks)
        assert "+guide" in details[1].hunks[0].diff

    def test_unknown_commit_envelope(self, workspace_ctx):
        result = workspace_toolset(workspace_ctx).dispatch(
            "get_commit_details", {"commit_id": "0" * 40}
        )
        assert result.action_identifier == "get_commit_details"
        assert result.error.detail["kind"] == "reference_error"
