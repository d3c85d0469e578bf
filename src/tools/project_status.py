"""プロジェクトステータスの集約。

スタック → ブランチ → コミットのビューと、未コミットの変更に
ハンクの割り当てと依存ロックを付けたビューを作る。
"""

import logging

from src.context import WorkspaceContext
from src.models.status import (
    FileChange,
    ProjectStatus,
    RichHunk,
    SimpleBranch,
    SimpleCommit,
    SimpleStack,
)
from src.models.workspace import DiffKind, HunkAssignment, StackEntry, TreeChange, UnifiedDiff

logger = logging.getLogger(__name__)


def entries_to_simple_stacks(ctx: WorkspaceContext, entries: list[StackEntry]) -> list[SimpleStack]:
    """スタック参照からビューを作る。

    アーカイブ済みのブランチとコミットの無いブランチは除外し、
    ブランチが1つも残らないスタックは除外する。
    """
    workspace = ctx.workspace
    stacks: list[SimpleStack] = []
    for entry in entries:
        stack = workspace.get_stack(entry.id)
        branches: list[SimpleBranch] = []
        for branch in stack.branches:
            if branch.archived:
                continue
            commits = [
                SimpleCommit.from_message(commit.id, commit.message)
                for commit in workspace.local_commits(branch)
            ]
            if not commits:
                continue
            branches.append(
                SimpleBranch(name=branch.name, description=branch.description, commits=commits)
            )
        if branches:
            stacks.append(SimpleStack(id=stack.id, name=entry.name, branches=branches))
    return stacks


def get_filtered_changes(ctx: WorkspaceContext, filter_changes: list[str] | None) -> list[TreeChange]:
    """未コミットの変更を返す。指定があればパスで絞り込む（一致しないパスは無視）。"""
    changes = ctx.workspace.worktree_changes()
    if filter_changes is None:
        return changes
    wanted = set(filter_changes)
    return [change for change in changes if change.path in wanted]


def get_file_changes(
    changes_with_diffs: list[tuple[TreeChange, UnifiedDiff]],
    assignments: list[HunkAssignment] | None,
    ctx: WorkspaceContext,
) -> list[FileChange]:
    """変更と差分からファイル変更ビューを作る。

    assignments が None の場合は割り当てを付けない。パッチ以外の差分は除外する。
    """
    file_changes: list[FileChange] = []
    for change, diff in changes_with_diffs:
        if diff.kind != DiffKind.PATCH:
            logger.debug(f"パッチ以外の差分を除外しました: {change.path}（{diff.kind.value}）")
            continue
        hunks: list[RichHunk] = []
        for hunk in diff.hunks:
            if assignments is None:
                stack_id, locks = None, []
            else:
                stack_id, locks = ctx.assignment_table.lookup(assignments, change.path, hunk.header)
            hunks.append(RichHunk(diff=hunk.diff, assigned_to_stack=stack_id, dependency_locks=locks))
        file_changes.append(FileChange(path=change.path, status=change.status_label(), hunks=hunks))
    return file_changes


def get_project_status(ctx: WorkspaceContext, filter_changes: list[str] | None = None) -> ProjectStatus:
    """適用中のスタックと未コミットの変更を返す。"""
    workspace = ctx.workspace
    with workspace.access.shared():
        stacks = entries_to_simple_stacks(ctx, workspace.stack_entries())
        changes = get_filtered_changes(ctx, filter_changes)
        changes_with_diffs = ctx.diff_engine.unified_diff_for_changes(
            changes, ctx.settings.context_lines
        )
        assignments = ctx.assignment_table.assignments(changes_with_diffs)
        file_changes = get_file_changes(changes_with_diffs, assignments, ctx)
    return ProjectStatus(stacks=stacks, file_changes=file_changes)


def commit_details(ctx: WorkspaceContext, commit_id: str) -> list[FileChange]:
    """コミットが親に対して行ったファイル変更を返す（割り当ては付けない）。"""
    workspace = ctx.workspace
    with workspace.access.shared():
        changes = workspace.commit_changes(commit_id)
        changes_with_diffs = ctx.diff_engine.unified_diff_for_changes(
            changes, ctx.settings.context_lines
        )
        return get_file_changes(changes_with_diffs, None, ctx)
