"""ワークスペース変更操作。

各操作は排他アクセスを保持したまま、次の順で処理する:
未コミットの変更の取得 → 対象の解決 → スナップショット → コミット構築エンジン
→ 結果の記録 → 通知。
"""

import logging

from src.context import WorkspaceContext
from src.managers.notifier import notify_safely
from src.models.params import (
    AmendParameters,
    CommitParameters,
    CreateBlankCommitParameters,
    CreateBranchParameters,
    MoveFileChangesParameters,
)
from src.models.status import CreateCommitOutcome, RejectedChange
from src.models.workspace import StackEntry, TreeChange

logger = logging.getLogger(__name__)

REJECT_NO_PENDING_CHANGE = "no_pending_change"


def compose_message(title: str, body: str) -> str:
    """タイトルと本文を空行でつないだコミットメッセージを作る。"""
    return f"{title.strip()}\n\n{body.strip()}"


def reject_unchanged(outcome: CreateCommitOutcome, changes: list[TreeChange], files: list[str]) -> None:
    """保留中の変更が無い指定パスを却下された変更として結果に加える。"""
    pending = {change.path for change in changes}
    outcome.paths_to_rejected_changes.extend(
        RejectedChange(reason=REJECT_NO_PENDING_CHANGE, path=path) for path in files if path not in pending
    )


def select_changes(changes: list[TreeChange], files: list[str]) -> list[TreeChange]:
    """パスが完全一致する変更だけを残す。"""
    selected = set(files)
    return [change for change in changes if change.path in selected]


def create_commit(
    ctx: WorkspaceContext,
    params: CommitParameters,
    message_id: str | None = None,
) -> CreateCommitOutcome:
    """選択したファイルの変更をブランチにコミットする。

    同名のブランチがあればそのスタックを再利用し、無ければ新しいスタックを作る。
    ブランチの説明は常に上書きする。
    """
    workspace = ctx.workspace
    branch_name = params.branch_name.strip()

    with workspace.access.exclusive() as guard:
        perm = guard.write_permission()
        changes = select_changes(workspace.worktree_changes(), params.files)

        stack = workspace.find_stack_by_branch(branch_name)
        if stack is None:
            stack_id = workspace.create_virtual_branch(branch_name, perm).id
        else:
            stack_id = stack.id
        workspace.update_branch_description(stack_id, branch_name, params.branch_description, perm)

        snapshot = ctx.oplog.take_snapshot("create_commit")
        try:
            outcome = ctx.commit_engine.create_commit(
                stack_id,
                branch_name,
                changes,
                compose_message(params.message_title, params.message_body),
                perm,
            )
        except Exception as e:
            ctx.oplog.record_outcome(snapshot, error=e)
            raise
        else:
            ctx.oplog.record_outcome(snapshot, details={"new_commit": outcome.new_commit})
        finally:
            notify_safely(ctx.notifier, ctx.project_id, stack_id, message_id)

    reject_unchanged(outcome, changes, params.files)
    return outcome


def create_branch(
    ctx: WorkspaceContext,
    params: CreateBranchParameters,
    message_id: str | None = None,
) -> StackEntry:
    """新しいスタックとブランチを作成する。

    stack_id を指定した場合は既存スタックの最上位にブランチを積む。
    """
    workspace = ctx.workspace
    with workspace.access.exclusive() as guard:
        perm = guard.write_permission()
        if params.stack_id:
            entry = workspace.create_dependent_branch(params.stack_id, params.branch_name, perm)
        else:
            entry = workspace.create_virtual_branch(params.branch_name, perm)
        workspace.update_branch_description(entry.id, entry.heads[0], params.branch_description, perm)
        notify_safely(ctx.notifier, ctx.project_id, entry.id, message_id)
    return entry


def amend_commit(
    ctx: WorkspaceContext,
    params: AmendParameters,
    message_id: str | None = None,
) -> CreateCommitOutcome:
    """コミットのメッセージと内容を書き換える。

    files が空ならメッセージのみを書き換える。
    通知はエンジンの結果に関わらず、呼び出し側に結果を返す前に送る。
    """
    workspace = ctx.workspace
    with workspace.access.exclusive() as guard:
        perm = guard.write_permission()
        changes = select_changes(workspace.worktree_changes(), params.files) if params.files else []

        stack = workspace.get_stack(params.stack_id)
        workspace.locate_commit(stack, params.commit_id)

        snapshot = ctx.oplog.take_snapshot("amend_commit")
        try:
            outcome = ctx.commit_engine.amend_commit(
                stack.id,
                params.commit_id,
                changes,
                compose_message(params.message_title, params.message_body),
                perm,
            )
        except Exception as e:
            ctx.oplog.record_outcome(snapshot, error=e)
            raise
        else:
            ctx.oplog.record_outcome(snapshot, details={"new_commit": outcome.new_commit})
        finally:
            notify_safely(ctx.notifier, ctx.project_id, stack.id, message_id)

    reject_unchanged(outcome, changes, params.files or [])
    return outcome


def create_blank_commit(
    ctx: WorkspaceContext,
    params: CreateBlankCommitParameters,
    message_id: str | None = None,
) -> list[tuple[str, str]]:
    """parent_id の直上に空コミットを挿入し、付け替えた (旧ID, 新ID) 一覧を返す。

    挿入したコミットは (parent_id, 新ID) として先頭に含める。
    """
    workspace = ctx.workspace
    with workspace.access.exclusive() as guard:
        perm = guard.write_permission()
        stack = workspace.get_stack(params.stack_id)

        snapshot = ctx.oplog.take_snapshot("insert_blank_commit")
        try:
            mapping = ctx.commit_engine.insert_blank_commit(
                stack.id,
                params.parent_id,
                compose_message(params.message_title, params.message_body),
                perm,
            )
        except Exception as e:
            ctx.oplog.record_outcome(snapshot, error=e)
            raise
        ctx.oplog.record_outcome(snapshot, details={"commit_mapping": mapping})

    notify_safely(ctx.notifier, ctx.project_id, stack.id, message_id)
    return mapping


def move_file_changes(
    ctx: WorkspaceContext,
    params: MoveFileChangesParameters,
    message_id: str | None = None,
) -> list[tuple[str, str]]:
    """ファイル単位の変更をコミット間で移動し、付け替えた (旧ID, 新ID) 一覧を返す。"""
    workspace = ctx.workspace
    with workspace.access.exclusive() as guard:
        perm = guard.write_permission()
        source_stack = workspace.get_stack(params.source_stack_id)
        destination_stack = workspace.get_stack(params.destination_stack_id)

        snapshot = ctx.oplog.take_snapshot("move_file_changes")
        try:
            mapping = ctx.commit_engine.move_changes_between_commits(
                source_stack.id,
                params.source_commit_id,
                destination_stack.id,
                params.destination_commit_id,
                params.files,
                perm,
            )
        except Exception as e:
            ctx.oplog.record_outcome(snapshot, error=e)
            raise
        ctx.oplog.record_outcome(snapshot, details={"commit_mapping": mapping})

    notify_safely(ctx.notifier, ctx.project_id, source_stack.id, message_id)
    notify_safely(ctx.notifier, ctx.project_id, destination_stack.id, message_id)
    return mapping
