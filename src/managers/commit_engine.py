"""コミット構築エンジン。

ファイル単位の変更セット（パス → (変更前 blob, 変更後 blob)）を
スタックの下から順に再生してコミットを作り直す。
再生時に変更前の内容が一致しない場合は競合として EngineError を送出する。
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from src.errors import EngineError, WorkspaceReferenceError
from src.managers.workspace_manager import WorkspaceManager
from src.managers.worktree_access import ReadPermission, require_write
from src.models.status import CreateCommitOutcome, RejectedChange
from src.models.workspace import Stack, TreeChange, TreeStatus

logger = logging.getLogger(__name__)

# パス → (変更前 blob ID, 変更後 blob ID)。None はファイルが存在しないことを表す
ChangeSet = dict[str, tuple[str | None, str | None]]

REJECT_BRANCH_TIP_DIFFERS = "workspace_content_differs_from_branch_tip"


@dataclass
class _PlannedCommit:
    """再生予定のコミット。"""

    branch_index: int
    message: str
    created_at: datetime
    changes: ChangeSet = field(default_factory=dict)
    old_id: str | None = None


class CommitEngine(ABC):
    """コミットの作成・書き換えを行うエンジンの基底クラス。"""

    @abstractmethod
    def create_commit(
        self,
        stack_id: str,
        branch_name: str,
        changes: list[TreeChange],
        message: str,
        perm: ReadPermission,
    ) -> CreateCommitOutcome:
        """ブランチの先端に変更をコミットする。"""
        ...

    @abstractmethod
    def amend_commit(
        self,
        stack_id: str,
        commit_id: str,
        changes: list[TreeChange],
        message: str,
        perm: ReadPermission,
    ) -> CreateCommitOutcome:
        """既存コミットに変更とメッセージを反映する。"""
        ...

    @abstractmethod
    def insert_blank_commit(
        self,
        stack_id: str,
        parent_id: str,
        message: str,
        perm: ReadPermission,
    ) -> list[tuple[str, str]]:
        """parent_id の直上に空コミットを挿入する。"""
        ...

    @abstractmethod
    def move_changes_between_commits(
        self,
        source_stack_id: str,
        source_commit_id: str,
        destination_stack_id: str,
        destination_commit_id: str,
        paths: list[str],
        perm: ReadPermission,
    ) -> list[tuple[str, str]]:
        """ファイル単位の変更をコミット間で移動する。"""
        ...


class ReplayCommitEngine(CommitEngine):
    """変更セットの再生でコミットを作り直すエンジン。"""

    def __init__(self, workspace: WorkspaceManager) -> None:
        self.workspace = workspace

    # ========== 変更セット ==========

    def _changeset(self, commit_id: str) -> ChangeSet:
        """コミットが親に対して行った変更セットを返す。"""
        commit = self.workspace.get_commit(commit_id)
        parent_tree = self.workspace.get_commit(commit.parent_id).tree if commit.parent_id else {}
        changes: ChangeSet = {}
        for path in sorted(set(parent_tree) | set(commit.tree)):
            before = parent_tree.get(path)
            after = commit.tree.get(path)
            if before != after:
                changes[path] = (before, after)
        return changes

    def _updates_for(self, change: TreeChange) -> dict[str, str | None]:
        """TreeChange をパス単位の更新（パス → 変更後 blob ID）に変換する。"""
        if change.status == TreeStatus.DELETED:
            return {change.path: None}
        updates: dict[str, str | None] = {}
        if change.status == TreeStatus.RENAMED and change.previous_path:
            updates[change.previous_path] = None
        updates[change.path] = self.workspace.store_blob(change.new_data or b"")
        return updates

    def _plan(self, stack: Stack) -> list[_PlannedCommit]:
        """スタックの全コミットを下から順に再生計画にする。"""
        plan: list[_PlannedCommit] = []
        for index, branch in enumerate(stack.branches):
            for commit_id in branch.commits:
                commit = self.workspace.get_commit(commit_id)
                plan.append(
                    _PlannedCommit(
                        branch_index=index,
                        message=commit.message,
                        created_at=commit.created_at,
                        changes=self._changeset(commit_id),
                        old_id=commit_id,
                    )
                )
        return plan

    def _replay(self, stack: Stack, plan: list[_PlannedCommit]) -> list[tuple[str, str]]:
        """再生計画をベースから順に適用し、スタックのブランチを更新する。

        Returns:
            ID が変わったコミットの (旧ID, 新ID) 一覧（下から順）

        Raises:
            EngineError: 変更前の内容が一致せず再生できない場合
        """
        parent_id = self.workspace.state.base_commit_id
        tree = dict(self.workspace.get_commit(parent_id).tree)
        mapping: list[tuple[str, str]] = []
        branch_commits: list[list[str]] = [[] for _ in stack.branches]

        for planned in plan:
            for path, (before, after) in planned.changes.items():
                if tree.get(path) != before:
                    raise EngineError(
                        f"コミットを再生できません（内容が競合しています）: {path}",
                        path=path,
                        stack_id=stack.id,
                        commit_id=planned.old_id,
                    )
                if after is None:
                    tree.pop(path, None)
                else:
                    tree[path] = after
            commit = self.workspace.write_commit(parent_id, tree, planned.message, planned.created_at)
            if planned.old_id is not None and planned.old_id != commit.id:
                mapping.append((planned.old_id, commit.id))
            branch_commits[planned.branch_index].append(commit.id)
            parent_id = commit.id

        for branch, commit_ids in zip(stack.branches, branch_commits):
            branch.commits = commit_ids
        return mapping

    def _position(self, stack: Stack, plan: list[_PlannedCommit], commit_id: str) -> int:
        resolved = self.workspace.resolve_commit_id(commit_id)
        for index, planned in enumerate(plan):
            if planned.old_id == resolved:
                return index
        raise WorkspaceReferenceError(
            f"コミットはスタックに含まれていません: {commit_id}",
            commit_id=commit_id,
            stack_id=stack.id,
        )

    # ========== 操作 ==========

    def create_commit(
        self,
        stack_id: str,
        branch_name: str,
        changes: list[TreeChange],
        message: str,
        perm: ReadPermission,
    ) -> CreateCommitOutcome:
        require_write(perm)
        workspace = self.workspace
        with workspace.transaction(perm):
            stack = workspace.get_stack(stack_id)
            branch = stack.find_branch(branch_name)
            if branch is None:
                raise WorkspaceReferenceError(
                    f"ブランチが見つかりません: {branch_name}",
                    stack_id=stack_id,
                    branch_name=branch_name,
                )
            branch_index = stack.branches.index(branch)
            parent_id = workspace.branch_base(stack, branch)
            if branch.commits:
                parent_id = branch.commits[-1]
            parent_tree = workspace.get_commit(parent_id).tree
            workspace_tree = workspace.workspace_tree()

            accepted: ChangeSet = {}
            rejected: list[RejectedChange] = []
            for change in changes:
                updates = self._updates_for(change)
                if any(parent_tree.get(path) != workspace_tree.get(path) for path in updates):
                    rejected.append(RejectedChange(reason=REJECT_BRANCH_TIP_DIFFERS, path=change.path))
                    continue
                for path, after in updates.items():
                    accepted[path] = (parent_tree.get(path), after)

            if not accepted:
                raise EngineError(
                    "コミットする変更がありません",
                    stack_id=stack_id,
                    branch_name=branch_name,
                    rejected=[r.path for r in rejected],
                )

            plan = self._plan(stack)
            insert_at = sum(len(b.commits) for b in stack.branches[: branch_index + 1])
            plan.insert(
                insert_at,
                _PlannedCommit(
                    branch_index=branch_index,
                    message=message,
                    created_at=datetime.now(),
                    changes=accepted,
                ),
            )
            mapping = self._replay(stack, plan)
            new_commit = stack.branches[branch_index].commits[-1]
            workspace.update_workspace_commit(perm)

        logger.info(
            f"コミットを作成しました: {branch_name} {new_commit[:12]}"
            f"（{len(accepted)} パス, 却下 {len(rejected)} 件）"
        )
        return CreateCommitOutcome(
            new_commit=new_commit,
            paths_to_rejected_changes=rejected,
            commit_mapping=mapping,
        )

    def amend_commit(
        self,
        stack_id: str,
        commit_id: str,
        changes: list[TreeChange],
        message: str,
        perm: ReadPermission,
    ) -> CreateCommitOutcome:
        require_write(perm)
        workspace = self.workspace
        with workspace.transaction(perm):
            stack = workspace.get_stack(stack_id)
            plan = self._plan(stack)
            position = self._position(stack, plan, commit_id)
            target = plan[position]
            commit_tree = workspace.get_commit(target.old_id).tree
            parent_id = workspace.get_commit(target.old_id).parent_id
            parent_tree = workspace.get_commit(parent_id).tree if parent_id else {}
            workspace_tree = workspace.workspace_tree()

            rejected: list[RejectedChange] = []
            for change in changes:
                updates = self._updates_for(change)
                if any(commit_tree.get(path) != workspace_tree.get(path) for path in updates):
                    rejected.append(RejectedChange(reason=REJECT_BRANCH_TIP_DIFFERS, path=change.path))
                    continue
                for path, after in updates.items():
                    before = parent_tree.get(path)
                    if before == after:
                        target.changes.pop(path, None)
                    else:
                        target.changes[path] = (before, after)

            target.message = message
            mapping = self._replay(stack, plan)
            new_commit = next(
                (new for old, new in mapping if old == target.old_id), target.old_id
            )
            workspace.update_workspace_commit(perm)

        logger.info(f"コミットを amend しました: {target.old_id[:12]} -> {new_commit[:12]}")
        return CreateCommitOutcome(
            new_commit=new_commit,
            paths_to_rejected_changes=rejected,
            commit_mapping=mapping,
        )

    def insert_blank_commit(
        self,
        stack_id: str,
        parent_id: str,
        message: str,
        perm: ReadPermission,
    ) -> list[tuple[str, str]]:
        require_write(perm)
        workspace = self.workspace
        with workspace.transaction(perm) as state:
            stack = workspace.get_stack(stack_id)
            if not stack.branches:
                raise EngineError(f"スタックにブランチがありません: {stack_id}", stack_id=stack_id)
            plan = self._plan(stack)

            resolved_parent = workspace.resolve_commit_id(parent_id)
            if resolved_parent == state.base_commit_id:
                insert_at = 0
                branch_index = 0
            else:
                position = self._position(stack, plan, resolved_parent)
                insert_at = position + 1
                branch_index = plan[position].branch_index

            plan.insert(
                insert_at,
                _PlannedCommit(
                    branch_index=branch_index,
                    message=message,
                    created_at=datetime.now(),
                ),
            )
            descendants = self._replay(stack, plan)
            inserted = stack.commit_ids()[insert_at]
            workspace.update_workspace_commit(perm)

        logger.info(
            f"空コミットを挿入しました: {resolved_parent[:12]} の上に {inserted[:12]}"
            f"（子孫 {len(descendants)} 件を付け替え）"
        )
        return [(resolved_parent, inserted), *descendants]

    def move_changes_between_commits(
        self,
        source_stack_id: str,
        source_commit_id: str,
        destination_stack_id: str,
        destination_commit_id: str,
        paths: list[str],
        perm: ReadPermission,
    ) -> list[tuple[str, str]]:
        require_write(perm)
        workspace = self.workspace
        with workspace.transaction(perm):
            source_stack = workspace.get_stack(source_stack_id)
            destination_stack = workspace.get_stack(destination_stack_id)
            source_plan = self._plan(source_stack)
            same_stack = source_stack.id == destination_stack.id
            destination_plan = source_plan if same_stack else self._plan(destination_stack)

            source = source_plan[self._position(source_stack, source_plan, source_commit_id)]
            destination = destination_plan[
                self._position(destination_stack, destination_plan, destination_commit_id)
            ]
            if source is destination:
                raise EngineError(
                    "移動元と移動先が同じコミットです",
                    commit_id=source.old_id,
                )
            if not paths:
                raise EngineError("移動するファイルが指定されていません", commit_id=source.old_id)

            for path in paths:
                if path not in source.changes:
                    raise EngineError(
                        f"移動元コミットはこのファイルを変更していません: {path}",
                        path=path,
                        commit_id=source.old_id,
                    )
                moved_before, moved_after = source.changes.pop(path)
                if path not in destination.changes:
                    destination.changes[path] = (moved_before, moved_after)
                    continue
                dest_before, dest_after = destination.changes[path]
                if dest_after == moved_before:
                    composed = (dest_before, moved_after)
                elif moved_after == dest_before:
                    composed = (moved_before, dest_after)
                else:
                    raise EngineError(
                        f"移動先コミットの変更と合成できません: {path}",
                        path=path,
                        commit_id=destination.old_id,
                    )
                if composed[0] == composed[1]:
                    destination.changes.pop(path)
                else:
                    destination.changes[path] = composed

            mapping = self._replay(source_stack, source_plan)
            if not same_stack:
                mapping.extend(self._replay(destination_stack, destination_plan))
            workspace.update_workspace_commit(perm)

        logger.info(
            f"ファイル変更を移動しました: {source.old_id[:12]} -> {destination.old_id[:12]}"
            f"（{len(paths)} ファイル, 付け替え {len(mapping)} 件）"
        )
        return mapping
