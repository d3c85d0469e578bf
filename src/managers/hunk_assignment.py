"""ハンク割り当てテーブル。

未コミットのハンクをどのスタックに割り当てるかを保持する。
割り当ての検索は (path, hunk_header) の完全一致のみ。

依存ロック:
    ハンクが変更する行を最後に変更したスタック内コミット。
    保存された割り当てが無いハンクは、ロックを持つスタックが1つだけなら
    そのスタックに割り当てる。
"""

import difflib
import logging

from src.managers.diff_engine import NO_NEWLINE_MARKER, decode_text, split_lines
from src.managers.workspace_manager import WorkspaceManager
from src.managers.worktree_access import ReadPermission
from src.models.workspace import (
    HunkAssignment,
    HunkHeader,
    HunkLock,
    Stack,
    TreeChange,
    TreeStatus,
    UnifiedDiff,
)

logger = logging.getLogger(__name__)


def touched_old_lines(header: HunkHeader, diff: str) -> set[int]:
    """ハンクが変更する変更前側の行番号（1始まり）を返す。

    追加のみの箇所は挿入位置の前後の行を含める。
    """
    touched: set[int] = set()
    old_line = header.old_start
    for line in diff.split("\n")[1:]:
        if not line or line == NO_NEWLINE_MARKER:
            continue
        if line.startswith("-"):
            touched.add(old_line)
            old_line += 1
        elif line.startswith("+"):
            touched.update((old_line - 1, old_line))
        else:
            old_line += 1
    return touched


class HunkAssignmentTable:
    """永続化されたハンク割り当てと依存ロックの計算。"""

    def __init__(self, workspace: WorkspaceManager) -> None:
        self.workspace = workspace

    def stored(self) -> list[HunkAssignment]:
        return list(self.workspace.state.assignments)

    def assign(self, assignments: list[HunkAssignment], perm: ReadPermission) -> None:
        """割り当てを保存する。同じ (path, hunk_header) の既存割り当ては置き換える。"""
        with self.workspace.transaction(perm) as state:
            for assignment in assignments:
                if assignment.stack_id is not None:
                    self.workspace.get_stack(assignment.stack_id)
                state.assignments = [
                    a
                    for a in state.assignments
                    if (a.path, a.hunk_header) != (assignment.path, assignment.hunk_header)
                ]
                state.assignments.append(
                    HunkAssignment(
                        path=assignment.path,
                        hunk_header=assignment.hunk_header,
                        stack_id=assignment.stack_id,
                    )
                )
        logger.info(f"ハンク割り当てを保存しました: {len(assignments)} 件")

    def _line_owners(self, stack: Stack, path: str) -> list[str | None] | None:
        """スタック先端でのファイルの各行を最後に変更したコミットIDを返す。

        スタックがこのファイルを変更していない場合は None。
        """
        workspace = self.workspace
        base_tree = workspace.get_commit(workspace.state.base_commit_id).tree
        blob = base_tree.get(path)
        text = decode_text(workspace.read_blob(blob)) if blob else ""
        if text is None:
            return None
        lines = split_lines(text)
        owners: list[str | None] = [None] * len(lines)
        touched = False

        for commit_id in stack.commit_ids():
            commit = workspace.get_commit(commit_id)
            after_blob = commit.tree.get(path)
            if after_blob == blob:
                continue
            touched = True
            new_text = decode_text(workspace.read_blob(after_blob)) if after_blob else ""
            if new_text is None:
                return None
            new_lines = split_lines(new_text)
            new_owners: list[str | None] = []
            matcher = difflib.SequenceMatcher(a=lines, b=new_lines, autojunk=False)
            for tag, i1, i2, j1, j2 in matcher.get_opcodes():
                if tag == "equal":
                    new_owners.extend(owners[i1:i2])
                else:
                    new_owners.extend([commit.id] * (j2 - j1))
            blob, lines, owners = after_blob, new_lines, new_owners

        return owners if touched else None

    def dependency_locks(self, change: TreeChange, header: HunkHeader, diff: str) -> list[HunkLock]:
        """ハンクの依存ロックを計算する。"""
        path = change.previous_path if change.status == TreeStatus.RENAMED else change.path
        if change.status == TreeStatus.ADDED or not path:
            return []
        lines = touched_old_lines(header, diff)
        locks: list[HunkLock] = []
        for stack in self.workspace.stacks():
            owners = self._line_owners(stack, path)
            if owners is None:
                continue
            for line_no in sorted(lines):
                if 1 <= line_no <= len(owners):
                    owner = owners[line_no - 1]
                    lock = HunkLock(stack_id=stack.id, commit_id=owner) if owner else None
                    if lock is not None and lock not in locks:
                        locks.append(lock)
        return locks

    def assignments(self, changes_with_diffs: list[tuple[TreeChange, UnifiedDiff]]) -> list[HunkAssignment]:
        """現在のハンクごとの割り当てを返す。

        保存された割り当ては現存するハンクのものだけを残し、ロックを更新する。
        割り当ての無いハンクはロックを持つスタックが1つだけならそこに割り当てる。
        """
        stored = {(a.path, a.hunk_header): a for a in self.workspace.state.assignments}
        in_workspace = {stack.id for stack in self.workspace.stacks()}
        result: list[HunkAssignment] = []

        for change, diff in changes_with_diffs:
            for hunk in diff.hunks:
                locks = self.dependency_locks(change, hunk.header, hunk.diff)
                existing = stored.get((change.path, hunk.header))
                if existing is not None and existing.stack_id in in_workspace:
                    stack_id = existing.stack_id
                else:
                    locking_stacks = {lock.stack_id for lock in locks}
                    stack_id = locking_stacks.pop() if len(locking_stacks) == 1 else None
                result.append(
                    HunkAssignment(
                        path=change.path,
                        hunk_header=hunk.header,
                        stack_id=stack_id,
                        hunk_locks=locks,
                    )
                )
        return result

    def lookup(
        self,
        assignments: list[HunkAssignment],
        path: str,
        header: HunkHeader,
    ) -> tuple[str | None, list[HunkLock]]:
        """(path, hunk_header) が完全一致する割り当てを返す。無ければ (None, [])。"""
        for assignment in assignments:
            if assignment.path == path and assignment.hunk_header == header:
                return assignment.stack_id, list(assignment.hunk_locks or [])
        return None, []
