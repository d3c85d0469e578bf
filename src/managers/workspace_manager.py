"""ワークスペース状態管理モジュール。

スタック・ブランチ・コミットと、コンテンツアドレスのオブジェクトストアを
{project}/.stack-workspace/workspace.json に永続化する。

ワークスペースコミット:
    ベースコミットのツリーに、適用中の全スタック先端の変更を重ねたもの。
    未コミットの変更は、ワークスペースコミットと作業ディレクトリの差分として計算する。
"""

import base64
import hashlib
import json
import logging
import os
import tempfile
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings
from src.errors import EngineError, WorkspaceReferenceError
from src.managers.diff_engine import tree_changes
from src.managers.git_files import list_worktree_files, read_head_tree, resolve_repo_root
from src.managers.worktree_access import ReadPermission, WorktreeAccess, require_write
from src.models.workspace import (
    Branch,
    Commit,
    Stack,
    StackEntry,
    TreeChange,
    WorkspaceState,
)

logger = logging.getLogger(__name__)

WORKSPACE_COMMIT_MESSAGE = "Workspace commit\n\nThis commit tracks the tips of all applied stacks."

# コミットID の短縮形として受け付ける最小長
MIN_COMMIT_PREFIX = 7


def blob_id(data: bytes) -> str:
    """内容から blob ID を計算する。"""
    return hashlib.sha1(data).hexdigest()


def commit_id_for(parent_id: str | None, tree: dict[str, str], message: str, created_at: datetime) -> str:
    """コミット内容からコミットID を計算する。"""
    payload = json.dumps(
        {
            "parent": parent_id,
            "tree": sorted(tree.items()),
            "message": message,
            "created_at": created_at.isoformat(),
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def validate_branch_name(name: str) -> str:
    """ブランチ名を検証する。

    Raises:
        EngineError: git のブランチ名として使えない場合
    """
    candidate = name.strip()
    if not candidate:
        raise EngineError("ブランチ名が空です", branch_name=name)
    invalid = [ch for ch in (" ", "\t", "\n", "~", "^", ":", "?", "*", "[", "\\") if ch in candidate]
    if invalid or ".." in candidate or candidate.startswith("-") or candidate.endswith(".lock"):
        raise EngineError(f"無効なブランチ名です: {name}", branch_name=name)
    return candidate


def atomic_write_json(file_path: Path, payload: str) -> None:
    """JSON をアトミックに書き込む。"""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(file_path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_path, str(file_path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class WorkspaceManager:
    """1プロジェクト分のワークスペース状態を管理するクラス。"""

    def __init__(self, project_root: str | os.PathLike[str], settings: Settings) -> None:
        """WorkspaceManagerを初期化する。

        Args:
            project_root: ワークスペース（作業ディレクトリ）のルート
            settings: 設定
        """
        self.project_root = Path(project_root).expanduser().resolve()
        self.settings = settings
        self.state_dir = settings.state_dir(self.project_root)
        self.state_path = self.state_dir / "workspace.json"
        self.access = WorktreeAccess.for_project(
            self.state_dir / "workspace.lock", settings.lock_timeout_seconds
        )
        self._state: WorkspaceState | None = None
        self._state_signature: tuple[int, int, int] | None = None
        self._transaction_depth = 0
        self._use_git = settings.enable_git and resolve_repo_root(self.project_root) is not None

    # ========== 永続化 ==========

    @property
    def is_initialized(self) -> bool:
        return self.state_path.exists()

    def _file_signature(self) -> tuple[int, int, int]:
        stat = self.state_path.stat()
        return stat.st_mtime_ns, stat.st_ino, stat.st_size

    @property
    def state(self) -> WorkspaceState:
        """現在の状態。ファイルが他から更新されていれば読み直す。"""
        if self._transaction_depth == 0 and self.state_path.exists():
            signature = self._file_signature()
            if self._state is None or signature != self._state_signature:
                self._state = WorkspaceState.model_validate_json(
                    self.state_path.read_text(encoding="utf-8")
                )
                self._state_signature = signature
        if self._state is None:
            raise WorkspaceReferenceError(
                f"ワークスペースが初期化されていません: {self.project_root}"
            )
        return self._state

    @property
    def project_id(self) -> str:
        return self.state.project_id

    def ensure_initialized(self) -> None:
        """状態ファイルが無ければベースコミットを作って初期化する。"""
        if self.is_initialized:
            return
        with self.access.exclusive() as guard:
            if self.is_initialized:
                return
            self.initialize(guard.write_permission())

    def initialize(self, perm: ReadPermission) -> WorkspaceState:
        """現在の HEAD（git 管理外なら作業ディレクトリ）をベースに状態を作る。"""
        require_write(perm)
        if self._use_git:
            base_files = read_head_tree(self.project_root)
        else:
            base_files = self.worktree_files()

        state = WorkspaceState(
            project_id=str(uuid.uuid4()),
            target_branch=self.settings.default_target_branch,
            base_commit_id="",
        )
        self._state = state
        tree = {path: self.store_blob(data) for path, data in base_files.items()}
        base = self.write_commit(None, tree, f"Base of {state.target_branch}")
        state.base_commit_id = base.id
        state.workspace_commit_id = base.id
        self.save()
        logger.info(f"ワークスペースを初期化しました: {self.project_root} (base={base.id[:12]})")
        return state

    def save(self) -> None:
        """状態をファイルに書き込む。"""
        state = self.state
        atomic_write_json(self.state_path, state.model_dump_json(indent=2))
        self._state_signature = self._file_signature()

    def restore_state(self, state: WorkspaceState, perm: ReadPermission) -> None:
        """状態を丸ごと置き換えて保存する。"""
        require_write(perm)
        self._state = state
        self.save()

    @contextmanager
    def transaction(self, perm: ReadPermission) -> Iterator[WorkspaceState]:
        """状態を変更するトランザクション。

        例外が発生した場合は変更を破棄し、成功時のみ保存する。
        入れ子の場合は最も外側でまとめて保存する。
        """
        require_write(perm)
        state = self.state
        if self._transaction_depth > 0:
            self._transaction_depth += 1
            try:
                yield state
            finally:
                self._transaction_depth -= 1
            return

        backup = state.model_copy(deep=True)
        self._transaction_depth = 1
        try:
            yield state
        except BaseException:
            self._state = backup
            raise
        else:
            self.save()
        finally:
            self._transaction_depth = 0

    # ========== オブジェクトストア ==========

    def store_blob(self, data: bytes) -> str:
        """内容を保存して blob ID を返す。"""
        object_id = blob_id(data)
        self.state.blobs.setdefault(object_id, base64.b64encode(data).decode("ascii"))
        return object_id

    def read_blob(self, object_id: str) -> bytes:
        encoded = self.state.blobs.get(object_id)
        if encoded is None:
            raise WorkspaceReferenceError(f"blob が見つかりません: {object_id}", blob_id=object_id)
        return base64.b64decode(encoded)

    def write_commit(
        self,
        parent_id: str | None,
        tree: dict[str, str],
        message: str,
        created_at: datetime | None = None,
    ) -> Commit:
        """コミットを書き込む。"""
        created_at = created_at or datetime.now()
        commit = Commit(
            id=commit_id_for(parent_id, tree, message, created_at),
            parent_id=parent_id,
            tree=dict(tree),
            message=message,
            created_at=created_at,
        )
        self.state.commits[commit.id] = commit
        return commit

    def resolve_commit_id(self, commit_id: str) -> str:
        """完全なコミットID か一意な短縮形を完全なID に解決する。

        Raises:
            WorkspaceReferenceError: 解決できない場合
        """
        commit_id = commit_id.strip().lower()
        commits = self.state.commits
        if commit_id in commits:
            return commit_id
        if len(commit_id) >= MIN_COMMIT_PREFIX:
            matches = [cid for cid in commits if cid.startswith(commit_id)]
            if len(matches) == 1:
                return matches[0]
        raise WorkspaceReferenceError(f"コミットが見つかりません: {commit_id}", commit_id=commit_id)

    def get_commit(self, commit_id: str) -> Commit:
        return self.state.commits[self.resolve_commit_id(commit_id)]

    def read_tree(self, commit_id: str) -> dict[str, bytes]:
        """コミットのツリー内容（パス → 内容）を返す。"""
        commit = self.get_commit(commit_id)
        return {path: self.read_blob(oid) for path, oid in commit.tree.items()}

    def commit_changes(self, commit_id: str) -> list[TreeChange]:
        """コミットが親に対して行った変更を返す。"""
        commit = self.get_commit(commit_id)
        parent_tree = self.read_tree(commit.parent_id) if commit.parent_id else {}
        return tree_changes(parent_tree, self.read_tree(commit.id))

    # ========== スタック・ブランチ ==========

    def stacks(self, in_workspace_only: bool = True) -> list[Stack]:
        return [s for s in self.state.stacks if s.in_workspace or not in_workspace_only]

    def stack_entries(self) -> list[StackEntry]:
        base = self.state.base_commit_id
        return [StackEntry.from_stack(stack, base) for stack in self.stacks()]

    def get_stack(self, stack_id: str) -> Stack:
        """スタックを取得する。

        Raises:
            WorkspaceReferenceError: 存在しない場合
        """
        for stack in self.state.stacks:
            if stack.id == stack_id.strip():
                return stack
        raise WorkspaceReferenceError(f"スタックが見つかりません: {stack_id}", stack_id=stack_id)

    def find_stack_by_branch(self, branch_name: str) -> Stack | None:
        """ブランチ名を含む適用中のスタックを返す。"""
        for stack in self.stacks():
            if stack.find_branch(branch_name) is not None:
                return stack
        return None

    def _ensure_branch_name_free(self, state: WorkspaceState, branch_name: str) -> None:
        for stack in state.stacks:
            if stack.find_branch(branch_name) is not None:
                raise EngineError(
                    f"ブランチ名が既に使われています: {branch_name}",
                    branch_name=branch_name,
                    stack_id=stack.id,
                )

    def create_virtual_branch(self, name: str, perm: ReadPermission) -> StackEntry:
        """新しいスタックとブランチを作成する。

        Raises:
            EngineError: 名前が無効、または既存ブランチと衝突する場合
        """
        branch_name = validate_branch_name(name)
        with self.transaction(perm) as state:
            self._ensure_branch_name_free(state, branch_name)
            stack = Stack(
                id=str(uuid.uuid4()),
                branches=[Branch(name=branch_name)],
                created_at=datetime.now(),
            )
            state.stacks.append(stack)
        logger.info(f"スタックを作成しました: {branch_name} ({stack.id})")
        return StackEntry.from_stack(stack, self.state.base_commit_id)

    def create_dependent_branch(self, stack_id: str, name: str, perm: ReadPermission) -> StackEntry:
        """既存スタックの最上位に新しいブランチを積む。"""
        branch_name = validate_branch_name(name)
        with self.transaction(perm) as state:
            self._ensure_branch_name_free(state, branch_name)
            stack = self.get_stack(stack_id)
            stack.branches.append(Branch(name=branch_name))
        logger.info(f"ブランチをスタックに積みました: {branch_name} ({stack.id})")
        return StackEntry.from_stack(stack, self.state.base_commit_id)

    def update_branch_description(
        self,
        stack_id: str,
        branch_name: str,
        description: str | None,
        perm: ReadPermission,
    ) -> None:
        """ブランチの説明を上書きする（マージではなく置き換え）。"""
        with self.transaction(perm):
            stack = self.get_stack(stack_id)
            branch = stack.find_branch(branch_name)
            if branch is None:
                raise WorkspaceReferenceError(
                    f"ブランチが見つかりません: {branch_name}",
                    stack_id=stack_id,
                    branch_name=branch_name,
                )
            branch.description = description

    def branch_base(self, stack: Stack, branch: Branch) -> str:
        """ブランチの最初のコミットの親（下のブランチの先端またはベース）を返す。"""
        parent = self.state.base_commit_id
        for candidate in stack.branches:
            if candidate is branch:
                return parent
            if candidate.commits:
                parent = candidate.commits[-1]
        return parent

    def stack_tip(self, stack: Stack) -> str:
        commit_ids = stack.commit_ids()
        return commit_ids[-1] if commit_ids else self.state.base_commit_id

    def local_commits(self, branch: Branch) -> list[Commit]:
        """ブランチのコミットを新しい順に返す。"""
        return [self.state.commits[cid] for cid in reversed(branch.commits)]

    def locate_commit(self, stack: Stack, commit_id: str) -> int:
        """スタック内でのコミットの位置（下から0始まり）を返す。

        Raises:
            WorkspaceReferenceError: スタック内に無い場合
        """
        resolved = self.resolve_commit_id(commit_id)
        commit_ids = stack.commit_ids()
        if resolved not in commit_ids:
            raise WorkspaceReferenceError(
                f"コミットはスタックに含まれていません: {commit_id}",
                commit_id=commit_id,
                stack_id=stack.id,
            )
        return commit_ids.index(resolved)

    # ========== ワークスペースコミット・作業ディレクトリ ==========

    def workspace_tree(self) -> dict[str, str]:
        """ベースに全スタックの変更を重ねたツリー（パス → blob ID）を返す。

        Raises:
            EngineError: 複数のスタックが同じファイルを異なる内容に変更している場合
        """
        base_tree = self.get_commit(self.state.base_commit_id).tree
        merged = dict(base_tree)
        owners: dict[str, str] = {}

        for stack in self.stacks():
            tip_tree = self.get_commit(self.stack_tip(stack)).tree
            for path in set(base_tree) | set(tip_tree):
                before = base_tree.get(path)
                after = tip_tree.get(path)
                if before == after:
                    continue
                if path in owners and merged.get(path) != after:
                    raise EngineError(
                        f"複数のスタックが同じファイルを変更しています: {path}",
                        path=path,
                        stack_ids=[owners[path], stack.id],
                    )
                owners[path] = stack.id
                if after is None:
                    merged.pop(path, None)
                else:
                    merged[path] = after
        return merged

    def update_workspace_commit(self, perm: ReadPermission) -> str:
        """ワークスペースコミットを再計算する。"""
        with self.transaction(perm) as state:
            tree = self.workspace_tree()
            commit = self.write_commit(state.base_commit_id, tree, WORKSPACE_COMMIT_MESSAGE)
            previous = state.workspace_commit_id
            if previous and previous not in (state.base_commit_id, commit.id):
                # 古いワークスペースコミットは参照されないので捨てる
                state.commits.pop(previous, None)
            state.workspace_commit_id = commit.id
        logger.debug(f"ワークスペースコミットを更新しました: {commit.id[:12]}")
        return commit.id

    def worktree_files(self) -> dict[str, bytes]:
        """作業ディレクトリのファイル内容を返す。"""
        return list_worktree_files(
            self.project_root,
            excluded_dirs={self.settings.mcp_dir},
            use_git=self._use_git,
        )

    def worktree_changes(self) -> list[TreeChange]:
        """ワークスペースコミットに対する未コミットの変更を返す。"""
        workspace = {path: self.read_blob(oid) for path, oid in self.workspace_tree().items()}
        return tree_changes(workspace, self.worktree_files())
