"""ワークスペース（スタック・ブランチ・コミット）モデル定義。"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TreeStatus(str, Enum):
    """ファイル変更の種別。"""

    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"
    RENAMED = "renamed"


class Commit(BaseModel):
    """コミットオブジェクト。作成後は不変。"""

    id: str = Field(description="コンテンツアドレスのコミットID")
    parent_id: str | None = Field(default=None, description="親コミットID")
    tree: dict[str, str] = Field(default_factory=dict, description="パス → blob ID")
    message: str = Field(default="", description="コミットメッセージ")
    created_at: datetime = Field(description="作成日時")


class Branch(BaseModel):
    """スタック内のブランチ。"""

    name: str = Field(description="ブランチ名（ワークスペース内で一意）")
    description: str | None = Field(default=None, description="ブランチの説明")
    commits: list[str] = Field(default_factory=list, description="コミットID（古い順）")
    archived: bool = Field(default=False, description="アーカイブ済みかどうか")


class Stack(BaseModel):
    """ブランチを積み重ねたスタック。"""

    id: str = Field(description="スタックID（不変）")
    branches: list[Branch] = Field(default_factory=list, description="ブランチ（下から順）")
    in_workspace: bool = Field(default=True, description="ワークスペースに適用中かどうか")
    created_at: datetime = Field(description="作成日時")

    @property
    def name(self) -> str:
        """スタック名（最上位ブランチ名）。"""
        return self.branches[-1].name if self.branches else ""

    def commit_ids(self) -> list[str]:
        """スタック内の全コミットIDを下から順に返す。"""
        return [commit_id for branch in self.branches for commit_id in branch.commits]

    def branch_of(self, commit_id: str) -> Branch | None:
        """コミットを含むブランチを返す。"""
        for branch in self.branches:
            if commit_id in branch.commits:
                return branch
        return None

    def find_branch(self, name: str) -> Branch | None:
        """名前でブランチを検索する。"""
        for branch in self.branches:
            if branch.name == name:
                return branch
        return None


class StackEntry(BaseModel):
    """呼び出し側に返すスタック参照。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(description="スタックID")
    name: str = Field(description="スタック名")
    heads: list[str] = Field(default_factory=list, description="ブランチ名（上から順）")
    tip: str | None = Field(default=None, description="スタック先端のコミットID")

    @classmethod
    def from_stack(cls, stack: Stack, base_commit_id: str | None) -> "StackEntry":
        """Stack から StackEntry を生成する。"""
        commit_ids = stack.commit_ids()
        return cls(
            id=stack.id,
            name=stack.name,
            heads=[branch.name for branch in reversed(stack.branches)],
            tip=commit_ids[-1] if commit_ids else base_commit_id,
        )


class TreeChange(BaseModel):
    """2つのツリー間の1ファイル分の変更。"""

    path: str = Field(description="変更後のパス")
    status: TreeStatus = Field(description="変更種別")
    previous_path: str | None = Field(default=None, description="リネーム元のパス")
    old_data: bytes | None = Field(default=None, exclude=True, repr=False)
    new_data: bytes | None = Field(default=None, exclude=True, repr=False)

    def status_label(self) -> str:
        """呼び出し側に見せる状態文字列を返す。"""
        if self.status == TreeStatus.RENAMED:
            return f"renamed from {self.previous_path}"
        return self.status.value


class HunkHeader(BaseModel):
    """ハンクヘッダー（@@ -old_start,old_lines +new_start,new_lines @@）。"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int

    def __str__(self) -> str:
        return f"@@ -{self.old_start},{self.old_lines} +{self.new_start},{self.new_lines} @@"


class DiffHunk(BaseModel):
    """unified diff の1ハンク。"""

    header: HunkHeader
    diff: str = Field(description="ヘッダー行を含むハンク本文")


class DiffKind(str, Enum):
    """差分の種類。パッチ以外は描画できない。"""

    PATCH = "patch"
    BINARY = "binary"
    TOO_LARGE = "too_large"


class UnifiedDiff(BaseModel):
    """1ファイル分の unified diff。"""

    kind: DiffKind = DiffKind.PATCH
    hunks: list[DiffHunk] = Field(default_factory=list)


class HunkLock(BaseModel):
    """ハンクが依存するコミット（依存ロック）。"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    stack_id: str = Field(description="コミットを含むスタックID")
    commit_id: str = Field(description="依存先コミットID")


class HunkAssignment(BaseModel):
    """ハンクとスタックの割り当て。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    path: str
    hunk_header: HunkHeader | None = None
    stack_id: str | None = None
    hunk_locks: list[HunkLock] | None = None


class Snapshot(BaseModel):
    """変更操作前のワークスペース状態のチェックポイント。"""

    id: str = Field(description="スナップショットID")
    operation: str = Field(description="スナップショットを取った操作名")
    created_at: datetime = Field(description="作成日時")
    state: dict[str, Any] = Field(default_factory=dict, description="ワークスペース状態（不透明）")


class OplogEntry(BaseModel):
    """スナップショットと操作結果の記録。"""

    snapshot_id: str
    operation: str
    status: str = Field(description="ok または error")
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    recorded_at: datetime


class WorkspaceState(BaseModel):
    """永続化されるワークスペース状態。"""

    version: int = 1
    project_id: str
    target_branch: str = "main"
    base_commit_id: str
    workspace_commit_id: str | None = None
    stacks: list[Stack] = Field(default_factory=list)
    commits: dict[str, Commit] = Field(default_factory=dict)
    blobs: dict[str, str] = Field(default_factory=dict, description="blob ID → base64")
    assignments: list[HunkAssignment] = Field(default_factory=list)
