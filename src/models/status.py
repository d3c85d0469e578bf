"""プロジェクトステータス（呼び出し側向けビューモデル）定義。

LLM のコンテキストで扱いやすいよう、できるだけ単純な形にしている。
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.workspace import HunkLock


class _ViewModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RichHunk(_ViewModel):
    """割り当て情報付きのハンク。"""

    diff: str = Field(description="差分文字列")
    assigned_to_stack: str | None = Field(default=None, description="割り当て先スタックID")
    dependency_locks: list[HunkLock] = Field(default_factory=list, description="依存ロック")


class FileChange(_ViewModel):
    """変更されたファイル。"""

    path: str
    status: str = Field(description="added / deleted / modified / renamed from <path>")
    hunks: list[RichHunk] = Field(default_factory=list)


class SimpleCommit(_ViewModel):
    """タイトルと本文に分けたコミット。"""

    id: str
    message_title: str
    message_body: str

    @classmethod
    def from_message(cls, commit_id: str, message: str) -> "SimpleCommit":
        """コミットメッセージを最初の改行で分割する。

        改行は LF（と直前の CR）だけを区切りとみなし、本文先頭の空行は取り除く。
        """
        title, _, body = message.partition("\n")
        while body.startswith(("\n", "\r\n")):
            body = body[body.index("\n") + 1 :]
        return cls(id=commit_id, message_title=title.removesuffix("\r"), message_body=body)


class SimpleBranch(_ViewModel):
    """コミットを持つブランチ。"""

    name: str
    description: str | None = None
    commits: list[SimpleCommit] = Field(default_factory=list, description="新しい順")


class SimpleStack(_ViewModel):
    """ワークスペースに適用されたスタック。"""

    id: str
    name: str
    branches: list[SimpleBranch] = Field(default_factory=list)


class ProjectStatus(_ViewModel):
    """適用中のスタックとコミット可能な変更。"""

    stacks: list[SimpleStack] = Field(default_factory=list)
    file_changes: list[FileChange] = Field(default_factory=list)


class RejectedChange(_ViewModel):
    """コミットに含められなかった変更。"""

    reason: str
    path: str


class CreateCommitOutcome(_ViewModel):
    """コミット作成・amend の結果。"""

    new_commit: str | None = Field(default=None, description="作成されたコミットID")
    paths_to_rejected_changes: list[RejectedChange] = Field(default_factory=list)
    commit_mapping: list[tuple[str, str]] = Field(
        default_factory=list, description="書き換えられたコミットの (旧ID, 新ID)"
    )
