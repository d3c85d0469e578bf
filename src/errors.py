"""ワークスペースツールのエラー定義。

エラー分類:
- ParameterError: パラメータ不正（副作用の前に検出）
- WorkspaceReferenceError: ID や名前が既存のスタック/ブランチ/コミットに解決できない
- EngineError: コミット構築エンジンが要求を拒否した（競合など）
- WorkspacePermissionError: ワークツリーの排他アクセスを取得できない
"""

from typing import Any


class WorkspaceToolError(Exception):
    """ワークスペースツールのエラー基底クラス。"""

    kind = "workspace_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def detail(self) -> dict[str, Any]:
        """エンベロープの error.detail に格納する辞書を返す。"""
        return {"kind": self.kind, **self.context}


class ParameterError(WorkspaceToolError):
    """ツールパラメータの解析・検証に失敗した。"""

    kind = "parameter_error"


class WorkspaceReferenceError(WorkspaceToolError):
    """スタック/ブランチ/コミットの参照が解決できない。"""

    kind = "reference_error"


class EngineError(WorkspaceToolError):
    """コミット構築エンジンが要求を拒否した。"""

    kind = "engine_error"


class WorkspacePermissionError(WorkspaceToolError):
    """ワークツリーのアクセスガードが取得できない。"""

    kind = "permission_error"


class UnknownToolError(KeyError):
    """登録されていないツール名でディスパッチされた。"""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"未登録のツールです: {self.name}"


__all__ = [
    "EngineError",
    "ParameterError",
    "UnknownToolError",
    "WorkspacePermissionError",
    "WorkspaceReferenceError",
    "WorkspaceToolError",
]
