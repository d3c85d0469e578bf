"""ツール結果エンベロープ定義。

全てのツールは成功・失敗に関わらずこの形の JSON を返す:
{"status": "ok"|"error", "actionIdentifier": str, "data"?: ..., "error"?: {"message", "detail"}}
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.errors import WorkspaceToolError


def to_jsonable(value: Any) -> Any:
    """pydantic モデルやタプルを含む値を JSON 互換の値に変換する。"""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class ToolErrorInfo(BaseModel):
    """エンベロープのエラー部分。"""

    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ResultEnvelope(BaseModel):
    """操作結果を正規化したエンベロープ。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: Literal["ok", "error"]
    action_identifier: str
    data: Any = None
    error: ToolErrorInfo | None = None

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def ok(cls, action_identifier: str, data: Any = None) -> "ResultEnvelope":
        """成功エンベロープを作成する。"""
        return cls(status="ok", action_identifier=action_identifier, data=to_jsonable(data))

    @classmethod
    def from_error(cls, action_identifier: str, exc: BaseException) -> "ResultEnvelope":
        """例外からエラーエンベロープを作成する。"""
        if isinstance(exc, WorkspaceToolError):
            info = ToolErrorInfo(message=exc.message, detail=exc.detail())
        else:
            info = ToolErrorInfo(
                message=str(exc) or exc.__class__.__name__,
                detail={"kind": "internal_error", "type": exc.__class__.__name__},
            )
        return cls(status="error", action_identifier=action_identifier, error=info)

    def to_json(self) -> dict[str, Any]:
        """JSON 互換の辞書に変換する。"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
