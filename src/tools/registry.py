"""ツールレジストリ。

名前付きツールを登録順に保持し、名前でディスパッチする。
呼び出し側のエージェント向けに、各ツールの説明とパラメータスキーマを公開する。
"""

import inspect
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any, ClassVar

from pydantic import ValidationError

from src.context import WorkspaceContext
from src.errors import ParameterError, UnknownToolError
from src.models.params import ToolParameters
from src.models.result import ResultEnvelope

logger = logging.getLogger(__name__)


class Tool(ABC):
    """ツールの基底クラス。

    サブクラスは name / description / parameters_model を宣言し、call() を実装する。
    結果エンベロープの操作名がツール名と異なる場合は action も宣言する。
    """

    name: ClassVar[str]
    description: ClassVar[str]
    parameters_model: ClassVar[type[ToolParameters]]
    action: ClassVar[str | None] = None

    @property
    def action_identifier(self) -> str:
        """結果エンベロープに載せる操作名。"""
        return self.action or self.name

    @classmethod
    def parameter_schema(cls) -> dict[str, Any]:
        """パラメータの JSON スキーマを返す。"""
        return cls.parameters_model.model_json_schema(by_alias=False)

    @classmethod
    def parse(cls, params: dict[str, Any] | str | None) -> ToolParameters:
        """パラメータを解析・検証する。

        Raises:
            ParameterError: JSON として読めない、または検証に失敗した場合
        """
        if params is None:
            params = {}
        if isinstance(params, str):
            try:
                params = json.loads(params) if params.strip() else {}
            except json.JSONDecodeError as e:
                raise ParameterError(
                    f"パラメータを JSON として解析できません: {e.msg}",
                    tool=cls.name,
                ) from e
        if not isinstance(params, dict):
            raise ParameterError(
                "パラメータは JSON オブジェクトで指定してください",
                tool=cls.name,
            )
        try:
            return cls.parameters_model.model_validate(params)
        except ValidationError as e:
            raise ParameterError(
                f"パラメータが不正です: {cls.name}",
                tool=cls.name,
                errors=e.errors(include_url=False, include_context=False, include_input=False),
            ) from e

    @abstractmethod
    def call(self, params: Any, ctx: WorkspaceContext, message_id: str | None = None) -> ResultEnvelope:
        """検証済みのパラメータで操作を実行する。"""
        ...

    def invoke(
        self,
        params: dict[str, Any] | str | None,
        ctx: WorkspaceContext,
        message_id: str | None = None,
    ) -> ResultEnvelope:
        """パラメータを解析して操作を実行する。解析に失敗した場合は操作を実行しない。"""
        try:
            parsed = self.parse(params)
        except ParameterError as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return self.call(parsed, ctx, message_id=message_id)


class Toolset:
    """登録順を保つツールの集合。"""

    def __init__(self, ctx: WorkspaceContext, message_id: str | None = None) -> None:
        """Toolsetを初期化する。

        Args:
            ctx: ツールが操作するワークスペースのコンテキスト
            message_id: 通知に添える相関ID（任意）
        """
        self.ctx = ctx
        self.message_id = message_id
        self._tools: dict[str, Tool] = {}
        self._schemas: dict[str, dict[str, Any]] = {}

    def register(self, tool: Tool) -> "Toolset":
        """ツールを登録する。

        Raises:
            ValueError: 同じ名前のツールが既に登録されている場合
        """
        if tool.name in self._tools:
            raise ValueError(f"ツール名が重複しています: {tool.name}")
        self._tools[tool.name] = tool
        self._schemas[tool.name] = tool.parameter_schema()
        return self

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def schema(self, name: str) -> dict[str, Any]:
        """登録時に生成したパラメータスキーマを返す。"""
        self.get(name)
        return self._schemas[name]

    def dispatch(self, name: str, params: dict[str, Any] | str | None = None) -> ResultEnvelope:
        """名前でツールを呼び出す。

        Raises:
            UnknownToolError: 未登録のツール名の場合
        """
        tool = self.get(name)
        started = time.monotonic()
        logger.info(f"ツールを実行します: {name}")
        result = tool.invoke(params, self.ctx, message_id=self.message_id)
        elapsed = time.monotonic() - started
        if result.is_ok:
            logger.info(f"ツールが完了しました: {name}（{elapsed:.3f}s）")
        else:
            logger.warning(
                f"ツールがエラーを返しました: {name}（{elapsed:.3f}s）: {result.error.message}"
            )
        return result

    def describe(self) -> list[dict[str, Any]]:
        """ツールの名前・説明・パラメータスキーマの一覧を返す。"""
        return [
            {
                "name": tool.name,
                "description": inspect.cleandoc(tool.description),
                "parameters": self._schemas[tool.name],
            }
            for tool in self
        ]

    def to_function_definitions(self) -> list[dict[str, Any]]:
        """function calling 形式のツール定義を返す。"""
        return [{"type": "function", "function": entry} for entry in self.describe()]

