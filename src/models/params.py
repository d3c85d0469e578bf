"""ツールパラメータモデル定義。

各ツールが受け付けるフィールドを明示的に宣言する。JSON スキーマは
ツール登録時に一度だけ生成される。キーは snake_case と camelCase の両方を受け付ける。
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ToolParameters(BaseModel):
    """ツールパラメータの基底クラス。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


_TITLE_GUIDANCE = (
    "コミットメッセージのタイトル。変更の短い要約のみを書く。"
    "簡潔かつ具体的に、1行で50文字以内にする。"
    "例: 'Fix issue with user login'"
)

_BODY_GUIDANCE = (
    "コミットメッセージの本文。変更内容の詳細を書く。必要なら複数行にしてよい。"
    "変更の「何を」に集中し、「なぜ」を推測で書かない。"
)

_BRANCH_NAME_GUIDANCE = (
    "有効な git ブランチ名。空白や特殊文字、スラッシュは使わない。"
    "最大5語程度をハイフンでつなぐ。"
)

_BRANCH_DESCRIPTION_GUIDANCE = (
    "ブランチの目的を簡潔にまとめた説明。"
    "どのような変更をこのブランチに割り当てるべきかも示す。"
)


class CommitParameters(ToolParameters):
    """commit ツールのパラメータ。"""

    message_title: str = Field(description=_TITLE_GUIDANCE)
    message_body: str = Field(description=_BODY_GUIDANCE)
    branch_name: str = Field(
        description=(
            "コミット先のブランチ名。存在しないブランチ名なら新規作成される。"
            + _BRANCH_NAME_GUIDANCE
        )
    )
    branch_description: str = Field(
        description=(
            "ブランチの説明。ブランチが既に存在する場合はこの説明で上書きされる。"
            + _BRANCH_DESCRIPTION_GUIDANCE
        )
    )
    files: list[str] = Field(
        description="コミットするファイルパスの一覧。ワークスペースルートからの相対パス。"
    )


class CreateBranchParameters(ToolParameters):
    """create_branch ツールのパラメータ。"""

    branch_name: str = Field(description="作成するブランチ名。" + _BRANCH_NAME_GUIDANCE)
    branch_description: str = Field(description="ブランチの説明。" + _BRANCH_DESCRIPTION_GUIDANCE)
    stack_id: str | None = Field(
        default=None,
        description="指定するとそのスタックの最上位にブランチを積む。省略時は新しいスタックを作る。",
    )


class AmendParameters(ToolParameters):
    """amend ツールのパラメータ。"""

    commit_id: str = Field(
        description="amend するコミットのID。指定したスタック上のコミットであること。"
    )
    message_title: str = Field(description="新しい" + _TITLE_GUIDANCE)
    message_body: str = Field(
        description=(
            "新しいコミットメッセージ本文。amend する変更を反映するよう既存の本文を更新する。"
            "既に変更内容と一致していれば同じ本文を渡してよい。" + _BODY_GUIDANCE
        )
    )
    stack_id: str = Field(description="amend するコミットを含むスタックのID。")
    files: list[str] = Field(
        default_factory=list,
        description=(
            "amend するコミットに含めるファイルパスの一覧。ワークスペースルートからの相対パス。"
            "メッセージだけを編集する場合は空にする。"
        ),
    )


class GetProjectStatusParameters(ToolParameters):
    """get_project_status ツールのパラメータ。"""

    filter_changes: list[str] | None = Field(
        default=None,
        description=(
            "ファイル変更の絞り込みに使うパス一覧。"
            "指定しない場合は全てのファイル変更を返す。"
        ),
    )


class CreateBlankCommitParameters(ToolParameters):
    """create_blank_commit ツールのパラメータ。"""

    message_title: str = Field(description=_TITLE_GUIDANCE)
    message_body: str = Field(description=_BODY_GUIDANCE)
    stack_id: str = Field(description="空コミットを作成するスタックのID。既存のスタックであること。")
    parent_id: str = Field(
        description="空コミットをその上に挿入するコミットのID。スタック内の既存コミットであること。"
    )


class MoveFileChangesParameters(ToolParameters):
    """move_file_changes ツールのパラメータ。"""

    source_commit_id: str = Field(description="ファイル変更の移動元コミットID。移動元スタック上のコミット。")
    source_stack_id: str = Field(description="移動元コミットを含むスタックのID。")
    destination_commit_id: str = Field(
        description="ファイル変更の移動先コミットID。移動先スタック上のコミット。"
    )
    destination_stack_id: str = Field(description="移動先コミットを含むスタックのID。")
    files: list[str] = Field(
        description=(
            "移動するファイルパスの一覧。ワークスペースルートからの相対パスで、"
            "移動元コミットが変更しているファイルであること。指定したファイルのみ移動する。"
        )
    )


class GetCommitDetailsParameters(ToolParameters):
    """get_commit_details ツールのパラメータ。"""

    commit_id: str = Field(description="詳細を取得するコミットのID。ワークスペース内のコミット。")
