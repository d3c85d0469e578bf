"""ワークスペースツール定義とツールセット。

各ツールはパラメータモデルと操作を結び付け、結果を ResultEnvelope に包む。
create_blank_commit と move_file_changes はあらゆる例外をエンベロープに変換し、
それ以外のツールは WorkspaceToolError のみを変換する。
"""

from src.context import WorkspaceContext
from src.errors import WorkspaceToolError
from src.models.params import (
    AmendParameters,
    CommitParameters,
    CreateBlankCommitParameters,
    CreateBranchParameters,
    GetCommitDetailsParameters,
    GetProjectStatusParameters,
    MoveFileChangesParameters,
)
from src.models.result import ResultEnvelope
from src.tools import project_status, workspace_ops
from src.tools.registry import Tool, Toolset


class Commit(Tool):
    name = "commit"
    action = "create_commit"
    description = """
    ファイル変更をコミットする。

    - 'branch_name' のブランチが既に存在すればそこにコミットし、無ければ新しく作成する。
    - ブランチの説明は 'branch_description' で上書きされる。
    - 'files' で指定したファイルの変更だけがコミットされ、それ以外はそのまま残る。
    - 変更の無いファイルは却下された変更として結果に含まれる。
    """
    parameters_model = CommitParameters

    def call(self, params, ctx, message_id=None):
        try:
            outcome = workspace_ops.create_commit(ctx, params, message_id)
        except WorkspaceToolError as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return ResultEnvelope.ok(self.action_identifier, outcome)


class CreateBranch(Tool):
    name = "create_branch"
    description = """
    新しいスタックとブランチを作成する。

    - 'stack_id' を指定すると、そのスタックの最上位に依存ブランチとして積む。
    - 既存のブランチ名と衝突する場合はエラーになる。
    """
    parameters_model = CreateBranchParameters

    def call(self, params, ctx, message_id=None):
        try:
            entry = workspace_ops.create_branch(ctx, params, message_id)
        except WorkspaceToolError as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return ResultEnvelope.ok(self.action_identifier, entry)


class Amend(Tool):
    name = "amend"
    action = "amend_commit"
    description = """
    既存のコミットを amend する。

    - メッセージを書き換え、'files' で指定したファイルの変更をコミットに取り込む。
    - 'files' が空ならメッセージだけを書き換える。
    - 上に積まれたコミットは付け替えられ、新旧IDの対応が結果に含まれる。
    """
    parameters_model = AmendParameters

    def call(self, params, ctx, message_id=None):
        try:
            outcome = workspace_ops.amend_commit(ctx, params, message_id)
        except WorkspaceToolError as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return ResultEnvelope.ok(self.action_identifier, outcome)


class GetProjectStatus(Tool):
    name = "get_project_status"
    description = """
    プロジェクトの状態を取得する。

    ワークスペースに適用中のスタック・ブランチ・コミットと、
    コミット可能なファイル変更（ハンクの割り当てと依存ロック付き）を返す。
    """
    parameters_model = GetProjectStatusParameters

    def call(self, params, ctx, message_id=None):
        try:
            status = project_status.get_project_status(ctx, params.filter_changes)
        except WorkspaceToolError as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return ResultEnvelope.ok(self.action_identifier, status)


class CreateBlankCommit(Tool):
    name = "create_blank_commit"
    description = """
    空のコミットを作成する。

    'parent_id' のコミットの直上に挿入する。コミットを分割する際、
    先に空コミットを作ってから変更を移動するのに使う。
    付け替えられたコミットの (旧ID, 新ID) 一覧を返す。
    """
    parameters_model = CreateBlankCommitParameters

    def call(self, params, ctx, message_id=None):
        try:
            mapping = workspace_ops.create_blank_commit(ctx, params, message_id)
        except Exception as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return ResultEnvelope.ok(self.action_identifier, mapping)


class MoveFileChanges(Tool):
    name = "move_file_changes"
    description = """
    コミット間でファイル変更を移動する。

    移動元コミットから指定ファイルの変更を取り除き、移動先コミットに加える。
    両方のスタックが作り直され、付け替えられたコミットの (旧ID, 新ID) 一覧を返す。
    """
    parameters_model = MoveFileChangesParameters

    def call(self, params, ctx, message_id=None):
        try:
            mapping = workspace_ops.move_file_changes(ctx, params, message_id)
        except Exception as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return ResultEnvelope.ok(self.action_identifier, mapping)


class GetCommitDetails(Tool):
    name = "get_commit_details"
    description = """
    コミットの詳細を取得する。

    コミットが親に対して行ったファイル変更とその差分を返す。
    """
    parameters_model = GetCommitDetailsParameters

    def call(self, params, ctx, message_id=None):
        try:
            file_changes = project_status.commit_details(ctx, params.commit_id)
        except WorkspaceToolError as e:
            return ResultEnvelope.from_error(self.action_identifier, e)
        return ResultEnvelope.ok(self.action_identifier, file_changes)


def workspace_toolset(ctx: WorkspaceContext, message_id: str | None = None) -> Toolset:
    """全てのワークスペースツールを登録したツールセットを作る。"""
    toolset = Toolset(ctx, message_id=message_id)
    for tool in (
        Commit(),
        CreateBranch(),
        Amend(),
        GetProjectStatus(),
        CreateBlankCommit(),
        MoveFileChanges(),
        GetCommitDetails(),
    ):
        toolset.register(tool)
    return toolset


def commit_toolset(ctx: WorkspaceContext) -> Toolset:
    """コミット用のツールセット（commit, create_branch）を作る。"""
    return Toolset(ctx).register(Commit()).register(CreateBranch())


def amend_toolset(ctx: WorkspaceContext) -> Toolset:
    """amend 用のツールセット（amend, get_project_status）を作る。"""
    return Toolset(ctx).register(Amend()).register(GetProjectStatus())
