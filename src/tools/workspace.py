"""ワークスペース操作ツール（MCP）。

各ツールはワークスペースツールセットにディスパッチし、
ResultEnvelope の JSON をそのまま返す。
"""

import logging
from typing import Any

from mcp.server.fastmcp import Context, FastMCP

from src.context import AppContext
from src.errors import WorkspaceToolError
from src.models.result import ResultEnvelope
from src.models.workspace import HunkAssignment, HunkHeader
from src.tools.helpers import get_toolset, get_workspace_context

logger = logging.getLogger(__name__)


def register_tools(mcp: FastMCP) -> None:
    """ワークスペース操作ツールを登録する。"""

    # ========== 変更操作 ==========

    @mcp.tool()
    async def commit(
        message_title: str,
        message_body: str,
        branch_name: str,
        branch_description: str,
        files: list[str],
        repo_path: str | None = None,
        message_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """ファイル変更をブランチにコミットする。

        Args:
            message_title: コミットメッセージのタイトル
            message_body: コミットメッセージの本文
            branch_name: コミット先のブランチ名（無ければ作成）
            branch_description: ブランチの説明（上書き）
            files: コミットするファイルパス
            repo_path: ワークスペースのパス（省略時はプロジェクトルート）
            message_id: 通知に添える相関ID

        Returns:
            ResultEnvelope（data は CreateCommitOutcome）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        toolset = get_toolset(app_ctx, repo_path, message_id)
        return toolset.dispatch(
            "commit",
            {
                "message_title": message_title,
                "message_body": message_body,
                "branch_name": branch_name,
                "branch_description": branch_description,
                "files": files,
            },
        ).to_json()

    @mcp.tool()
    async def create_branch(
        branch_name: str,
        branch_description: str,
        stack_id: str | None = None,
        repo_path: str | None = None,
        message_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """新しいスタックとブランチを作成する。

        Args:
            branch_name: ブランチ名
            branch_description: ブランチの説明
            stack_id: 積み上げ先のスタックID（省略時は新しいスタック）
            repo_path: ワークスペースのパス
            message_id: 通知に添える相関ID

        Returns:
            ResultEnvelope（data は StackEntry）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        toolset = get_toolset(app_ctx, repo_path, message_id)
        return toolset.dispatch(
            "create_branch",
            {
                "branch_name": branch_name,
                "branch_description": branch_description,
                "stack_id": stack_id,
            },
        ).to_json()

    @mcp.tool()
    async def amend(
        commit_id: str,
        message_title: str,
        message_body: str,
        stack_id: str,
        files: list[str] | None = None,
        repo_path: str | None = None,
        message_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """既存のコミットを amend する（files が空ならメッセージのみ）。

        Returns:
            ResultEnvelope（data は CreateCommitOutcome）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        toolset = get_toolset(app_ctx, repo_path, message_id)
        return toolset.dispatch(
            "amend",
            {
                "commit_id": commit_id,
                "message_title": message_title,
                "message_body": message_body,
                "stack_id": stack_id,
                "files": files or [],
            },
        ).to_json()

    @mcp.tool()
    async def create_blank_commit(
        message_title: str,
        message_body: str,
        stack_id: str,
        parent_id: str,
        repo_path: str | None = None,
        message_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """parent_id の直上に空コミットを挿入する。

        Returns:
            ResultEnvelope（data は [旧ID, 新ID] の一覧）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        toolset = get_toolset(app_ctx, repo_path, message_id)
        return toolset.dispatch(
            "create_blank_commit",
            {
                "message_title": message_title,
                "message_body": message_body,
                "stack_id": stack_id,
                "parent_id": parent_id,
            },
        ).to_json()

    @mcp.tool()
    async def move_file_changes(
        source_commit_id: str,
        source_stack_id: str,
        destination_commit_id: str,
        destination_stack_id: str,
        files: list[str],
        repo_path: str | None = None,
        message_id: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """コミット間でファイル変更を移動する。

        Returns:
            ResultEnvelope（data は [旧ID, 新ID] の一覧）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        toolset = get_toolset(app_ctx, repo_path, message_id)
        return toolset.dispatch(
            "move_file_changes",
            {
                "source_commit_id": source_commit_id,
                "source_stack_id": source_stack_id,
                "destination_commit_id": destination_commit_id,
                "destination_stack_id": destination_stack_id,
                "files": files,
            },
        ).to_json()

    # ========== 参照 ==========

    @mcp.tool()
    async def get_project_status(
        filter_changes: list[str] | None = None,
        repo_path: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """適用中のスタックとコミット可能なファイル変更を取得する。

        Args:
            filter_changes: ファイル変更を絞り込むパス（省略時は全て）
            repo_path: ワークスペースのパス

        Returns:
            ResultEnvelope（data は ProjectStatus）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        toolset = get_toolset(app_ctx, repo_path)
        return toolset.dispatch("get_project_status", {"filter_changes": filter_changes}).to_json()

    @mcp.tool()
    async def get_commit_details(
        commit_id: str,
        repo_path: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """コミットが親に対して行ったファイル変更を取得する。"""
        app_ctx: AppContext = ctx.request_context.lifespan_context
        toolset = get_toolset(app_ctx, repo_path)
        return toolset.dispatch("get_commit_details", {"commit_id": commit_id}).to_json()

    @mcp.tool()
    async def list_workspace_tools(
        repo_path: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """ワークスペースツールの名前・説明・パラメータスキーマ一覧を取得する。

        Returns:
            ツール一覧（success, tools, count）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        tools = get_toolset(app_ctx, repo_path).describe()
        return {"success": True, "tools": tools, "count": len(tools)}

    # ========== ハンク割り当て ==========

    @mcp.tool()
    async def assign_hunk(
        path: str,
        old_start: int,
        old_lines: int,
        new_start: int,
        new_lines: int,
        stack_id: str | None = None,
        repo_path: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """未コミットのハンクをスタックに割り当てる（stack_id 省略で割り当て解除）。

        Returns:
            ResultEnvelope（data は保存した HunkAssignment）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        workspace_ctx = get_workspace_context(app_ctx, repo_path)
        assignment = HunkAssignment(
            path=path,
            hunk_header=HunkHeader(
                old_start=old_start,
                old_lines=old_lines,
                new_start=new_start,
                new_lines=new_lines,
            ),
            stack_id=stack_id,
        )
        try:
            with workspace_ctx.workspace.access.exclusive() as guard:
                workspace_ctx.assignment_table.assign([assignment], guard.write_permission())
        except WorkspaceToolError as e:
            return ResultEnvelope.from_error("assign_hunk", e).to_json()
        return ResultEnvelope.ok("assign_hunk", assignment).to_json()

    # ========== スナップショット ==========

    @mcp.tool()
    async def list_snapshots(
        repo_path: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """変更操作前に取得したスナップショットと操作結果の一覧を取得する（新しい順）。

        Returns:
            一覧（success, snapshots, entries）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        oplog = get_workspace_context(app_ctx, repo_path).oplog
        snapshots = [
            {"id": s.id, "operation": s.operation, "created_at": s.created_at.isoformat()}
            for s in oplog.list_snapshots()
        ]
        entries = [e.model_dump(mode="json") for e in oplog.list_entries()]
        return {"success": True, "snapshots": snapshots, "entries": entries}

    @mcp.tool()
    async def restore_snapshot(
        snapshot_id: str,
        repo_path: str | None = None,
        ctx: Context = None,
    ) -> dict[str, Any]:
        """ワークスペース状態をスナップショット時点に戻す。

        Returns:
            ResultEnvelope（data は戻した後のスタック一覧）
        """
        app_ctx: AppContext = ctx.request_context.lifespan_context
        workspace_ctx = get_workspace_context(app_ctx, repo_path)
        workspace = workspace_ctx.workspace
        try:
            with workspace.access.exclusive() as guard:
                workspace_ctx.oplog.restore(snapshot_id, guard.write_permission())
                entries = workspace.stack_entries()
        except WorkspaceToolError as e:
            return ResultEnvelope.from_error("restore_snapshot", e).to_json()
        logger.info(f"スナップショット {snapshot_id} に戻しました")
        return ResultEnvelope.ok("restore_snapshot", entries).to_json()
