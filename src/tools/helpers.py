"""MCPツール用共通ヘルパー関数。"""

import logging
import os
from pathlib import Path

from src.config.settings import load_settings_for_project
from src.context import AppContext, WorkspaceContext
from src.managers.git_files import resolve_repo_root
from src.tools.registry import Toolset
from src.tools.workspace_tools import workspace_toolset

logger = logging.getLogger(__name__)


def resolve_project_root(app_ctx: AppContext, repo_path: str | None = None) -> str:
    """ツールが操作するプロジェクトルートを解決する。

    優先順位: 引数 repo_path → AppContext.project_root → 設定の project_root →
    MCP_PROJECT_ROOT → カレントディレクトリ。
    enable_git が有効で git リポジトリ内なら、リポジトリのルートに正規化する。

    Args:
        app_ctx: アプリケーションコンテキスト
        repo_path: 呼び出し側が指定したパス（任意）

    Returns:
        プロジェクトルートの絶対パス

    Raises:
        ValueError: パスがディレクトリでない場合
    """
    candidate = (
        repo_path
        or app_ctx.project_root
        or app_ctx.settings.project_root
        or os.getenv("MCP_PROJECT_ROOT")
        or os.getcwd()
    )
    root = Path(candidate).expanduser().resolve()
    if not root.is_dir():
        raise ValueError(f"ディレクトリではありません: {candidate}")

    if app_ctx.settings.enable_git:
        repo_root = resolve_repo_root(root)
        if repo_root:
            return repo_root
        logger.debug(f"git リポジトリではないため作業ディレクトリを使用します: {root}")
    return str(root)


def get_workspace_context(app_ctx: AppContext, repo_path: str | None = None) -> WorkspaceContext:
    """プロジェクトの WorkspaceContext を取得する（無ければ開いてキャッシュする）。"""
    project_root = resolve_project_root(app_ctx, repo_path)
    workspace_ctx = app_ctx.workspaces.get(project_root)
    if workspace_ctx is None:
        settings = load_settings_for_project(project_root)
        workspace_ctx = WorkspaceContext.open(project_root, settings)
        app_ctx.workspaces[project_root] = workspace_ctx
        logger.info(f"ワークスペースを開きました: {project_root}")
    return workspace_ctx


def get_toolset(
    app_ctx: AppContext,
    repo_path: str | None = None,
    message_id: str | None = None,
) -> Toolset:
    """プロジェクトのワークスペースツールセットを作る。"""
    return workspace_toolset(get_workspace_context(app_ctx, repo_path), message_id=message_id)
