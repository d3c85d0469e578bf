"""Stack Workspace MCP Server エントリーポイント。"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from src.config.settings import Settings
from src.context import AppContext
from src.tools import register_all_tools

# ログ設定（stderrに出力）
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """サーバーライフサイクルを管理する。

    Args:
        server: FastMCPサーバーインスタンス

    Yields:
        アプリケーションコンテキスト
    """
    logger.info("Stack Workspace MCP Server を起動しています...")

    settings = Settings()
    project_root = settings.project_root or os.getenv("MCP_PROJECT_ROOT")
    app_ctx = AppContext(settings=settings, project_root=project_root)

    try:
        yield app_ctx
    finally:
        logger.info(
            f"サーバーをシャットダウンしています...（開いたワークスペース: {len(app_ctx.workspaces)}）"
        )
        app_ctx.workspaces.clear()


# FastMCPサーバーを作成
mcp = FastMCP("Stack Workspace MCP", lifespan=app_lifespan)

# 全ツールを登録
register_all_tools(mcp)


def main() -> None:
    """MCPサーバーを起動する。"""
    mcp.run()


if __name__ == "__main__":
    main()
