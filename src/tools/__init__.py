"""MCP Tools モジュール。"""

from mcp.server.fastmcp import FastMCP

from src.tools import workspace


def register_all_tools(mcp: FastMCP) -> None:
    """全ツールをMCPサーバーに登録する。

    Args:
        mcp: FastMCPインスタンス
    """
    # ワークスペース操作・参照・スナップショット
    workspace.register_tools(mcp)
