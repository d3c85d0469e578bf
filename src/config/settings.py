"""設定管理モジュール。"""

import os
from pathlib import Path

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_MCP_DIR = ".stack-workspace"


def resolve_project_env_file(
    project_root: str | os.PathLike[str] | None,
    mcp_dir: str = DEFAULT_MCP_DIR,
) -> str | None:
    """指定した project_root から .env ファイルを解決する。

    Args:
        project_root: プロジェクトルートパス
        mcp_dir: 設定ディレクトリ名

    Returns:
        .env ファイルのパス（存在する場合）、または None
    """
    if not project_root:
        return None

    env_file = Path(project_root) / mcp_dir / ".env"
    if env_file.exists():
        return str(env_file)
    return None


def get_project_env_file() -> str | None:
    """プロジェクト別 .env ファイルのパスを取得。

    MCP_PROJECT_ROOT 環境変数が設定されている場合、
    {project_root}/.stack-workspace/.env を返す。

    Returns:
        .env ファイルのパス（存在する場合）、または None
    """
    return resolve_project_env_file(os.getenv("MCP_PROJECT_ROOT"))


class Settings(BaseSettings):
    """ワークスペースツールサーバーの設定。

    環境変数で上書き可能。プレフィックスは MCP_。
    例: MCP_CONTEXT_LINES=5

    優先順位:
    1. 環境変数（最優先）
    2. プロジェクト別 .env ファイル（{project}/.stack-workspace/.env）
    3. デフォルト値
    """

    model_config = ConfigDict(
        env_prefix="MCP_",
        env_file=get_project_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 状態ディレクトリ設定
    mcp_dir: str = DEFAULT_MCP_DIR
    """ワークスペース状態ディレクトリ名（デフォルト: .stack-workspace）"""

    project_root: str | None = None
    """ワークスペースのルート。未設定時はカレントディレクトリを使用する。"""

    enable_git: bool = True
    """git リポジトリ内であれば git rev-parse でルートを解決するか"""

    # 差分設定
    context_lines: int = Field(default=3, ge=0, description="unified diff のコンテキスト行数")

    max_file_size_bytes: int = Field(
        default=1_000_000,
        gt=0,
        description="これを超えるファイルは too_large として差分を出さない",
    )

    # 排他制御設定
    lock_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="ワークツリー排他ロック取得のタイムアウト（秒）",
    )

    # スナップショット設定
    enable_snapshots: bool = True
    """変更操作の前にスナップショットを取得するか"""

    oplog_max_entries: int = Field(default=100, ge=1, description="保持するスナップショット数の上限")

    # 通知設定
    emit_stack_updates: bool = True
    """スタック更新イベントを events.jsonl に書き出すか"""

    default_target_branch: str = "main"
    """ベースコミットに記録するターゲットブランチ名"""

    @field_validator("mcp_dir")
    @classmethod
    def validate_mcp_dir(cls, value: str) -> str:
        """状態ディレクトリ名を安全な相対単一ディレクトリ名に制限する。"""
        candidate = value.strip()
        base_error = (
            "MCP_MCP_DIR は相対の単一ディレクトリ名を指定してください（例: .stack-workspace）"
        )

        if not candidate:
            raise ValueError(f"{base_error}: 空文字は許可されません")
        if os.path.isabs(candidate):
            raise ValueError(f"{base_error}: 絶対パスは許可されません")
        if "/" in candidate or "\\" in candidate:
            raise ValueError(f"{base_error}: 区切り文字を含むパスは許可されません")
        if ".." in candidate:
            raise ValueError(f"{base_error}: '..' を含む値は許可されません")
        if candidate == ".":
            raise ValueError(f"{base_error}: '.' は許可されません")

        return candidate

    def state_dir(self, project_root: str | os.PathLike[str]) -> Path:
        """プロジェクトの状態ディレクトリのパスを返す。"""
        return Path(project_root) / self.mcp_dir


def load_settings_for_project(project_root: str | os.PathLike[str] | None) -> Settings:
    """指定 project_root の .env を優先して Settings を生成する。

    優先順位:
    1. プロセス環境変数 MCP_*
    2. {project_root}/.stack-workspace/.env
    3. デフォルト値

    Args:
        project_root: プロジェクトルートパス

    Returns:
        読み込み済み Settings インスタンス
    """
    env_file = resolve_project_env_file(project_root)
    if env_file:
        settings = Settings(_env_file=env_file)
    else:
        # model_config 側の env_file を使わず、環境変数 + デフォルトのみで構築
        settings = Settings(_env_file=None)
    if project_root and not settings.project_root:
        settings.project_root = str(project_root)
    return settings
