"""pytest設定とフィクスチャ。"""

import subprocess
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.config.settings import Settings
from src.context import AppContext, WorkspaceContext
from src.managers.notifier import Notifier
from src.managers.workspace_manager import WorkspaceManager

AUTH_GO = """package auth

func Check(token string) bool {
	return false
}
"""

UTIL_GO = """package util

func Add(a, b int) int {
	return a + b
}
"""

README = """# sample

line two
line three
"""


class RecordingNotifier(Notifier):
    """通知を記録するテスト用の通知先。"""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str | None]] = []

    def notify(self, project_id: str, stack_id: str, message_id: str | None = None) -> None:
        self.calls.append((project_id, stack_id, message_id))

    @property
    def stack_ids(self) -> list[str]:
        return [stack_id for _, stack_id, _ in self.calls]


def write_file(root: Path, relative: str, content: str) -> None:
    """プロジェクト内にファイルを書き込む。"""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def temp_dir():
    """一時ディレクトリを作成する。"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    """テスト用の設定を作成する。"""
    return Settings(
        _env_file=None,
        enable_git=False,
        lock_timeout_seconds=2.0,
    )


@pytest.fixture
def project_dir(temp_dir):
    """初期ファイルを持つプロジェクトディレクトリを作成する。"""
    root = temp_dir / "project"
    root.mkdir()
    write_file(root, "auth.go", AUTH_GO)
    write_file(root, "util.go", UTIL_GO)
    write_file(root, "README.md", README)
    return root


@pytest.fixture
def git_repo(temp_dir):
    """テスト用のgitリポジトリを作成する。"""
    repo_path = temp_dir / "repo"
    repo_path.mkdir()
    write_file(repo_path, "auth.go", AUTH_GO)
    write_file(repo_path, ".gitignore", "build/\n")

    def git(*args: str) -> None:
        subprocess.run(
            ["git", "-c", "user.name=test", "-c", "user.email=test@example.com", *args],
            cwd=repo_path,
            check=True,
            capture_output=True,
        )

    git("init")
    git("add", ".")
    git("commit", "-m", "init")
    return repo_path


@pytest.fixture
def workspace(project_dir, settings):
    """初期化済みの WorkspaceManager を作成する。"""
    manager = WorkspaceManager(project_dir, settings)
    manager.ensure_initialized()
    return manager


@pytest.fixture
def notifier():
    """通知を記録する通知先。"""
    return RecordingNotifier()


@pytest.fixture
def workspace_ctx(project_dir, settings, notifier):
    """テスト用の WorkspaceContext を作成する。"""
    return WorkspaceContext.open(project_dir, settings, notifier=notifier)


@pytest.fixture
def app_ctx(settings, project_dir):
    """テスト用のAppContextを作成する。"""
    return AppContext(settings=settings, project_root=str(project_dir))


@pytest.fixture
def mock_mcp_context(app_ctx):
    """MCPツールのContextをモックする。"""
    mock_ctx = MagicMock()
    mock_ctx.request_context.lifespan_context = app_ctx
    return mock_ctx
