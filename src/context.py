"""アプリケーションコンテキストの定義。

- WorkspaceContext: 1プロジェクト分のマネージャー一式（ツールが操作する対象）
- AppContext: MCP サーバーのライフサイクルで共有するコンテキスト
"""

from dataclasses import dataclass, field
from pathlib import Path

from src.config.settings import Settings
from src.managers.commit_engine import CommitEngine, ReplayCommitEngine
from src.managers.diff_engine import DiffEngine, TextDiffEngine
from src.managers.hunk_assignment import HunkAssignmentTable
from src.managers.notifier import EventLogNotifier, Notifier, NullNotifier
from src.managers.oplog_manager import OplogManager
from src.managers.workspace_manager import WorkspaceManager


@dataclass
class WorkspaceContext:
    """ツール実行時に渡されるワークスペースのコンテキスト。"""

    settings: Settings
    workspace: WorkspaceManager
    commit_engine: CommitEngine
    diff_engine: DiffEngine
    assignment_table: HunkAssignmentTable
    oplog: OplogManager
    notifier: Notifier = field(default_factory=NullNotifier)

    @property
    def project_id(self) -> str:
        return self.workspace.project_id

    @classmethod
    def open(
        cls,
        project_root: str | Path,
        settings: Settings,
        notifier: Notifier | None = None,
    ) -> "WorkspaceContext":
        """プロジェクトのワークスペースを開く（未初期化なら初期化する）。

        Args:
            project_root: ワークスペースのルート
            settings: 設定
            notifier: 通知先（省略時は設定に従う）

        Returns:
            WorkspaceContext
        """
        workspace = WorkspaceManager(project_root, settings)
        workspace.ensure_initialized()
        if notifier is None:
            if settings.emit_stack_updates:
                notifier = EventLogNotifier(workspace.state_dir / "events.jsonl")
            else:
                notifier = NullNotifier()
        return cls(
            settings=settings,
            workspace=workspace,
            commit_engine=ReplayCommitEngine(workspace),
            diff_engine=TextDiffEngine(settings.max_file_size_bytes),
            assignment_table=HunkAssignmentTable(workspace),
            oplog=OplogManager(
                workspace,
                enabled=settings.enable_snapshots,
                max_entries=settings.oplog_max_entries,
            ),
            notifier=notifier,
        )


@dataclass
class AppContext:
    """アプリケーションコンテキスト。"""

    settings: Settings
    project_root: str | None = None
    workspaces: dict[str, WorkspaceContext] = field(default_factory=dict)
