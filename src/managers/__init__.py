"""マネージャーモジュール。"""

from .commit_engine import CommitEngine, ReplayCommitEngine
from .diff_engine import DiffEngine, TextDiffEngine
from .hunk_assignment import HunkAssignmentTable
from .notifier import EventLogNotifier, Notifier, NullNotifier
from .oplog_manager import OplogManager
from .workspace_manager import WorkspaceManager
from .worktree_access import WorktreeAccess

__all__ = [
    "CommitEngine",
    "DiffEngine",
    "EventLogNotifier",
    "HunkAssignmentTable",
    "Notifier",
    "NullNotifier",
    "OplogManager",
    "ReplayCommitEngine",
    "TextDiffEngine",
    "WorkspaceManager",
    "WorktreeAccess",
]
