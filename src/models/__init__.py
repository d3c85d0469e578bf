"""データモデルモジュール。"""

from .result import ResultEnvelope, ToolErrorInfo
from .status import (
    CreateCommitOutcome,
    FileChange,
    ProjectStatus,
    RejectedChange,
    RichHunk,
    SimpleBranch,
    SimpleCommit,
    SimpleStack,
)
from .workspace import (
    Branch,
    Commit,
    DiffHunk,
    DiffKind,
    HunkAssignment,
    HunkHeader,
    HunkLock,
    OplogEntry,
    Snapshot,
    Stack,
    StackEntry,
    TreeChange,
    TreeStatus,
    UnifiedDiff,
    WorkspaceState,
)

__all__ = [
    "Branch",
    "Commit",
    "CreateCommitOutcome",
    "DiffHunk",
    "DiffKind",
    "FileChange",
    "HunkAssignment",
    "HunkHeader",
    "HunkLock",
    "OplogEntry",
    "ProjectStatus",
    "RejectedChange",
    "ResultEnvelope",
    "RichHunk",
    "SimpleBranch",
    "SimpleCommit",
    "SimpleStack",
    "Snapshot",
    "Stack",
    "StackEntry",
    "ToolErrorInfo",
    "TreeChange",
    "TreeStatus",
    "UnifiedDiff",
    "WorkspaceState",
]
