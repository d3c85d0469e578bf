"""操作ログ（スナップショット）管理モジュール。

変更操作の直前にワークスペース状態のスナップショットを取り、
操作後にその結果（成功・失敗）を記録する。blob は追記のみなので
スナップショットには含めず、戻す際は現在の blob を使う。スナップショットは
取り消し用の補助であり、取得や記録の失敗は操作を妨げない。
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from src.errors import WorkspaceReferenceError
from src.managers.workspace_manager import WorkspaceManager, atomic_write_json
from src.managers.worktree_access import ReadPermission
from src.models.workspace import OplogEntry, Snapshot, WorkspaceState

logger = logging.getLogger(__name__)


class OplogData(BaseModel):
    """oplog.json の内容。"""

    snapshots: list[Snapshot] = Field(default_factory=list)
    entries: list[OplogEntry] = Field(default_factory=list)


class OplogManager:
    """スナップショットと操作結果を oplog.json に記録するクラス。"""

    def __init__(self, workspace: WorkspaceManager, enabled: bool = True, max_entries: int = 100) -> None:
        """OplogManagerを初期化する。

        Args:
            workspace: 対象のワークスペース
            enabled: スナップショットを取得するか
            max_entries: 保持するスナップショット数の上限
        """
        self.workspace = workspace
        self.enabled = enabled
        self.max_entries = max_entries
        self.oplog_path: Path = workspace.state_dir / "oplog.json"

    def _load(self) -> OplogData:
        if not self.oplog_path.exists():
            return OplogData()
        return OplogData.model_validate_json(self.oplog_path.read_text(encoding="utf-8"))

    def _save(self, data: OplogData) -> None:
        atomic_write_json(self.oplog_path, data.model_dump_json(indent=2))

    def _prune(self, data: OplogData) -> None:
        """上限を超えた古いスナップショットとその記録を削除する。"""
        overflow = len(data.snapshots) - self.max_entries
        if overflow <= 0:
            return
        dropped = {snapshot.id for snapshot in data.snapshots[:overflow]}
        data.snapshots = data.snapshots[overflow:]
        data.entries = [entry for entry in data.entries if entry.snapshot_id not in dropped]
        logger.debug(f"古いスナップショットを削除しました: {len(dropped)} 件")

    def take_snapshot(self, operation: str) -> Snapshot | None:
        """現在の状態のスナップショットを取る。

        失敗してもログを出すだけで例外は送出しない。

        Returns:
            スナップショット。無効化されているか失敗した場合は None
        """
        if not self.enabled:
            return None
        try:
            snapshot = Snapshot(
                id=str(uuid.uuid4()),
                operation=operation,
                created_at=datetime.now(),
                state=self.workspace.state.model_dump(mode="json", exclude={"blobs"}),
            )
            data = self._load()
            data.snapshots.append(snapshot)
            self._prune(data)
            self._save(data)
        except Exception as e:
            logger.warning(f"スナップショットの取得に失敗しました（{operation}）: {e}")
            return None
        logger.debug(f"スナップショットを取得しました: {operation} ({snapshot.id})")
        return snapshot

    def record_outcome(
        self,
        snapshot: Snapshot | None,
        details: dict[str, Any] | None = None,
        error: BaseException | str | None = None,
    ) -> None:
        """スナップショットに操作結果を記録する。

        スナップショットが無い場合は何もしない。失敗してもログを出すだけ。
        """
        if snapshot is None:
            return
        try:
            entry = OplogEntry(
                snapshot_id=snapshot.id,
                operation=snapshot.operation,
                status="error" if error is not None else "ok",
                details=details or {},
                error=str(error) if error is not None else None,
                recorded_at=datetime.now(),
            )
            data = self._load()
            data.entries.append(entry)
            self._save(data)
        except Exception as e:
            logger.warning(f"操作結果の記録に失敗しました（{snapshot.operation}）: {e}")

    def list_snapshots(self) -> list[Snapshot]:
        """スナップショットを新しい順に返す。"""
        return list(reversed(self._load().snapshots))

    def list_entries(self) -> list[OplogEntry]:
        """記録を新しい順に返す。"""
        return list(reversed(self._load().entries))

    def restore(self, snapshot_id: str, perm: ReadPermission) -> WorkspaceState:
        """スナップショットの状態に戻す。

        戻す前の状態もスナップショットとして残す。

        Raises:
            WorkspaceReferenceError: スナップショットが存在しない場合
        """
        data = self._load()
        snapshot = next((s for s in data.snapshots if s.id == snapshot_id), None)
        if snapshot is None:
            raise WorkspaceReferenceError(
                f"スナップショットが見つかりません: {snapshot_id}",
                snapshot_id=snapshot_id,
            )
        before = self.take_snapshot("restore")
        blobs = dict(self.workspace.state.blobs)
        state = WorkspaceState.model_validate({**snapshot.state, "blobs": blobs})
        self.workspace.restore_state(state, perm)
        self.record_outcome(before, details={"restored_snapshot": snapshot_id})
        logger.info(f"スナップショットに戻しました: {snapshot.operation} ({snapshot_id})")
        return state
