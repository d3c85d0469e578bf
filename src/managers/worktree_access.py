"""ワークツリーの排他アクセス管理モジュール。

プロジェクトごとに1つの読み書きガードを持つ。
- 書き込み（exclusive）: 変更操作の全期間を通じて保持する
- 読み込み（shared）: 読み取り専用操作同士は並行できるが、書き込み中は待たされる

プロセス内はスレッド用の読み書きロック、プロセス間は fcntl.flock で直列化する。
"""

import fcntl
import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from src.errors import WorkspacePermissionError

logger = logging.getLogger(__name__)

# プロジェクト（ロックファイルの実パス）ごとのガード
_guards: dict[str, "WorktreeAccess"] = {}
_guards_lock = threading.Lock()


class ReadPermission:
    """共有アクセスを保持していることを示すトークン。"""

    def __init__(self, access: "WorktreeAccess") -> None:
        self.access = access


class WritePermission(ReadPermission):
    """排他アクセスを保持していることを示すトークン。"""


class ExclusiveGuard:
    """排他アクセス中に発行されるガード。"""

    def __init__(self, access: "WorktreeAccess") -> None:
        self._access = access

    def write_permission(self) -> WritePermission:
        return WritePermission(self._access)

    def read_permission(self) -> ReadPermission:
        return ReadPermission(self._access)


class WorktreeAccess:
    """1プロジェクト分のワークツリー読み書きガード。"""

    def __init__(self, lock_path: Path, timeout_seconds: float = 10.0) -> None:
        """WorktreeAccessを初期化する。

        Args:
            lock_path: プロセス間ロックに使うファイルのパス
            timeout_seconds: ロック取得のタイムアウト（秒）
        """
        self.lock_path = lock_path
        self.timeout_seconds = timeout_seconds
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @classmethod
    def for_project(cls, lock_path: Path, timeout_seconds: float = 10.0) -> "WorktreeAccess":
        """ロックファイルに対応するガードを返す（同じプロジェクトなら同一インスタンス）。"""
        key = str(lock_path.expanduser().resolve())
        with _guards_lock:
            access = _guards.get(key)
            if access is None:
                access = cls(lock_path, timeout_seconds)
                _guards[key] = access
            else:
                access.timeout_seconds = timeout_seconds
            return access

    def _deadline(self) -> float:
        return time.monotonic() + self.timeout_seconds

    def _acquire_thread(self, exclusive: bool, deadline: float) -> None:
        with self._cond:
            while self._writer or (exclusive and self._readers > 0):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise WorkspacePermissionError(
                        "ワークツリーのアクセスガードを取得できませんでした"
                        f"（{self.timeout_seconds:.2f}s）: {self.lock_path}",
                        exclusive=exclusive,
                    )
                self._cond.wait(remaining)
            if exclusive:
                self._writer = True
            else:
                self._readers += 1

    def _release_thread(self, exclusive: bool) -> None:
        with self._cond:
            if exclusive:
                self._writer = False
            else:
                self._readers -= 1
            self._cond.notify_all()

    @contextmanager
    def _file_lock(self, exclusive: bool, deadline: float) -> Iterator[None]:
        """プロセス間ロックを取得する。"""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH

        with open(self.lock_path, "a+", encoding="utf-8") as lock_file:
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), mode | fcntl.LOCK_NB)
                    break
                except BlockingIOError as e:
                    if time.monotonic() >= deadline:
                        raise WorkspacePermissionError(
                            "他のプロセスがワークツリーを使用中です"
                            f"（{self.timeout_seconds:.2f}s）: {self.lock_path}",
                            exclusive=exclusive,
                        ) from e
                    time.sleep(0.01)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def exclusive(self) -> Iterator[ExclusiveGuard]:
        """排他アクセスを取得する。

        Raises:
            WorkspacePermissionError: タイムアウトまでに取得できない場合
        """
        deadline = self._deadline()
        self._acquire_thread(True, deadline)
        try:
            with self._file_lock(True, deadline):
                yield ExclusiveGuard(self)
        finally:
            self._release_thread(True)

    @contextmanager
    def shared(self) -> Iterator[ReadPermission]:
        """共有（読み取り）アクセスを取得する。

        Raises:
            WorkspacePermissionError: タイムアウトまでに取得できない場合
        """
        deadline = self._deadline()
        self._acquire_thread(False, deadline)
        try:
            with self._file_lock(False, deadline):
                yield ReadPermission(self)
        finally:
            self._release_thread(False)


def require_write(perm: ReadPermission | None) -> None:
    """書き込み権限トークンを検証する。"""
    if not isinstance(perm, WritePermission):
        raise WorkspacePermissionError("この操作には排他アクセスが必要です")
