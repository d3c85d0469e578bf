"""スタック更新通知モジュール。

変更操作は、どのスタックが変わったかを通知先に伝える。
通知は投げっぱなしで、失敗しても操作の結果には影響しない。
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """スタック更新の通知先。"""

    @abstractmethod
    def notify(self, project_id: str, stack_id: str, message_id: str | None = None) -> None:
        """スタックの更新を通知する。"""
        ...


class NullNotifier(Notifier):
    """何もしない通知先。"""

    def notify(self, project_id: str, stack_id: str, message_id: str | None = None) -> None:
        return None


class EventLogNotifier(Notifier):
    """スタック更新イベントを JSON Lines で追記する通知先。

    UI などの外部プロセスは events.jsonl を監視して表示を更新する。
    """

    def __init__(self, events_path: Path) -> None:
        self.events_path = events_path
        self._lock = threading.Lock()

    def notify(self, project_id: str, stack_id: str, message_id: str | None = None) -> None:
        event = {
            "type": "stack_updated",
            "project_id": project_id,
            "stack_id": stack_id,
            "message_id": message_id,
            "timestamp": datetime.now().isoformat(),
        }
        self.events_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, open(self.events_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")

    def read_events(self) -> list[dict]:
        """記録済みのイベントを古い順に返す。"""
        if not self.events_path.exists():
            return []
        with open(self.events_path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]


def notify_safely(
    notifier: Notifier | None,
    project_id: str,
    stack_id: str | None,
    message_id: str | None = None,
) -> None:
    """通知を送る。失敗はログに残して握りつぶす。"""
    if notifier is None or stack_id is None:
        return
    try:
        notifier.notify(project_id, stack_id, message_id=message_id)
    except Exception as e:
        logger.warning(f"スタック更新の通知に失敗しました（{stack_id}）: {e}")
