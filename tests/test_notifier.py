"""通知のテスト。"""

from unittest.mock import MagicMock

from src.managers.notifier import EventLogNotifier, NullNotifier, notify_safely


class TestEventLogNotifier:
    """EventLogNotifier のテスト。"""

    def test_appends_events(self, temp_dir):
        """イベントが JSON Lines で追記されることをテスト。"""
        notifier = EventLogNotifier(temp_dir / "state" / "events.jsonl")
        notifier.notify("project-1", "stack-1")
        notifier.notify("project-1", "stack-2", message_id="msg-1")

        events = notifier.read_events()
        assert [(e["type"], e["stack_id"], e["message_id"]) for e in events] == [
            ("stack_updated", "stack-1", None),
            ("stack_updated", "stack-2", "msg-1"),
        ]
        assert all(e["project_id"] == "project-1" for e in events)

    def test_no_events(self, temp_dir):
        assert EventLogNotifier(temp_dir / "events.jsonl").read_events() == []


class TestNotifySafely:
    """notify_safely のテスト。"""

    def test_swallows_errors(self):
        """通知先の例外が握りつぶされることをテスト。"""
        notifier = MagicMock()
        notifier.notify.side_effect = RuntimeError("ui is gone")
        notify_safely(notifier, "project", "stack")
        notifier.notify.assert_called_once_with("project", "stack", message_id=None)

    def test_skips_without_notifier_or_stack(self):
        notify_safely(None, "project", "stack")
        notifier = MagicMock()
        notify_safely(notifier, "project", None)
        notifier.notify.assert_not_called()

    def test_null_notifier(self):
        assert NullNotifier().notify("project", "stack") is None
