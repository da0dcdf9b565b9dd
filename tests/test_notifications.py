import tempfile
import threading
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from amenity_booking import (
    MEETING_ROOM,
    BookingEngine,
    BookingProposal,
    BookingYamlStore,
    NotificationDispatcher,
    NotificationYamlQueue,
    ReminderNotifier,
    generate_default_catalogs,
)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 2, 24, hour, minute, tzinfo=timezone.utc)


class TestNotificationQueue(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.data_dir = Path(temp_dir.name) / "data"
        self.queue = NotificationYamlQueue(self.data_dir)

    def test_list_all_is_ordered_by_send_time(self) -> None:
        self.queue.enqueue(at(11), "later", "m", "t1")
        self.queue.enqueue(at(9), "sooner", "m", "t2")

        self.assertEqual([item.title for item in self.queue.list_all()], ["sooner", "later"])
        self.assertEqual([item.title for item in self.queue.list_by_token("t1")], ["later"])

    def test_pop_due_returns_only_due_items(self) -> None:
        self.queue.enqueue(at(9), "due", "m", "t")
        self.queue.enqueue(at(11), "not yet", "m", "t")

        self.assertEqual(self.queue.pop_due(at(10)).title, "due")
        self.assertIsNone(self.queue.pop_due(at(10)))
        self.assertEqual(len(self.queue.list_all()), 1)

    def test_malformed_rows_are_skipped(self) -> None:
        self.queue.enqueue(at(9), "kept", "m", "t")
        rows = self.queue.path.read_text(encoding="utf-8")
        self.queue.path.write_text(
            rows + "- {title: no id or time}\n- {notification_id: x, send_at: not-a-time}\n- just text\n",
            encoding="utf-8",
        )

        with self.assertLogs("amenity_booking.notifications", level="WARNING"):
            self.assertEqual([item.title for item in self.queue.list_all()], ["kept"])

        sent = NotificationDispatcher(self.queue, mock.Mock(), now_provider=lambda: at(10)).dispatch_due()
        self.assertEqual([item.title for item in sent], ["kept"])
        self.assertEqual(self.queue.list_all(), [])


class TestDispatcher(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.queue = NotificationYamlQueue(Path(temp_dir.name) / "data")

    def test_dispatch_due_sends_and_removes(self) -> None:
        sender = mock.Mock()
        self.queue.enqueue(at(9), "a", "m", "t")
        self.queue.enqueue(at(9, 30), "b", "m", "t")
        self.queue.enqueue(at(12), "c", "m", "t")

        sent = NotificationDispatcher(self.queue, sender, now_provider=lambda: at(10)).dispatch_due()

        self.assertEqual([item.title for item in sent], ["a", "b"])
        self.assertEqual(sender.send.call_count, 2)
        self.assertEqual([item.title for item in self.queue.list_all()], ["c"])

    def test_failed_send_is_dropped(self) -> None:
        sender = mock.Mock()
        sender.send.side_effect = RuntimeError("transport down")
        self.queue.enqueue(at(9), "a", "m", "t")

        sent = NotificationDispatcher(self.queue, sender, now_provider=lambda: at(10)).dispatch_due()

        self.assertEqual(sent, [])
        self.assertEqual(self.queue.list_all(), [])

    def test_run_stops_when_event_is_set(self) -> None:
        sender = mock.Mock()
        self.queue.enqueue(at(9), "a", "m", "t")
        dispatcher = NotificationDispatcher(self.queue, sender, now_provider=lambda: at(10))

        thread, stop_event = dispatcher.start(interval_seconds=0.01)
        deadline = threading.Event()
        for _ in range(200):
            if sender.send.called:
                break
            deadline.wait(0.01)
        stop_event.set()
        thread.join(timeout=2)

        self.assertFalse(thread.is_alive())
        sender.send.assert_called_once()


class TestReminderNotifier(unittest.TestCase):
    def test_booking_schedules_reminder_before_start(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            queue = NotificationYamlQueue(data_dir)
            catalog = generate_default_catalogs()[MEETING_ROOM]
            engine = BookingEngine(BookingYamlStore(data_dir), catalog, notifier=ReminderNotifier(queue, lead_minutes=15))
            room = catalog.list_resources()[0]

            engine.create(
                BookingProposal(
                    resource_id=room.resource_id,
                    date=at(9).date(),
                    start=at(9),
                    end=at(10),
                    owner_token="owner",
                )
            )

            reminders = queue.list_by_token("owner")
            self.assertEqual(len(reminders), 1)
            self.assertEqual(reminders[0].send_at, at(8, 45))
            self.assertIn(room.label, reminders[0].message)


if __name__ == "__main__":
    unittest.main()
