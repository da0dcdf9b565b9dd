from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Protocol
import logging
import threading
from uuid import uuid4

import yaml

from .booking import to_utc
from .errors import StorageFailure
from .models import Booking

logger = logging.getLogger(__name__)

QUEUE_FILE_NAME = "notifications.yaml"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Notification:
    notification_id: str
    send_at: datetime
    title: str
    message: str
    token: str

    def to_dict(self) -> dict[str, str]:
        return {
            "notification_id": self.notification_id,
            "send_at": to_utc(self.send_at).isoformat(timespec="seconds"),
            "title": self.title,
            "message": self.message,
            "token": self.token,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Notification":
        return Notification(
            notification_id=str(data["notification_id"]),
            send_at=to_utc(datetime.fromisoformat(str(data["send_at"]))),
            title=str(data.get("title", "")),
            message=str(data.get("message", "")),
            token=str(data.get("token", "")),
        )


class NotificationYamlQueue:
    """Pending notifications, kept in send order in a YAML list file."""

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.path = Path(base_dir) / QUEUE_FILE_NAME
        self._lock = threading.Lock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                self.path.write_text("[]\n", encoding="utf-8")
        except OSError as error:
            raise StorageFailure(f"Failed to initialise notification queue in {base_dir}") from error

    def _read(self) -> list[Notification]:
        try:
            payload = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            raise StorageFailure(f"Failed to read notification queue: {self.path}") from error
        if not isinstance(payload, list):
            return []

        notifications: list[Notification] = []
        for index, row in enumerate(payload):
            if not isinstance(row, dict):
                logger.warning("Skipping notification row %d in %s: row is not a mapping", index, self.path.name)
                continue
            try:
                notifications.append(Notification.from_dict(row))
            except (KeyError, TypeError, ValueError) as error:
                logger.warning("Skipping notification row %d in %s: %r", index, self.path.name, error)
        return notifications

    def _write(self, notifications: list[Notification]) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        rows = [item.to_dict() for item in sorted(notifications, key=lambda item: item.send_at)]
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(self.path)
        except OSError as error:
            raise StorageFailure(f"Failed to write notification queue: {self.path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def enqueue(self, send_at: datetime, title: str, message: str, token: str) -> Notification:
        notification = Notification(
            notification_id=str(uuid4()),
            send_at=to_utc(send_at),
            title=title,
            message=message,
            token=token,
        )
        with self._lock:
            pending = self._read()
            pending.append(notification)
            self._write(pending)
        return notification

    def list_all(self) -> list[Notification]:
        return sorted(self._read(), key=lambda item: item.send_at)

    def list_by_token(self, token: str) -> list[Notification]:
        return [item for item in self.list_all() if item.token == token]

    def pop_due(self, now: datetime) -> Notification | None:
        """Remove and return the earliest notification if it is due at ``now``."""
        now = to_utc(now)
        with self._lock:
            pending = sorted(self._read(), key=lambda item: item.send_at)
            if not pending or pending[0].send_at > now:
                return None
            due = pending.pop(0)
            self._write(pending)
        return due


class Sender(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class LoggingSender:
    def send(self, notification: Notification) -> None:
        logger.info("Notify %s: %s - %s", notification.token, notification.title, notification.message)


class ReminderNotifier:
    """Schedules a reminder for the booking owner ahead of the booking start."""

    def __init__(self, queue: NotificationYamlQueue, lead_minutes: int = 15) -> None:
        self.queue = queue
        self.lead = timedelta(minutes=lead_minutes)

    def booking_created(self, booking: Booking) -> None:
        self.queue.enqueue(
            send_at=booking.start - self.lead,
            title="Upcoming booking",
            message=f"{booking.resource_label} at {booking.start.strftime('%H:%M')} UTC",
            token=booking.owner_token,
        )


class NotificationDispatcher:
    """Polls the queue and hands due notifications to a sender.

    A notification is removed from the queue even when sending fails.
    """

    def __init__(
        self,
        queue: NotificationYamlQueue,
        sender: Sender | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.queue = queue
        self.sender = sender or LoggingSender()
        self._clock = now_provider or _utc_now

    def dispatch_due(self) -> list[Notification]:
        sent: list[Notification] = []
        while True:
            due = self.queue.pop_due(self._clock())
            if due is None:
                return sent
            try:
                self.sender.send(due)
            except Exception:
                logger.exception("Failed to send notification %s", due.notification_id)
                continue
            sent.append(due)

    def run(self, stop_event: threading.Event, interval_seconds: float = 1.0) -> None:
        while not stop_event.is_set():
            try:
                self.dispatch_due()
            except StorageFailure:
                logger.exception("Notification queue unavailable")
            stop_event.wait(interval_seconds)

    def start(self, interval_seconds: float = 1.0) -> tuple[threading.Thread, threading.Event]:
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self.run,
            args=(stop_event, interval_seconds),
            name="notification-dispatcher",
            daemon=True,
        )
        thread.start()
        return thread, stop_event
