from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

TYPE_WORKFLOW = "workflow"
TYPE_SYSTEM = "system"


@dataclass
class Notification:
    id: str
    recipient_id: int
    type: str
    title: str
    message: str
    payload: dict[str, Any] = field(default_factory=dict)
    read: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    read_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.payload,
            "read": self.read,
            "created_at": self.created_at.isoformat(),
            "read_at": self.read_at.isoformat() if self.read_at else None,
        }


class NotificationStore(Protocol):
    def append(self, notification: Notification) -> None: ...

    def mailbox(self, recipient_id: int) -> list[Notification]: ...

    def recipients(self) -> list[int]: ...

    def replace(self, recipient_id: int, notifications: list[Notification]) -> None: ...


class InMemoryNotificationStore:
    """
    Per-recipient mailboxes held in process memory.

    Lifetime is the process lifetime; nothing survives a restart. All access
    goes through one lock so timer threads and request threads can share it.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._mailboxes: dict[int, list[Notification]] = {}

    def append(self, notification: Notification) -> None:
        with self._lock:
            self._mailboxes.setdefault(notification.recipient_id, []).append(notification)

    def mailbox(self, recipient_id: int) -> list[Notification]:
        with self._lock:
            return self._mailboxes.get(recipient_id, [])

    def recipients(self) -> list[int]:
        with self._lock:
            return [rid for rid, items in self._mailboxes.items() if items]

    def replace(self, recipient_id: int, notifications: list[Notification]) -> None:
        with self._lock:
            if notifications:
                self._mailboxes[recipient_id] = notifications
            else:
                self._mailboxes.pop(recipient_id, None)
