"""
Notification dispatcher: per-user mailboxes of workflow and system alerts.

Delivery is best-effort. Callers on the workflow path use
`send_workflow_notification`, which logs and returns None on failure instead
of raising, so a broken mailbox never blocks a stage transition.
"""
from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from app.docflow.modules.notifications.store import (
    TYPE_SYSTEM,
    TYPE_WORKFLOW,
    InMemoryNotificationStore,
    Notification,
    NotificationStore,
)

logger = logging.getLogger(__name__)

STAGE_TITLES = {
    "Submitted": "New Form Submitted",
    "Under Verification": "Form Ready for Verification",
    "Verified": "Form Verified - Ready for Approval",
    "Approved": "Form Approved",
    "Rejected": "Form Rejected",
    "Completed": "Workflow Completed",
}

STAGE_MESSAGES = {
    "Submitted": 'Form "{title}" has been submitted and is ready for verification.',
    "Under Verification": 'Form "{title}" is now under verification and requires your attention.',
    "Verified": 'Form "{title}" has been verified and is ready for final approval.',
    "Approved": 'Form "{title}" has been approved and is awaiting completion.',
    "Rejected": 'Form "{title}" has been rejected. Please review the comments.',
    "Completed": 'Form "{title}" workflow has been completed successfully.',
}


def stage_title(stage: str) -> str:
    return STAGE_TITLES.get(stage, f"Form Status: {stage}")


def stage_message(title: str, stage: str) -> str:
    template = STAGE_MESSAGES.get(stage)
    if template is None:
        return f'Form "{title}" status updated to {stage}.'
    return template.format(title=title)


class NotificationDispatcher:
    def __init__(
        self,
        store: NotificationStore | None = None,
        *,
        retention_days: int = 30,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store if store is not None else InMemoryNotificationStore()
        self.retention = timedelta(days=retention_days)
        self._clock = clock
        self._lock = threading.RLock()

    def send(
        self,
        recipient_id: int,
        type: str,
        title: str,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4().hex,
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            payload=dict(payload or {}),
            read=False,
            created_at=self._clock(),
        )
        self.store.append(notification)
        return notification

    def send_workflow_notification(self, actor, submission, stage: str) -> Notification | None:
        """Alert the actor now responsible for `submission` at `stage`."""
        if actor is None or actor.id is None:
            return None
        try:
            n = self.send(
                actor.id,
                TYPE_WORKFLOW,
                stage_title(stage),
                stage_message(submission.title, stage),
                {
                    "submissionId": submission.id,
                    "submissionNumber": submission.submission_number,
                    "submissionTitle": submission.title,
                    "stage": stage,
                    "department": submission.department,
                },
            )
        except Exception:
            logger.exception("Notification to user %s for submission %s failed", actor.id, submission.id)
            return None
        logger.info("Notification sent to user %s: %s", actor.id, n.title)
        return n

    def list(self, recipient_id: int, *, limit: int = 50, unread_only: bool = False) -> list[Notification]:
        with self._lock:
            items = list(self.store.mailbox(recipient_id))
        if unread_only:
            items = [n for n in items if not n.read]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items[: max(limit, 0)]

    def mark_read(self, recipient_id: int, notification_id: str) -> bool:
        with self._lock:
            for n in self.store.mailbox(recipient_id):
                if n.id == notification_id:
                    if not n.read:
                        n.read = True
                        n.read_at = self._clock()
                    return True
        return False

    def mark_all_read(self, recipient_id: int) -> int:
        """Marks the whole mailbox read; returns the mailbox size."""
        now = self._clock()
        with self._lock:
            items = self.store.mailbox(recipient_id)
            for n in items:
                if not n.read:
                    n.read = True
                    n.read_at = now
            return len(items)

    def unread_count(self, recipient_id: int) -> int:
        with self._lock:
            return sum(1 for n in self.store.mailbox(recipient_id) if not n.read)

    def broadcast(
        self,
        recipient_ids: Iterable[int],
        title: str,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> list[Notification]:
        sent: list[Notification] = []
        for rid in recipient_ids:
            try:
                sent.append(self.send(rid, TYPE_SYSTEM, title, message, payload))
            except Exception:
                logger.exception("System notification to user %s failed", rid)
        return sent

    def purge_expired(self) -> int:
        """Drop notifications older than the retention window. Returns how many were removed."""
        cutoff = self._clock() - self.retention
        removed = 0
        with self._lock:
            for rid in self.store.recipients():
                items = self.store.mailbox(rid)
                kept = [n for n in items if n.created_at > cutoff]
                if len(kept) != len(items):
                    removed += len(items) - len(kept)
                    self.store.replace(rid, kept)
                    logger.info("Cleaned up %s old notifications for user %s", len(items) - len(kept), rid)
        return removed

    def stats(self) -> dict[str, int]:
        total = unread = users = 0
        with self._lock:
            for rid in self.store.recipients():
                items = self.store.mailbox(rid)
                users += 1
                total += len(items)
                unread += sum(1 for n in items if not n.read)
        return {
            "totalNotifications": total,
            "unreadNotifications": unread,
            "readNotifications": total - unread,
            "usersWithNotifications": users,
            "averageNotificationsPerUser": round(total / users) if users else 0,
        }


class RetentionSweeper:
    """Calls `dispatcher.purge_expired()` every `interval_seconds` on a daemon timer."""

    def __init__(self, dispatcher: NotificationDispatcher, interval_seconds: float = 3600) -> None:
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()
        self._stopped = False

    def start(self) -> None:
        with self._lock:
            self._stopped = False
        self._schedule()

    def _schedule(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._timer = threading.Timer(self.interval_seconds, self._tick)
            self._timer.daemon = True
            self._timer.start()

    def _tick(self) -> None:
        try:
            self.dispatcher.purge_expired()
        except Exception:
            logger.exception("Notification retention sweep failed")
        self._schedule()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
