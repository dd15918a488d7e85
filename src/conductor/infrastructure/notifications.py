"""In-memory notifier collecting notifications for the presentation layer."""

import threading

import structlog

from conductor.core.domain.models import Notification, NotificationKind

logger = structlog.get_logger()


class InMemoryNotifier:
    def __init__(self):
        self._lock = threading.Lock()
        self._active: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        with self._lock:
            self._active.append(notification)
        logger.info(
            "notification",
            kind=notification.kind.value,
            title=notification.title,
            workflow_id=notification.workflow_id,
            persistent=notification.persistent,
        )

    def dismiss(self, notification_id: str) -> bool:
        with self._lock:
            before = len(self._active)
            self._active = [n for n in self._active if n.id != notification_id]
            return len(self._active) < before

    def dismiss_for_workflow(self, workflow_id: str) -> int:
        with self._lock:
            keep = [
                n
                for n in self._active
                if not (n.workflow_id == workflow_id and n.kind == NotificationKind.ATTENTION)
            ]
            dismissed = len(self._active) - len(keep)
            self._active = keep
            return dismissed

    def active(self) -> list[Notification]:
        with self._lock:
            return list(self._active)
