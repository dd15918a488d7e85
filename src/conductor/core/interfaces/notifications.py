"""Notifier protocol used by the background execution registry."""

from typing import Protocol

from conductor.core.domain.models import Notification


class NotifierProtocol(Protocol):
    def notify(self, notification: Notification) -> None:
        ...

    def dismiss_for_workflow(self, workflow_id: str) -> int:
        """Dismiss every attention notification of a workflow, returning the count."""
        ...
