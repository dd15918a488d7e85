"""
Live view buffer.

Receives the events the background registry forwards for the viewed
workflow and keeps the most recent ones, so a client that switches view
can catch up on what the workflow is doing right now. Switching to
another workflow starts a fresh buffer.
"""

import threading
from collections import deque

import structlog

from conductor.core.domain.events import StreamEvent

logger = structlog.get_logger()


class LiveViewBuffer:
    def __init__(self, maxlen: int = 500):
        self.maxlen = maxlen
        self._lock = threading.Lock()
        self._events: deque[StreamEvent] = deque(maxlen=maxlen)
        self._workflow_id: str | None = None
        self.logger = logger.bind(component="live_view")

    def __call__(self, workflow_id: str, event: StreamEvent) -> None:
        with self._lock:
            if workflow_id != self._workflow_id:
                self._events.clear()
                self._workflow_id = workflow_id
                self.logger.debug("live_view_switched", workflow_id=workflow_id)
            self._events.append(event)

    @property
    def workflow_id(self) -> str | None:
        return self._workflow_id

    def events(self, workflow_id: str | None = None) -> list[StreamEvent]:
        """Buffered events, empty if ``workflow_id`` is given and not the buffered one."""
        with self._lock:
            if workflow_id is not None and workflow_id != self._workflow_id:
                return []
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._workflow_id = None
