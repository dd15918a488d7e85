"""Event sink protocol receiving stream events keyed by workflow id."""

from typing import Protocol

from conductor.core.domain.events import StreamEvent


class EventSinkProtocol(Protocol):
    def emit(self, workflow_id: str, event: StreamEvent) -> None:
        """
        Deliver an event.

        Must not block and must not raise into the producer.
        """
        ...
