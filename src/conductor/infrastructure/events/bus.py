"""
In-process event bus.

Implements EventSinkProtocol. Events are dispatched synchronously, in
emission order, to every subscriber callback and to the asyncio queues of
open streams for the event's workflow. Emitting never blocks and never
raises into the producer: subscriber errors are logged, and a stream whose
queue is full drops its oldest event.

A stream is registered when it is opened, not when it is first iterated,
so no event emitted after ``open_stream`` returns can be missed.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Callable

import structlog

from conductor.core.domain.events import EventType, StreamEvent

logger = structlog.get_logger()

Subscriber = Callable[[str, StreamEvent], None]


class EventBus:
    def __init__(self, stream_queue_size: int = 1000):
        self.stream_queue_size = stream_queue_size
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []
        self._streams: dict[str, list[asyncio.Queue]] = {}
        self.logger = logger.bind(component="event_bus")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for all events. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, workflow_id: str, event: StreamEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
            queues = list(self._streams.get(workflow_id, []))

        for callback in subscribers:
            try:
                callback(workflow_id, event)
            except Exception as e:
                self.logger.error(
                    "subscriber_failed",
                    workflow_id=workflow_id,
                    event_type=event.type.value,
                    error=str(e),
                    exc_info=True,
                )

        for queue in queues:
            if queue.full():
                queue.get_nowait()
                self.logger.warning("stream_event_dropped", workflow_id=workflow_id)
            queue.put_nowait(event)

    def open_stream(self, workflow_id: str) -> "EventStream":
        """Register a queue for one workflow's events right away."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.stream_queue_size)
        with self._lock:
            self._streams.setdefault(workflow_id, []).append(queue)
        return EventStream(self, workflow_id, queue)

    async def stream(self, workflow_id: str) -> AsyncIterator[StreamEvent]:
        """
        Yield events of one workflow as they are emitted.

        The stream ends after the workflow_complete event.
        """
        events = self.open_stream(workflow_id)
        try:
            async for event in events:
                yield event
        finally:
            events.close()

    def _close_stream(self, workflow_id: str, queue: asyncio.Queue) -> None:
        with self._lock:
            queues = self._streams.get(workflow_id, [])
            if queue in queues:
                queues.remove(queue)
            if not queues:
                self._streams.pop(workflow_id, None)


class EventStream:
    """
    Async iterator over one workflow's events.

    Ends after the workflow_complete event. ``close`` unregisters the queue
    and may be called any number of times.
    """

    def __init__(self, bus: EventBus, workflow_id: str, queue: asyncio.Queue):
        self.bus = bus
        self.workflow_id = workflow_id
        self._queue = queue
        self._closed = False

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event.type == EventType.WORKFLOW_COMPLETE:
            self.close()
        return event

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.bus._close_stream(self.workflow_id, self._queue)
