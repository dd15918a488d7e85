"""
Activity Sink Protocol

Every layer that can suspend (provider call, tool call, sub-execution)
reports progress through an activity sink so that the heartbeat supervisor
can tell a long-running execution from a hung one.
"""

from typing import Protocol


class ActivitySinkProtocol(Protocol):
    def record_activity(self) -> None:
        ...


class NullActivitySink:
    """Activity sink that discards every report."""

    def record_activity(self) -> None:
        return None
