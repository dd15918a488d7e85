"""
Stream Events

Events emitted while workflows execute. Every execution layer (tool-call
loop, sub-agent executor, workflow service) reports progress by emitting
StreamEvent instances to an EventSinkProtocol keyed by workflow id.

Events of one workflow are produced in generation order by a single
producer; there is no ordering between different workflows.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from conductor.core.domain.models import ConfirmationRequest


class EventType(str, Enum):
    """Kind of a stream event."""

    TOKEN = "token"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    REASONING = "reasoning"
    ERROR = "error"
    SUB_AGENT_START = "sub_agent_start"
    SUB_AGENT_PROGRESS = "sub_agent_progress"
    SUB_AGENT_COMPLETE = "sub_agent_complete"
    SUB_AGENT_ERROR = "sub_agent_error"
    CONFIRMATION_REQUIRED = "confirmation_required"
    CONFIRMATION_RESOLVED = "confirmation_resolved"
    WORKFLOW_COMPLETE = "workflow_complete"


@dataclass
class StreamEvent:
    """
    A single progress event.

    Attributes:
        type: Event kind
        data: Event payload, shape depends on the kind
        execution_id: Execution that produced the event
        agent_id: Agent running that execution
        timestamp: When the event was produced
    """

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    execution_id: str | None = None
    agent_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "execution_id": self.execution_id,
            "agent_id": self.agent_id,
            "timestamp": self.timestamp.isoformat(),
        }


def token(content: str, **meta: Any) -> StreamEvent:
    return StreamEvent(type=EventType.TOKEN, data={"content": content}, **meta)


def reasoning(content: str, step: int | None = None, **meta: Any) -> StreamEvent:
    data: dict[str, Any] = {"content": content}
    if step is not None:
        data["step"] = step
    return StreamEvent(type=EventType.REASONING, data=data, **meta)


def error(message: str, **meta: Any) -> StreamEvent:
    return StreamEvent(type=EventType.ERROR, data={"message": message}, **meta)


def tool_start(tool_id: str, tool: str, args: dict[str, Any], iteration: int, **meta: Any) -> StreamEvent:
    return StreamEvent(
        type=EventType.TOOL_START,
        data={"tool_id": tool_id, "tool": tool, "args": args, "iteration": iteration},
        **meta,
    )


def tool_end(
    tool_id: str,
    tool: str,
    success: bool,
    duration_ms: int,
    result: str,
    error: str | None = None,
    **meta: Any,
) -> StreamEvent:
    return StreamEvent(
        type=EventType.TOOL_END,
        data={
            "tool_id": tool_id,
            "tool": tool,
            "success": success,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        },
        **meta,
    )


def sub_agent_progress(sub_agent_id: str, message: str, **meta: Any) -> StreamEvent:
    return StreamEvent(
        type=EventType.SUB_AGENT_PROGRESS,
        data={"sub_agent_id": sub_agent_id, "message": message},
        **meta,
    )


def confirmation_required(request: ConfirmationRequest, **meta: Any) -> StreamEvent:
    return StreamEvent(
        type=EventType.CONFIRMATION_REQUIRED,
        data={
            "request_id": request.id,
            "operation": request.operation,
            "message": request.message,
            "risk_level": request.risk_level.value,
            "details": request.details,
        },
        **meta,
    )


def confirmation_resolved(request_id: str, approved: bool, reason: str | None = None, **meta: Any) -> StreamEvent:
    return StreamEvent(
        type=EventType.CONFIRMATION_RESOLVED,
        data={"request_id": request_id, "approved": approved, "reason": reason},
        **meta,
    )


def workflow_complete(status: str, report: str | None = None, **meta: Any) -> StreamEvent:
    return StreamEvent(
        type=EventType.WORKFLOW_COMPLETE,
        data={"status": status, "report": report},
        **meta,
    )
