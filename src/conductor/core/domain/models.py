"""
Core Domain Models

This module defines the data models shared by every execution layer:
tasks and their reports, agent identities, executions and their status
transitions, and the per-workflow stream state kept for background
workflows.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from conductor.core.domain.errors import InvalidTransitionError


class ReportStatus(str, Enum):
    """Terminal outcome of a task."""

    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class Lifecycle(str, Enum):
    """Lifetime of an agent identity."""

    PERMANENT = "permanent"
    TEMPORARY = "temporary"


class ExecutionStatus(str, Enum):
    """Status of a single running execution."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


# Executions move out of RUNNING exactly once.
_TRANSITIONS: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.RUNNING: {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.ERROR,
        ExecutionStatus.CANCELLED,
    },
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.ERROR: set(),
    ExecutionStatus.CANCELLED: set(),
}


class WorkflowStatus(str, Enum):
    """Status of a top-level workflow as seen by observers."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Task:
    """
    A unit of work handed to an agent.

    Attributes:
        id: Unique task identifier
        description: Natural-language description of the work
        context: Additional structured context rendered into the prompt
    """

    id: str
    description: str
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, description: str, context: dict[str, Any] | None = None) -> "Task":
        return cls(id=f"task_{uuid.uuid4().hex[:12]}", description=description, context=context or {})


@dataclass
class ToolExecution:
    """Record of a single tool invocation inside the tool-call loop."""

    name: str
    args: dict[str, Any]
    result: str
    success: bool
    duration_ms: int
    iteration: int
    error: str | None = None


@dataclass
class ReasoningStep:
    """Reasoning narration emitted during execution."""

    content: str
    duration_ms: int = 0


@dataclass
class ReportMetrics:
    """
    Metrics accumulated while producing a Report.

    Attributes:
        duration_ms: Wall-clock duration of the execution
        tokens_in: Prompt tokens reported by the provider
        tokens_out: Completion tokens reported by the provider
        tools_used: Distinct tool names invoked, in first-use order
        sub_calls: Sub-agent ids spawned or delegated to
        tool_executions: Every tool invocation with its result
        reasoning_steps: Reasoning narration produced by the loop
        iterations: Provider round-trips consumed
    """

    duration_ms: int = 0
    tokens_in: int = 0
    tokens_out: int = 0
    tools_used: list[str] = field(default_factory=list)
    sub_calls: list[str] = field(default_factory=list)
    tool_executions: list[ToolExecution] = field(default_factory=list)
    reasoning_steps: list[ReasoningStep] = field(default_factory=list)
    iterations: int = 0


@dataclass
class Report:
    """
    Structured result of a task. Produced exactly once per Task.

    Attributes:
        task_id: Task this report answers
        agent_id: Agent that produced the report
        status: Success, Failed or Partial
        content: Markdown body of the report
        metrics: Execution metrics
        error_message: Failure reason when status is not Success
    """

    task_id: str
    agent_id: str
    status: ReportStatus
    content: str
    metrics: ReportMetrics = field(default_factory=ReportMetrics)
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ReportStatus.SUCCESS

    @classmethod
    def failed(
        cls,
        task: Task,
        agent_id: str,
        error_message: str,
        metrics: ReportMetrics | None = None,
    ) -> "Report":
        content = (
            f"# Agent Report: {agent_id}\n\n"
            f"**Task**: {task.description}\n\n"
            f"**Status**: Failed\n\n"
            f"## Error\n\n{error_message}"
        )
        return cls(
            task_id=task.id,
            agent_id=agent_id,
            status=ReportStatus.FAILED,
            content=content,
            metrics=metrics or ReportMetrics(),
            error_message=error_message,
        )

    def summary(self, limit: int = 200) -> str:
        text = self.error_message if self.error_message else self.content
        return text if len(text) <= limit else text[:limit] + "..."

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class AgentIdentity:
    """
    Configuration of an agent that can execute tasks.

    Attributes:
        id: Unique agent identifier
        name: Human-readable name
        capabilities: Free-form capability tags
        tool_allowlist: Permitted tool names, or None for unrestricted access
        lifecycle: Permanent agents outlive workflows, temporary ones do not
        is_primary: Only primary agents may delegate to sub-agents
        delegates: Run through the delegating executor with sub-agent tools
        system_prompt: Agent-specific instructions
        max_iterations: Per-agent override of the tool-loop iteration cap
        agent_class: Key used to isolate failures in the circuit breaker
        workflow_id: Owning workflow of a temporary identity
    """

    id: str
    name: str
    capabilities: list[str] = field(default_factory=list)
    tool_allowlist: list[str] | None = None
    lifecycle: Lifecycle = Lifecycle.PERMANENT
    is_primary: bool = False
    delegates: bool = False
    system_prompt: str | None = None
    max_iterations: int | None = None
    agent_class: str = "sub_agent"
    workflow_id: str | None = None

    def allows_tool(self, tool_name: str) -> bool:
        if self.tool_allowlist is None:
            return True
        return tool_name in self.tool_allowlist

    @property
    def is_temporary(self) -> bool:
        return self.lifecycle == Lifecycle.TEMPORARY

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentIdentity":
        allowlist = data.get("tool_allowlist")
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            capabilities=list(data.get("capabilities", [])),
            tool_allowlist=list(allowlist) if allowlist is not None else None,
            lifecycle=Lifecycle(data.get("lifecycle", Lifecycle.PERMANENT.value)),
            is_primary=bool(data.get("is_primary", False)),
            delegates=bool(data.get("delegates", False)),
            system_prompt=data.get("system_prompt"),
            max_iterations=data.get("max_iterations"),
            agent_class=data.get("agent_class", "sub_agent"),
            workflow_id=data.get("workflow_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["lifecycle"] = self.lifecycle.value
        return data


@dataclass
class Execution:
    """
    A running instance of a Task under an agent.

    Status transitions are monotonic: RUNNING moves to exactly one of
    COMPLETED, ERROR or CANCELLED and never changes again.
    """

    agent_id: str
    workflow_id: str
    parent_execution_id: str | None = None
    id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None
    last_activity_at: float = field(default_factory=time.time)

    def finish(self, status: ExecutionStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status.value, status.value)
        self.status = status
        self.completed_at = time.time()

    @property
    def is_finished(self) -> bool:
        return self.status != ExecutionStatus.RUNNING

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitSnapshot:
    """Point-in-time view of a circuit breaker."""

    failure_count: int
    state: CircuitState
    last_failure_at: float | None


@dataclass
class ActiveTool:
    id: str
    name: str
    status: str = "running"
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    success: bool | None = None
    duration_ms: int | None = None


@dataclass
class ActiveReasoningStep:
    step_number: int
    content: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ActiveSubAgent:
    id: str
    name: str
    task: str
    status: str = "running"
    progress: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    duration_ms: int | None = None
    report: str | None = None
    error: str | None = None


@dataclass
class WorkflowStreamState:
    """
    Accumulated stream state of a background workflow.

    Every event of the workflow is folded into this state whether or not
    the workflow is currently viewed, so switching the view never loses
    information.
    """

    workflow_id: str
    agent_id: str
    workflow_name: str
    status: WorkflowStatus = WorkflowStatus.RUNNING
    content: str = ""
    tools: list[ActiveTool] = field(default_factory=list)
    reasoning_steps: list[ActiveReasoningStep] = field(default_factory=list)
    sub_agents: list[ActiveSubAgent] = field(default_factory=list)
    tokens_received: int = 0
    error: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    pending_attention: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    ATTENTION = "attention"


@dataclass
class Notification:
    """User-facing notification raised by background workflows."""

    kind: NotificationKind
    title: str
    message: str
    workflow_id: str | None = None
    persistent: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)


class RiskLevel(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class ConfirmationRequest:
    """
    A delegation waiting for human approval.

    Attributes:
        workflow_id: Workflow the delegation belongs to
        agent_id: Primary agent asking to delegate
        operation: Delegation tool name (spawn_agent, delegate_task, parallel_tasks)
        message: Human readable summary of the operation
        risk_level: Medium for single delegations, high for batches
        details: Operation specific details (targets, task previews)
    """

    workflow_id: str
    agent_id: str
    operation: str
    message: str
    risk_level: RiskLevel = RiskLevel.MEDIUM
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"confirm_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["risk_level"] = self.risk_level.value
        data["created_at"] = self.created_at.isoformat()
        return data
