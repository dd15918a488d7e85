"""
Application Layer - Background Execution Registry

Keeps the accumulated stream state of every top-level workflow so that a
presentation layer can switch between workflows without losing anything
that happened while a workflow ran in the background.

- Every event of every workflow is folded into its WorkflowStreamState.
- Exactly one workflow may be viewed at a time; its events are additionally
  forwarded to the live-view callback.
- A confirmation request raises a persistent attention notification tagged
  with the workflow id.
- Completion dismisses the workflow's attention notifications and raises a
  success or error notification (cancellation raises none).
- Completed entries are purged ``cleanup_after`` seconds after completion.
"""

import copy
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from conductor.core.domain.events import EventType, StreamEvent
from conductor.core.domain.models import (
    ActiveReasoningStep,
    ActiveSubAgent,
    ActiveTool,
    Notification,
    NotificationKind,
    WorkflowStatus,
    WorkflowStreamState,
)
from conductor.core.interfaces.notifications import NotifierProtocol

logger = structlog.get_logger()

CLEANUP_AFTER_SECONDS = 600.0

LiveViewCallback = Callable[[str, StreamEvent], None]


class BackgroundExecutionRegistry:
    """
    Workflow id to WorkflowStreamState map with a single viewed workflow.

    Args:
        notifier: Receives completion and attention notifications
        live_view: Called with every event of the viewed workflow
        cleanup_after: Seconds a completed workflow is retained
        clock: Time source, injectable for tests
    """

    def __init__(
        self,
        notifier: NotifierProtocol,
        live_view: LiveViewCallback | None = None,
        cleanup_after: float = CLEANUP_AFTER_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.notifier = notifier
        self.live_view = live_view
        self.cleanup_after = cleanup_after
        self._clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, WorkflowStreamState] = {}
        self._viewed: str | None = None
        self.logger = logger.bind(component="background_registry")

    @property
    def viewed_workflow_id(self) -> str | None:
        return self._viewed

    def register(self, workflow_id: str, agent_id: str, workflow_name: str) -> None:
        with self._lock:
            self._states[workflow_id] = WorkflowStreamState(
                workflow_id=workflow_id,
                agent_id=agent_id,
                workflow_name=workflow_name,
                started_at=self._clock(),
            )
        self.logger.info("workflow_registered", workflow_id=workflow_id, agent_id=agent_id)

    def update_from_event(self, workflow_id: str, event: StreamEvent) -> None:
        """Fold an event into the workflow's state and forward it if viewed."""
        attention: Notification | None = None
        with self._lock:
            state = self._states.get(workflow_id)
            if state is None:
                self.logger.debug("event_for_unknown_workflow", workflow_id=workflow_id, type=event.type.value)
                return
            if event.type != EventType.WORKFLOW_COMPLETE:
                attention = self._apply(state, event)
            forward = self._viewed == workflow_id

        if attention is not None:
            self.notifier.notify(attention)
        if forward and self.live_view is not None:
            self.live_view(workflow_id, event)

    def mark_complete(
        self,
        workflow_id: str,
        status: WorkflowStatus,
        error: str | None = None,
    ) -> None:
        with self._lock:
            state = self._states.get(workflow_id)
            if state is None:
                return
            state.status = status
            state.completed_at = self._clock()
            state.pending_attention = False
            for tool in state.tools:
                if tool.status == "running":
                    tool.status = "cancelled" if status == WorkflowStatus.CANCELLED else "error"
            if error:
                state.error = error
            name = state.workflow_name

        dismissed = self.notifier.dismiss_for_workflow(workflow_id)
        if status == WorkflowStatus.COMPLETED:
            self.notifier.notify(
                Notification(
                    kind=NotificationKind.SUCCESS,
                    title="Workflow completed",
                    message=f"{name} completed successfully",
                    workflow_id=workflow_id,
                )
            )
        elif status == WorkflowStatus.ERROR:
            self.notifier.notify(
                Notification(
                    kind=NotificationKind.ERROR,
                    title="Workflow failed",
                    message=f"{name} failed: {error or 'unknown error'}",
                    workflow_id=workflow_id,
                )
            )
        self.logger.info(
            "workflow_marked_complete",
            workflow_id=workflow_id,
            status=status.value,
            dismissed_notifications=dismissed,
        )

    def set_viewed(self, workflow_id: str | None) -> WorkflowStreamState | None:
        """
        Switch the viewed workflow.

        Returns:
            A copy of the newly viewed workflow's accumulated state, or None
            when the view is cleared or the workflow is unknown.
        """
        with self._lock:
            if workflow_id is not None and workflow_id not in self._states:
                self.logger.warning("view_unknown_workflow", workflow_id=workflow_id)
                return None
            self._viewed = workflow_id
            if workflow_id is None:
                return None
            return copy.deepcopy(self._states[workflow_id])

    def get_state(self, workflow_id: str) -> WorkflowStreamState | None:
        with self._lock:
            state = self._states.get(workflow_id)
            return copy.deepcopy(state) if state is not None else None

    def list_states(self) -> list[WorkflowStreamState]:
        with self._lock:
            return [copy.deepcopy(s) for s in self._states.values()]

    def running(self) -> list[str]:
        with self._lock:
            return [wid for wid, s in self._states.items() if s.status == WorkflowStatus.RUNNING]

    def recently_completed(self) -> list[str]:
        with self._lock:
            return [wid for wid, s in self._states.items() if s.status != WorkflowStatus.RUNNING]

    def attention_pending(self) -> list[str]:
        with self._lock:
            return [wid for wid, s in self._states.items() if s.pending_attention]

    def remove(self, workflow_id: str) -> bool:
        with self._lock:
            removed = self._states.pop(workflow_id, None) is not None
            if self._viewed == workflow_id:
                self._viewed = None
        return removed

    def cleanup(self, now: datetime | None = None) -> list[str]:
        """
        Purge workflows completed at least ``cleanup_after`` seconds ago.

        Returns:
            Ids of the purged workflows.
        """
        now = now or self._clock()
        horizon = timedelta(seconds=self.cleanup_after)
        with self._lock:
            expired = [
                wid
                for wid, s in self._states.items()
                if s.completed_at is not None and now - s.completed_at >= horizon
            ]
            for wid in expired:
                del self._states[wid]
                if self._viewed == wid:
                    self._viewed = None
        if expired:
            self.logger.info("workflows_cleaned", count=len(expired))
        return expired

    def _apply(self, state: WorkflowStreamState, event: StreamEvent) -> Notification | None:
        data = event.data
        etype = event.type

        if etype == EventType.TOKEN:
            state.content += data.get("content", "")
            state.tokens_received += 1

        elif etype == EventType.TOOL_START:
            state.tools.append(
                ActiveTool(
                    id=data.get("tool_id", ""),
                    name=data.get("tool", ""),
                    started_at=event.timestamp,
                )
            )

        elif etype == EventType.TOOL_END:
            for tool in state.tools:
                if tool.id == data.get("tool_id") and tool.status == "running":
                    tool.success = bool(data.get("success"))
                    tool.status = "completed" if tool.success else "error"
                    tool.completed_at = event.timestamp
                    tool.duration_ms = data.get("duration_ms")
                    break

        elif etype == EventType.REASONING:
            state.reasoning_steps.append(
                ActiveReasoningStep(
                    step_number=len(state.reasoning_steps) + 1,
                    content=data.get("content", ""),
                    timestamp=event.timestamp,
                )
            )

        elif etype == EventType.ERROR:
            state.error = data.get("message")

        elif etype == EventType.SUB_AGENT_START:
            state.sub_agents.append(
                ActiveSubAgent(
                    id=data.get("sub_agent_id", ""),
                    name=data.get("name", ""),
                    task=data.get("task", ""),
                    started_at=event.timestamp,
                )
            )

        elif etype in (
            EventType.SUB_AGENT_PROGRESS,
            EventType.SUB_AGENT_COMPLETE,
            EventType.SUB_AGENT_ERROR,
        ):
            sub_agent = self._find_sub_agent(state, data.get("sub_agent_id"))
            if sub_agent is not None:
                if etype == EventType.SUB_AGENT_PROGRESS:
                    sub_agent.progress = data.get("message")
                elif etype == EventType.SUB_AGENT_COMPLETE:
                    sub_agent.status = "completed"
                    sub_agent.duration_ms = data.get("duration_ms")
                    sub_agent.report = data.get("report")
                else:
                    sub_agent.status = "error"
                    sub_agent.duration_ms = data.get("duration_ms")
                    sub_agent.error = data.get("error")

        elif etype == EventType.CONFIRMATION_REQUIRED:
            state.pending_attention = True
            return Notification(
                kind=NotificationKind.ATTENTION,
                title="Confirmation required",
                message=data.get("message") or f"{state.workflow_name} is waiting for confirmation",
                workflow_id=state.workflow_id,
                persistent=True,
            )

        elif etype == EventType.CONFIRMATION_RESOLVED:
            state.pending_attention = False

        return None

    @staticmethod
    def _find_sub_agent(state: WorkflowStreamState, sub_agent_id: str | None) -> ActiveSubAgent | None:
        for sub_agent in reversed(state.sub_agents):
            if sub_agent.id == sub_agent_id and sub_agent.status == "running":
                return sub_agent
        for sub_agent in reversed(state.sub_agents):
            if sub_agent.id == sub_agent_id:
                return sub_agent
        return None
