"""
Application Layer - Workflow Service

Runs top-level workflows in the background. Both the CLI and the HTTP API
start workflows through this service.

Workflow lifecycle:
1. Admission through the ConcurrencyGate (rejected, never queued)
2. Registration in the BackgroundExecutionRegistry
3. Execution of the task by the TaskOrchestrator in its own asyncio task
4. On completion, cancellation or crash: gate release, registry completion
   and notification, ``workflow_complete`` event, cleanup of the
   workflow's temporary agents, and a persisted ``workflow`` record

Completed workflows are forgotten by the registry and by this service once
the retention period has passed.
"""

import asyncio
import uuid
from typing import Any

import structlog

from conductor.application.background import BackgroundExecutionRegistry
from conductor.application.concurrency import ConcurrencyGate
from conductor.application.orchestrator import TaskOrchestrator
from conductor.application.registry import AgentRegistry
from conductor.core.domain.events import workflow_complete
from conductor.core.domain.models import Report, ReportStatus, Task, WorkflowStatus
from conductor.core.interfaces.events import EventSinkProtocol
from conductor.core.interfaces.store import StoreProtocol

logger = structlog.get_logger()


class WorkflowService:
    """Starts, tracks and cancels background workflows."""

    def __init__(
        self,
        orchestrator: TaskOrchestrator,
        gate: ConcurrencyGate,
        background: BackgroundExecutionRegistry,
        registry: AgentRegistry,
        event_sink: EventSinkProtocol,
        store: StoreProtocol,
    ):
        self.orchestrator = orchestrator
        self.gate = gate
        self.background = background
        self.registry = registry
        self.event_sink = event_sink
        self.store = store
        self.reports: dict[str, Report] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self.logger = logger.bind(component="workflow_service")

    async def start(
        self,
        agent_id: str,
        description: str,
        name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        """
        Start a workflow in the background.

        Args:
            agent_id: Agent that executes the workflow's task
            description: Task description
            name: Display name (defaults to the start of the description)
            context: Additional task context

        Returns:
            The workflow id.

        Raises:
            AgentNotFoundError: If the agent is not registered
            AdmissionRejectedError: If the workflow limit is reached
        """
        self.registry.require(agent_id)
        self.cleanup()
        workflow_id = f"wf_{uuid.uuid4().hex[:12]}"
        self.gate.register(workflow_id)

        task = Task.create(description, context)
        self.background.register(workflow_id, agent_id, name or description[:60])
        runner = asyncio.create_task(
            self._run(workflow_id, agent_id, task), name=f"workflow-{workflow_id}"
        )
        runner.add_done_callback(lambda _: self._ensure_completed(workflow_id, agent_id, task))
        self._tasks[workflow_id] = runner
        self.logger.info(
            "workflow.started",
            workflow_id=workflow_id,
            agent_id=agent_id,
            task=description[:100],
        )
        return workflow_id

    async def wait(self, workflow_id: str) -> Report:
        """Wait for a workflow to end and return its report."""
        task = self._tasks.get(workflow_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        if workflow_id not in self.reports:
            raise KeyError(f"Unknown workflow: {workflow_id}")
        return self.reports[workflow_id]

    def cancel(self, workflow_id: str) -> bool:
        """Request cancellation. Returns False if the workflow is not running."""
        task = self._tasks.get(workflow_id)
        if task is None or task.done():
            return False
        self.logger.info("workflow.cancel_requested", workflow_id=workflow_id)
        task.cancel()
        return True

    def cleanup(self) -> list[str]:
        """Purge expired workflows from the background registry and from this service."""
        purged = self.background.cleanup()
        for workflow_id in purged:
            self.reports.pop(workflow_id, None)
            task = self._tasks.get(workflow_id)
            if task is not None and task.done():
                del self._tasks[workflow_id]
        return purged

    def is_running(self, workflow_id: str) -> bool:
        task = self._tasks.get(workflow_id)
        return task is not None and not task.done()

    async def shutdown(self) -> None:
        """Cancel every running workflow and wait for them to finish."""
        running = [t for t in self._tasks.values() if not t.done()]
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)

    async def _run(self, workflow_id: str, agent_id: str, task: Task) -> Report:
        try:
            report = await self.orchestrator.execute(agent_id, task, workflow_id=workflow_id)
        except asyncio.CancelledError:
            report = Report.failed(task, agent_id, "workflow cancelled")
            await self._finalize(workflow_id, agent_id, report, WorkflowStatus.CANCELLED)
            raise
        except Exception as e:
            self.logger.error(
                "workflow.failed",
                workflow_id=workflow_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            report = Report.failed(task, agent_id, str(e))
            await self._finalize(workflow_id, agent_id, report, WorkflowStatus.ERROR)
            return report

        status = (
            WorkflowStatus.ERROR if report.status == ReportStatus.FAILED else WorkflowStatus.COMPLETED
        )
        await self._finalize(workflow_id, agent_id, report, status)
        return report

    def _ensure_completed(self, workflow_id: str, agent_id: str, task: Task) -> None:
        # A workflow cancelled before its first step never ran _run.
        if workflow_id not in self.reports:
            self._complete(
                workflow_id, agent_id, Report.failed(task, agent_id, "workflow cancelled"),
                WorkflowStatus.CANCELLED,
            )

    def _complete(
        self,
        workflow_id: str,
        agent_id: str,
        report: Report,
        status: WorkflowStatus,
    ) -> None:
        self.reports[workflow_id] = report
        self.gate.release(workflow_id)
        self.background.mark_complete(workflow_id, status, report.error_message)
        self.event_sink.emit(
            workflow_id,
            workflow_complete(status.value, report.content, agent_id=agent_id),
        )
        self.registry.cleanup_temporary(workflow_id)

    async def _finalize(
        self,
        workflow_id: str,
        agent_id: str,
        report: Report,
        status: WorkflowStatus,
    ) -> None:
        self._complete(workflow_id, agent_id, report, status)
        try:
            await self.store.persist(
                "workflow",
                {
                    "workflow_id": workflow_id,
                    "agent_id": agent_id,
                    "task_id": report.task_id,
                    "status": status.value,
                    "report_status": report.status.value,
                    "error_message": report.error_message,
                    "duration_ms": report.metrics.duration_ms,
                },
            )
        except Exception as e:
            self.logger.error("store_persist_failed", kind="workflow", error=str(e))
        self.logger.info(
            "workflow.completed",
            workflow_id=workflow_id,
            status=status.value,
            duration_ms=report.metrics.duration_ms,
        )
