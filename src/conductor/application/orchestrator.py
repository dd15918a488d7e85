"""
Application Layer - Task Orchestrator

Resolves an agent id to its identity and runs a task with the matching
executor variant. Holds no state besides the identity registry.
"""

import asyncio
import uuid
from collections.abc import Sequence

import structlog

from conductor.application.agents import DelegatingAgent, Executor, LeafAgent
from conductor.application.registry import AgentRegistry
from conductor.application.sub_agents import SubAgentExecutor
from conductor.core.domain.models import AgentIdentity, Report, Task
from conductor.core.domain.tool_loop import ToolCallLoop
from conductor.core.interfaces.tools import ToolInvokerProtocol

logger = structlog.get_logger()


class TaskOrchestrator:
    """
    Entry point for running a task with a registered agent.

    Args:
        registry: Known agent identities
        loop: Tool-call loop for leaf agents
        sub_agents: Heartbeat-guarded executor for delegating agents
        tools: Base tool invoker for leaf agents
    """

    def __init__(
        self,
        registry: AgentRegistry,
        loop: ToolCallLoop,
        sub_agents: SubAgentExecutor,
        tools: ToolInvokerProtocol,
    ):
        self.registry = registry
        self.loop = loop
        self.sub_agents = sub_agents
        self.tools = tools
        self.logger = logger.bind(component="task_orchestrator")

    def executor_for(self, identity: AgentIdentity) -> Executor:
        if identity.delegates:
            return DelegatingAgent(identity, self.sub_agents)
        return LeafAgent(identity, self.loop, self.tools)

    async def execute(
        self,
        agent_id: str,
        task: Task,
        *,
        workflow_id: str | None = None,
        parent_execution_id: str | None = None,
    ) -> Report:
        """
        Execute a task with the agent registered under ``agent_id``.

        Args:
            agent_id: Registered agent id
            task: Task to execute
            workflow_id: Owning workflow (generated when omitted)
            parent_execution_id: Parent execution, if any

        Returns:
            Report of the execution.

        Raises:
            AgentNotFoundError: If the agent is not registered
        """
        identity = self.registry.require(agent_id)
        workflow_id = workflow_id or f"wf_{uuid.uuid4().hex[:12]}"
        executor = self.executor_for(identity)

        self.logger.info(
            "task.execution.started",
            agent_id=agent_id,
            task_id=task.id,
            workflow_id=workflow_id,
            variant=type(executor).__name__,
        )
        report = await executor.execute(
            task, workflow_id=workflow_id, parent_execution_id=parent_execution_id
        )
        self.logger.info(
            "task.execution.completed",
            agent_id=agent_id,
            task_id=task.id,
            workflow_id=workflow_id,
            status=report.status.value,
            duration_ms=report.metrics.duration_ms,
        )
        return report

    async def execute_parallel(
        self,
        requests: Sequence[tuple[str, Task]],
        *,
        workflow_id: str | None = None,
    ) -> list[Report]:
        """
        Execute several (agent_id, task) pairs concurrently.

        Reports are returned in request order. A failure of one request does
        not affect the others; unknown agents yield Failed reports.
        """
        workflow_id = workflow_id or f"wf_{uuid.uuid4().hex[:12]}"
        results = await asyncio.gather(
            *(self.execute(agent_id, task, workflow_id=workflow_id) for agent_id, task in requests),
            return_exceptions=True,
        )
        reports: list[Report] = []
        for (agent_id, task), result in zip(requests, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                self.logger.error("task.execution.failed", agent_id=agent_id, error=str(result))
                reports.append(Report.failed(task, agent_id, str(result)))
            else:
                reports.append(result)
        return reports
