"""
Application Layer - Executor Variants

An agent identity is executed by one of two variants:

- LeafAgent runs the tool-call loop directly with the base tools.
- DelegatingAgent runs under heartbeat supervision with the sub-agent tools
  bound to its own execution, so it can spawn, delegate and batch.

Callers only see ``Executor.execute``.
"""

from abc import ABC, abstractmethod

from conductor.application.sub_agents import SubAgentExecutor
from conductor.core.domain.context import ExecutionContext
from conductor.core.domain.models import AgentIdentity, Execution, Report, Task
from conductor.core.domain.tool_loop import ToolCallLoop
from conductor.core.interfaces.activity import ActivitySinkProtocol, NullActivitySink
from conductor.core.interfaces.tools import ToolInvokerProtocol


class Executor(ABC):
    """Runs tasks for one agent identity."""

    def __init__(self, identity: AgentIdentity):
        self.identity = identity

    @abstractmethod
    async def execute(
        self,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str | None = None,
    ) -> Report:
        ...


class LeafAgent(Executor):
    def __init__(
        self,
        identity: AgentIdentity,
        loop: ToolCallLoop,
        tools: ToolInvokerProtocol,
        activity: ActivitySinkProtocol | None = None,
    ):
        super().__init__(identity)
        self.loop = loop
        self.tools = tools
        self.activity = activity or NullActivitySink()

    async def execute(
        self,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str | None = None,
    ) -> Report:
        execution = Execution(
            agent_id=self.identity.id,
            workflow_id=workflow_id,
            parent_execution_id=parent_execution_id,
        )
        context = ExecutionContext(execution=execution, activity=self.activity)
        return await self.loop.run(task, self.identity, context, self.tools)


class DelegatingAgent(Executor):
    def __init__(self, identity: AgentIdentity, sub_agents: SubAgentExecutor):
        super().__init__(identity)
        self.sub_agents = sub_agents

    async def execute(
        self,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str | None = None,
    ) -> Report:
        return await self.sub_agents.execute_with_heartbeat(
            self.identity,
            task,
            workflow_id=workflow_id,
            parent_execution_id=parent_execution_id,
        )
