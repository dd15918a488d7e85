"""
Sub-Agent Tools

Exposes the delegation modes of SubAgentExecutor as tools for a primary
agent's tool-call loop. One invoker instance is bound to one calling
identity and its execution, which acts as the parent of every child.

Admission, permission and circuit errors are returned as failed tool
results so the model can wait, retry or work around them.
"""

from typing import Any

import structlog

from conductor.application.sub_agents import SpawnRequest, SubAgentExecutor
from conductor.core.domain.errors import ConductorError
from conductor.core.domain.models import AgentIdentity, Execution, Report, Task
from conductor.core.interfaces.tools import ToolInvokerProtocol
from conductor.infrastructure.tools.local_invoker import CompositeToolInvoker

SPAWN_AGENT = "spawn_agent"
DELEGATE_TASK = "delegate_task"
PARALLEL_TASKS = "parallel_tasks"
LIST_SUB_AGENTS = "list_sub_agents"

_TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": SPAWN_AGENT,
        "description": (
            "Create a specialised sub-agent and run one task with it. "
            "Returns the sub-agent's report. At most 3 sub-agents can run at once."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Short name of the sub-agent"},
                "task": {"type": "string", "description": "Task for the sub-agent"},
                "system_prompt": {"type": "string", "description": "Instructions for the sub-agent"},
                "tool_allowlist": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Tools the sub-agent may use (omit for all)",
                },
                "permanent": {"type": "boolean", "description": "Keep the sub-agent after the task"},
            },
            "required": ["name", "task"],
        },
    },
    {
        "name": DELEGATE_TASK,
        "description": "Hand a task to an existing agent and wait for its report.",
        "parameters": {
            "type": "object",
            "properties": {
                "agent_id": {"type": "string", "description": "Id of the agent"},
                "task": {"type": "string", "description": "Task to delegate"},
            },
            "required": ["agent_id", "task"],
        },
    },
    {
        "name": PARALLEL_TASKS,
        "description": (
            "Run up to 3 tasks concurrently on existing agents. "
            "Reports are returned in the order the tasks were given."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "tasks": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "agent_id": {"type": "string"},
                            "task": {"type": "string"},
                        },
                        "required": ["agent_id", "task"],
                    },
                }
            },
            "required": ["tasks"],
        },
    },
    {
        "name": LIST_SUB_AGENTS,
        "description": "List running sub-agents and the number of free slots.",
        "parameters": {"type": "object", "properties": {}, "required": []},
    },
]


class SubAgentToolInvoker:
    """
    Tool invoker offering the delegation tools to one calling agent.

    Args:
        executor: Sub-agent executor performing the delegation
        caller: Identity of the calling (primary) agent
        execution: The caller's execution, parent of every child
    """

    def __init__(self, executor: SubAgentExecutor, caller: AgentIdentity, execution: Execution):
        self.executor = executor
        self.caller = caller
        self.execution = execution
        self.logger = structlog.get_logger().bind(
            component="sub_agent_tools", execution_id=execution.id
        )

    def list_tools(self) -> list[dict[str, Any]]:
        return [dict(tool) for tool in _TOOL_DEFINITIONS]

    async def call(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        try:
            if tool_name == SPAWN_AGENT:
                return await self._spawn(args)
            if tool_name == DELEGATE_TASK:
                return await self._delegate(args)
            if tool_name == PARALLEL_TASKS:
                return await self._parallel(args)
            if tool_name == LIST_SUB_AGENTS:
                return {"success": True, "output": self.executor.list_children(self.execution.id)}
        except ConductorError as e:
            self.logger.warning("delegation_rejected", tool=tool_name, error=e.message)
            return {"success": False, "error": e.message}
        except (KeyError, TypeError) as e:
            return {"success": False, "error": f"Invalid parameters for {tool_name}: {e}"}
        return {"success": False, "error": f"Tool not found: {tool_name}"}

    async def _spawn(self, args: dict[str, Any]) -> dict[str, Any]:
        request = SpawnRequest(
            name=str(args["name"]),
            task=Task.create(str(args["task"])),
            system_prompt=args.get("system_prompt"),
            tool_allowlist=args.get("tool_allowlist"),
            permanent=bool(args.get("permanent", False)),
        )
        report = await self.executor.spawn(
            self.caller,
            request,
            workflow_id=self.execution.workflow_id,
            parent_execution_id=self.execution.id,
        )
        return self._report_result(report)

    async def _delegate(self, args: dict[str, Any]) -> dict[str, Any]:
        report = await self.executor.delegate(
            self.caller,
            str(args["agent_id"]),
            Task.create(str(args["task"])),
            workflow_id=self.execution.workflow_id,
            parent_execution_id=self.execution.id,
        )
        return self._report_result(report)

    async def _parallel(self, args: dict[str, Any]) -> dict[str, Any]:
        entries = [(str(item["agent_id"]), Task.create(str(item["task"]))) for item in args["tasks"]]
        batch = await self.executor.parallel_batch(
            self.caller,
            entries,
            workflow_id=self.execution.workflow_id,
            parent_execution_id=self.execution.id,
        )
        sections = [
            f"## Task {index + 1} ({report.agent_id}): {report.status.value}\n\n"
            + (report.content if report.succeeded else f"Error: {report.error_message}")
            for index, report in enumerate(batch.reports)
        ]
        return {
            "success": batch.succeeded_count > 0,
            "output": f"Batch status: {batch.status.value}\n\n" + "\n\n".join(sections),
            "error": None if batch.succeeded_count else "all parallel tasks failed",
            "sub_agent_ids": [r.agent_id for r in batch.reports],
        }

    def _report_result(self, report: Report) -> dict[str, Any]:
        if report.succeeded:
            return {"success": True, "output": report.content, "sub_agent_ids": [report.agent_id]}
        return {
            "success": False,
            "error": report.error_message or "sub-agent failed",
            "sub_agent_ids": [report.agent_id],
        }


def bind_sub_agent_tools(executor: SubAgentExecutor, base: ToolInvokerProtocol):
    """
    Build the tool binder used by SubAgentExecutor.

    Primary agents flagged as delegating get the sub-agent tools in addition
    to the base tools; every other agent gets the base tools only.
    """
    def binder(identity: AgentIdentity, execution: Execution) -> ToolInvokerProtocol:
        if identity.is_primary and identity.delegates:
            return CompositeToolInvoker(SubAgentToolInvoker(executor, identity, execution), base)
        return base

    return binder
