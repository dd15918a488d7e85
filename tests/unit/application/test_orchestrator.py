"""Unit Tests for TaskOrchestrator and the executor variants."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conductor.application.agents import DelegatingAgent, LeafAgent
from conductor.application.orchestrator import TaskOrchestrator
from conductor.application.registry import AgentRegistry
from conductor.core.domain.errors import AgentNotFoundError
from conductor.core.domain.models import AgentIdentity, Report, ReportStatus, Task


def report_for(task: Task, agent_id: str) -> Report:
    return Report(task_id=task.id, agent_id=agent_id, status=ReportStatus.SUCCESS, content=agent_id)


@pytest.fixture
def registry():
    return AgentRegistry(
        [
            AgentIdentity(id="leaf", name="Leaf"),
            AgentIdentity(id="boss", name="Boss", is_primary=True, delegates=True),
        ]
    )


@pytest.fixture
def mock_loop():
    loop = MagicMock()
    loop.run = AsyncMock(side_effect=lambda task, identity, context, tools: report_for(task, identity.id))
    return loop


@pytest.fixture
def mock_sub_agents():
    sub_agents = MagicMock()
    sub_agents.execute_with_heartbeat = AsyncMock(
        side_effect=lambda identity, task, **kwargs: report_for(task, identity.id)
    )
    return sub_agents


@pytest.fixture
def orchestrator(registry, mock_loop, mock_sub_agents):
    return TaskOrchestrator(registry, mock_loop, mock_sub_agents, tools=MagicMock())


def test_executor_variant_selection(orchestrator, registry):
    assert isinstance(orchestrator.executor_for(registry.require("leaf")), LeafAgent)
    assert isinstance(orchestrator.executor_for(registry.require("boss")), DelegatingAgent)


@pytest.mark.asyncio
async def test_leaf_runs_loop_directly(orchestrator, mock_loop, mock_sub_agents):
    task = Task.create("t")

    report = await orchestrator.execute("leaf", task, workflow_id="wf_1")

    assert report.agent_id == "leaf"
    mock_loop.run.assert_awaited_once()
    context = mock_loop.run.call_args.args[2]
    assert context.workflow_id == "wf_1"
    mock_sub_agents.execute_with_heartbeat.assert_not_awaited()


@pytest.mark.asyncio
async def test_delegating_agent_runs_under_heartbeat(orchestrator, mock_loop, mock_sub_agents):
    report = await orchestrator.execute("boss", Task.create("t"), workflow_id="wf_1")

    assert report.agent_id == "boss"
    kwargs = mock_sub_agents.execute_with_heartbeat.call_args.kwargs
    assert kwargs["workflow_id"] == "wf_1"
    mock_loop.run.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_agent(orchestrator):
    with pytest.raises(AgentNotFoundError):
        await orchestrator.execute("ghost", Task.create("t"))


@pytest.mark.asyncio
async def test_execute_parallel_isolates_failures(orchestrator):
    tasks = [Task.create("a"), Task.create("b"), Task.create("c")]

    reports = await orchestrator.execute_parallel(
        [("leaf", tasks[0]), ("ghost", tasks[1]), ("boss", tasks[2])]
    )

    assert [r.task_id for r in reports] == [t.id for t in tasks]
    assert reports[0].succeeded
    assert reports[1].error_message == "Agent not found: ghost"
    assert reports[2].succeeded
