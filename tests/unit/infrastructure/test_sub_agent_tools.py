"""Unit Tests for the delegation tools offered to primary agents."""

import asyncio

import pytest

from conductor.application.registry import AgentRegistry
from conductor.application.sub_agents import SubAgentExecutor
from conductor.core.domain.models import AgentIdentity, Execution, Report, ReportStatus
from conductor.infrastructure.tools.builtin import builtin_tools
from conductor.infrastructure.tools.local_invoker import LocalToolInvoker
from conductor.infrastructure.tools.sub_agent_tools import SubAgentToolInvoker, bind_sub_agent_tools


def reply(content):
    async def behaviour(task, identity, context, tools):
        return Report(task_id=task.id, agent_id=identity.id, status=ReportStatus.SUCCESS, content=content)

    return behaviour


@pytest.fixture
def executor(fake_loop, sink, store):
    registry = AgentRegistry([AgentIdentity(id="researcher", name="Researcher")])
    loop = fake_loop({"researcher": reply("Paris"), "helper": reply("helped")})
    return SubAgentExecutor(loop=loop, registry=registry, tools=None, event_sink=sink, store=store)


@pytest.fixture
def execution():
    return Execution(agent_id="primary", workflow_id="wf_1")


@pytest.fixture
def invoker(executor, primary, execution):
    return SubAgentToolInvoker(executor, primary, execution)


def test_tool_definitions(invoker):
    names = [t["name"] for t in invoker.list_tools()]

    assert names == ["spawn_agent", "delegate_task", "parallel_tasks", "list_sub_agents"]


@pytest.mark.asyncio
async def test_delegate_task(invoker):
    result = await invoker.call("delegate_task", {"agent_id": "researcher", "task": "capital of France?"})

    assert result == {"success": True, "output": "Paris", "sub_agent_ids": ["researcher"]}


@pytest.mark.asyncio
async def test_spawn_agent(invoker, executor):
    result = await invoker.call("spawn_agent", {"name": "helper", "task": "help me"})

    assert result["success"]
    assert result["output"] == "helped"
    assert result["sub_agent_ids"][0].startswith("sub_")


@pytest.mark.asyncio
async def test_parallel_tasks(invoker):
    result = await invoker.call(
        "parallel_tasks",
        {"tasks": [{"agent_id": "researcher", "task": "a"}, {"agent_id": "ghost", "task": "b"}]},
    )

    assert result["success"]
    assert result["output"].startswith("Batch status: partial")
    assert "## Task 2 (ghost): failed" in result["output"]
    assert result["sub_agent_ids"] == ["researcher", "ghost"]


@pytest.mark.asyncio
async def test_rejections_become_failed_results(executor, execution):
    sub_agent = AgentIdentity(id="sub", name="Sub")
    invoker = SubAgentToolInvoker(executor, sub_agent, execution)

    result = await invoker.call("delegate_task", {"agent_id": "researcher", "task": "t"})

    assert result["success"] is False
    assert result["error"].startswith("Only the primary agent can delegate tasks.")


@pytest.mark.asyncio
async def test_admission_limit_is_reported(invoker, executor, execution):
    for _ in range(3):
        executor.slots.acquire(execution.id)

    result = await invoker.call("spawn_agent", {"name": "helper", "task": "t"})

    assert result["success"] is False
    assert "Sub-agent limit reached" in result["error"]


@pytest.mark.asyncio
async def test_invalid_arguments(invoker):
    result = await invoker.call("delegate_task", {"task": "missing agent"})

    assert result["success"] is False
    assert "Invalid parameters for delegate_task" in result["error"]


@pytest.mark.asyncio
async def test_list_sub_agents(invoker):
    result = await invoker.call("list_sub_agents", {})

    assert result["output"]["available"] == 3
    assert result["output"]["children"] == []


def test_binder_only_extends_delegating_primaries(executor, primary, execution):
    base = LocalToolInvoker(builtin_tools())
    binder = bind_sub_agent_tools(executor, base)

    leaf = binder(AgentIdentity(id="leaf", name="Leaf"), execution)
    boss = binder(primary, execution)

    assert leaf is base
    assert "spawn_agent" in {t["name"] for t in boss.list_tools()}
    assert "echo" in {t["name"] for t in boss.list_tools()}
