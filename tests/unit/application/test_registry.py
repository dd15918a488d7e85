"""Unit Tests for AgentRegistry."""

import pytest

from conductor.application.registry import AgentRegistry
from conductor.core.domain.errors import AgentNotFoundError, ConductorError
from conductor.core.domain.models import AgentIdentity, Lifecycle


def temporary(agent_id: str, workflow_id: str) -> AgentIdentity:
    return AgentIdentity(id=agent_id, name=agent_id, lifecycle=Lifecycle.TEMPORARY, workflow_id=workflow_id)


@pytest.fixture
def registry():
    return AgentRegistry([AgentIdentity(id="researcher", name="Researcher")])


def test_require_known_agent(registry):
    assert registry.require("researcher").name == "Researcher"


def test_require_unknown_agent_raises(registry):
    with pytest.raises(AgentNotFoundError) as exc_info:
        registry.require("ghost")

    assert exc_info.value.message == "Agent not found: ghost"


def test_list_is_sorted(registry):
    registry.register(AgentIdentity(id="analyst", name="Analyst"))

    assert [a.id for a in registry.list()] == ["analyst", "researcher"]


def test_permanent_agent_cannot_be_unregistered(registry):
    with pytest.raises(ConductorError):
        registry.unregister("researcher")


def test_unregister_temporary(registry):
    registry.register(temporary("sub_1", "wf_1"))

    registry.unregister("sub_1")

    assert registry.get("sub_1") is None


def test_cleanup_temporary_by_workflow(registry):
    registry.register(temporary("sub_1", "wf_1"))
    registry.register(temporary("sub_2", "wf_2"))

    removed = registry.cleanup_temporary("wf_1")

    assert removed == 1
    assert registry.get("sub_1") is None
    assert registry.get("sub_2") is not None
    assert registry.get("researcher") is not None


def test_cleanup_all_temporary(registry):
    registry.register(temporary("sub_1", "wf_1"))
    registry.register(temporary("sub_2", "wf_2"))

    assert registry.cleanup_temporary() == 2
    assert [a.id for a in registry.list()] == ["researcher"]
