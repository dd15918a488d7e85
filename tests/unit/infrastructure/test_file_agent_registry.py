"""Unit Tests for FileAgentRegistry."""

import pytest

from conductor.core.domain.models import AgentIdentity, Lifecycle
from conductor.infrastructure.persistence.file_agent_registry import FileAgentRegistry


@pytest.fixture
def file_registry(tmp_path):
    return FileAgentRegistry(str(tmp_path))


def test_empty_directory(file_registry):
    assert file_registry.list_agents() == []
    assert file_registry.get_agent("missing") is None


def test_save_and_load(file_registry, tmp_path):
    identity = AgentIdentity(
        id="researcher",
        name="Researcher",
        capabilities=["search"],
        tool_allowlist=["echo"],
        system_prompt="Research things.",
    )

    path = file_registry.save_agent(identity)

    assert path == tmp_path / "agents" / "researcher.yaml"
    assert file_registry.get_agent("researcher") == identity
    assert not list((tmp_path / "agents").glob("*.tmp"))


def test_temporary_identity_cannot_be_saved(file_registry):
    identity = AgentIdentity(id="sub_1", name="Sub", lifecycle=Lifecycle.TEMPORARY)

    with pytest.raises(ValueError):
        file_registry.save_agent(identity)


def test_id_defaults_to_file_name(file_registry, tmp_path):
    agents_dir = tmp_path / "agents"
    agents_dir.mkdir()
    (agents_dir / "writer.yaml").write_text("name: Writer\n", encoding="utf-8")

    [identity] = file_registry.list_agents()

    assert identity.id == "writer"
    assert identity.tool_allowlist is None


def test_corrupt_and_temporary_files_are_skipped(file_registry, tmp_path):
    agents_dir = tmp_path / "agents"
    agents_dir.mkdir()
    (agents_dir / "broken.yaml").write_text("id: [unclosed\n", encoding="utf-8")
    (agents_dir / "temp.yaml").write_text("id: temp\nlifecycle: temporary\n", encoding="utf-8")
    (agents_dir / "ok.yaml").write_text("id: ok\n", encoding="utf-8")

    assert [a.id for a in file_registry.list_agents()] == ["ok"]


def test_delete(file_registry):
    file_registry.save_agent(AgentIdentity(id="x", name="X"))

    assert file_registry.delete_agent("x")
    assert not file_registry.delete_agent("x")
