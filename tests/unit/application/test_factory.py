"""Unit Tests for ConductorFactory profile loading and wiring."""

from pathlib import Path

import pytest
import yaml

from conductor.application.factory import ConductorFactory
from conductor.core.domain.models import Execution
from conductor.core.interfaces.policy import PolicyMode
from conductor.infrastructure.llm.litellm_provider import LiteLLMProvider
from conductor.infrastructure.persistence.file_store import FileStore
from conductor.infrastructure.persistence.memory_store import InMemoryStore


def write_profile(config_dir: Path, name: str, data: dict) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / f"{name}.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


def write_agent(config_dir: Path, data: dict) -> None:
    agents_dir = config_dir / "agents"
    agents_dir.mkdir(parents=True, exist_ok=True)
    (agents_dir / f"{data['id']}.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


def test_missing_profile_raises(tmp_path):
    factory = ConductorFactory(config_dir=str(tmp_path))

    with pytest.raises(FileNotFoundError, match="Profile not found"):
        factory.create_runtime(profile="nope")


def test_profile_sections_are_applied(tmp_path):
    write_profile(
        tmp_path,
        "test",
        {
            "engine": {
                "max_iterations": 7,
                "policy_mode": "permissive",
                "store": "file",
                "work_dir": str(tmp_path / "work"),
            },
            "llm": {"model": "anthropic/claude-test", "retry_policy": {"max_attempts": 4}},
            "tools": ["echo"],
        },
    )
    write_agent(tmp_path, {"id": "orchestrator", "is_primary": True, "delegates": True})

    runtime = ConductorFactory(config_dir=str(tmp_path)).create_runtime(profile="test")

    assert runtime.settings.max_iterations == 7
    assert runtime.loop.max_iterations == 7
    assert runtime.policy.current_mode() == PolicyMode.PERMISSIVE
    assert runtime.gate.max_concurrent() == 3
    assert isinstance(runtime.store, FileStore)
    assert isinstance(runtime.loop.provider, LiteLLMProvider)
    assert runtime.loop.provider.model == "anthropic/claude-test"
    assert runtime.loop.provider.retry_policy.max_attempts == 4
    assert [t["name"] for t in runtime.tools.list_tools()] == ["echo"]
    assert runtime.registry.require("orchestrator").delegates


def test_unknown_tool_in_profile(tmp_path):
    write_profile(tmp_path, "bad", {"tools": ["echo", "teleport"]})

    with pytest.raises(ValueError, match="teleport"):
        ConductorFactory(config_dir=str(tmp_path)).create_runtime(profile="bad")


def test_defaults_without_profile(tmp_path):
    runtime = ConductorFactory(config_dir=str(tmp_path)).create_runtime(profile=None)

    assert isinstance(runtime.store, InMemoryStore)
    assert runtime.gate.max_concurrent() == 1
    assert {t["name"] for t in runtime.tools.list_tools()} == {"calculator", "echo", "current_time"}
    assert runtime.background.live_view is runtime.live_view
    assert runtime.sub_agents.confirmations is runtime.confirmations
    assert runtime.sub_agents.policy is runtime.policy
    assert runtime.sub_agents.confirmation_timeout == 60.0


def test_delegating_agents_get_sub_agent_tools(tmp_path):
    write_agent(tmp_path, {"id": "orchestrator", "is_primary": True, "delegates": True})
    write_agent(tmp_path, {"id": "leaf"})
    runtime = ConductorFactory(config_dir=str(tmp_path)).create_runtime(profile=None)

    boss = runtime.registry.require("orchestrator")
    leaf = runtime.registry.require("leaf")
    execution = Execution(agent_id="orchestrator", workflow_id="wf")

    boss_tools = {t["name"] for t in runtime.sub_agents.tools_for(boss, execution).list_tools()}
    leaf_tools = {t["name"] for t in runtime.sub_agents.tools_for(leaf, execution).list_tools()}

    assert {"spawn_agent", "delegate_task", "parallel_tasks", "list_sub_agents"} <= boss_tools
    assert "spawn_agent" not in leaf_tools


def test_repository_profiles_load():
    config_dir = Path(__file__).resolve().parents[3] / "configs"

    runtime = ConductorFactory(config_dir=str(config_dir)).create_runtime(profile="dev")

    assert runtime.registry.require("orchestrator").delegates
    assert runtime.registry.require("assistant").is_primary
