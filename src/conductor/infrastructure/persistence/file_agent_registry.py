"""
File-Based Agent Definitions
============================

Loads and stores permanent agent identities as YAML files:

    configs/agents/{agent_id}.yaml

Example definition:

    id: researcher
    name: Researcher
    capabilities: [search, summarize]
    tool_allowlist: [calculator, echo]
    is_primary: false
    system_prompt: |
      You research facts and summarize them.

A missing ``tool_allowlist`` key means unrestricted tool access. Corrupt
files are skipped with a warning so one bad definition never prevents the
engine from starting.
"""

import os
import tempfile
from pathlib import Path
from typing import Any

import structlog
import yaml

from conductor.core.domain.models import AgentIdentity, Lifecycle

logger = structlog.get_logger()


class FileAgentRegistry:
    """
    YAML persistence for permanent agent identities.

    Not thread-safe; intended for startup loading and CLI administration.
    """

    def __init__(self, configs_dir: str = "configs"):
        self.agents_dir = Path(configs_dir) / "agents"
        self.logger = logger.bind(component="file_agent_registry")

    def _get_agent_path(self, agent_id: str) -> Path:
        return self.agents_dir / f"{agent_id}.yaml"

    def _atomic_write_yaml(self, path: Path, data: dict[str, Any]) -> None:
        """
        Write YAML atomically using a temp file in the same directory + rename.

        Raises:
            OSError: If file operations fail
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=".agent_")
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            # Windows: must delete target before rename
            if path.exists():
                path.unlink()
            Path(temp_path).rename(path)
            self.logger.debug("agent.yaml.written", agent_file=str(path), atomic=True)
        except Exception:
            if Path(temp_path).exists():
                Path(temp_path).unlink()
            raise

    def _load_file(self, path: Path) -> AgentIdentity | None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            data.setdefault("id", path.stem)
            identity = AgentIdentity.from_dict(data)
        except Exception as e:
            self.logger.warning("agent.yaml.corrupt", path=str(path), error=str(e))
            return None
        if identity.is_temporary:
            self.logger.warning("agent.yaml.temporary_ignored", agent_id=identity.id)
            return None
        return identity

    def get_agent(self, agent_id: str) -> AgentIdentity | None:
        path = self._get_agent_path(agent_id)
        if not path.exists():
            return None
        return self._load_file(path)

    def list_agents(self) -> list[AgentIdentity]:
        """Load every valid definition, sorted by id."""
        if not self.agents_dir.exists():
            return []
        agents = [
            identity
            for identity in (self._load_file(p) for p in sorted(self.agents_dir.glob("*.yaml")))
            if identity is not None
        ]
        self.logger.debug("agents.listed", count=len(agents))
        return agents

    def save_agent(self, identity: AgentIdentity) -> Path:
        """
        Persist a permanent identity, replacing an existing definition.

        Raises:
            ValueError: If the identity is temporary
        """
        if identity.lifecycle != Lifecycle.PERMANENT:
            raise ValueError(f"Only permanent agents can be saved: {identity.id}")
        data = identity.to_dict()
        data.pop("workflow_id", None)
        path = self._get_agent_path(identity.id)
        self._atomic_write_yaml(path, data)
        self.logger.info("agent.saved", agent_id=identity.id, path=str(path))
        return path

    def delete_agent(self, agent_id: str) -> bool:
        path = self._get_agent_path(agent_id)
        if not path.exists():
            return False
        path.unlink()
        self.logger.info("agent.deleted", agent_id=agent_id)
        return True
