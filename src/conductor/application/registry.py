"""
Application Layer - Agent Registry

In-process registry of known agent identities. Permanent identities are
usually loaded from configuration at startup; temporary identities are
created by spawn operations and removed when their task or owning workflow
ends.
"""

import threading

import structlog

from conductor.core.domain.errors import AgentNotFoundError, ConductorError
from conductor.core.domain.models import AgentIdentity

logger = structlog.get_logger()


class AgentRegistry:
    """Thread-safe map of agent id to AgentIdentity."""

    def __init__(self, identities: list[AgentIdentity] | None = None):
        self._lock = threading.Lock()
        self._agents: dict[str, AgentIdentity] = {}
        self.logger = logger.bind(component="agent_registry")
        for identity in identities or []:
            self.register(identity)

    def register(self, identity: AgentIdentity) -> None:
        with self._lock:
            replaced = identity.id in self._agents
            self._agents[identity.id] = identity
        self.logger.debug(
            "agent_registered",
            agent_id=identity.id,
            lifecycle=identity.lifecycle.value,
            replaced=replaced,
        )

    def get(self, agent_id: str) -> AgentIdentity | None:
        with self._lock:
            return self._agents.get(agent_id)

    def require(self, agent_id: str) -> AgentIdentity:
        """
        Return the identity registered under ``agent_id``.

        Raises:
            AgentNotFoundError: If no such agent is registered
        """
        identity = self.get(agent_id)
        if identity is None:
            raise AgentNotFoundError(agent_id)
        return identity

    def list(self) -> list[AgentIdentity]:
        with self._lock:
            return sorted(self._agents.values(), key=lambda a: a.id)

    def unregister(self, agent_id: str) -> AgentIdentity:
        """
        Remove a temporary identity.

        Raises:
            AgentNotFoundError: If no such agent is registered
            ConductorError: If the identity is permanent
        """
        with self._lock:
            identity = self._agents.get(agent_id)
            if identity is None:
                raise AgentNotFoundError(agent_id)
            if not identity.is_temporary:
                raise ConductorError(f"Cannot unregister permanent agent: {agent_id}")
            del self._agents[agent_id]
        self.logger.debug("agent_unregistered", agent_id=agent_id)
        return identity

    def cleanup_temporary(self, workflow_id: str | None = None) -> int:
        """
        Remove temporary identities, optionally only those of one workflow.

        Returns:
            Number of identities removed.
        """
        with self._lock:
            doomed = [
                agent_id
                for agent_id, identity in self._agents.items()
                if identity.is_temporary
                and (workflow_id is None or identity.workflow_id == workflow_id)
            ]
            for agent_id in doomed:
                del self._agents[agent_id]
        if doomed:
            self.logger.info("temporary_agents_cleaned", count=len(doomed), workflow_id=workflow_id)
        return len(doomed)
