"""
Agent API Routes
================

Read access to the agents registered in the running engine, including
temporary sub-agents spawned by live workflows.

Endpoints:
- GET /api/v1/agents - List agents
- GET /api/v1/agents/{agent_id} - Get agent by id
"""

from fastapi import APIRouter, Depends

from conductor.api.dependencies import get_runtime
from conductor.api.schemas.workflow_schemas import AgentResponse
from conductor.application.factory import ConductorRuntime
from conductor.core.domain.models import AgentIdentity

router = APIRouter()


def _to_response(identity: AgentIdentity) -> AgentResponse:
    return AgentResponse(
        id=identity.id,
        name=identity.name,
        capabilities=list(identity.capabilities),
        tool_allowlist=identity.tool_allowlist,
        lifecycle=identity.lifecycle.value,
        is_primary=identity.is_primary,
        delegates=identity.delegates,
    )


@router.get("/agents", response_model=list[AgentResponse])
def list_agents(runtime: ConductorRuntime = Depends(get_runtime)) -> list[AgentResponse]:
    return [_to_response(identity) for identity in runtime.registry.list()]


@router.get("/agents/{agent_id}", response_model=AgentResponse)
def get_agent(agent_id: str, runtime: ConductorRuntime = Depends(get_runtime)) -> AgentResponse:
    """
    Get one agent.

    Raises:
        AgentNotFoundError: Mapped to HTTP 404
    """
    return _to_response(runtime.registry.require(agent_id))
