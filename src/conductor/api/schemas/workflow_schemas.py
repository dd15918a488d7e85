"""
Workflow API Schemas
====================

Pydantic request/response models for the workflow and agent endpoints.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class StartWorkflowRequest(BaseModel):
    """Request to start a background workflow."""

    agent_id: str = Field(..., description="Agent that executes the task")
    task: str = Field(..., min_length=1, description="Task description")
    name: str | None = Field(default=None, description="Display name of the workflow")
    context: dict[str, Any] | None = Field(default=None, description="Additional task context")


class StartWorkflowResponse(BaseModel):
    workflow_id: str
    status: str


class WorkflowStateResponse(BaseModel):
    """Accumulated stream state of one workflow."""

    workflow_id: str
    agent_id: str
    workflow_name: str
    status: str
    content: str
    tools: list[dict[str, Any]]
    reasoning_steps: list[dict[str, Any]]
    sub_agents: list[dict[str, Any]]
    tokens_received: int
    error: str | None = None
    started_at: datetime
    completed_at: datetime | None = None
    pending_attention: bool = False


class WorkflowListResponse(BaseModel):
    workflows: list[WorkflowStateResponse]
    running: int
    max_concurrent: int


class ReportResponse(BaseModel):
    task_id: str
    agent_id: str
    status: str
    content: str
    error_message: str | None = None
    metrics: dict[str, Any]


class NotificationResponse(BaseModel):
    id: str
    kind: str
    title: str
    message: str
    workflow_id: str | None = None
    persistent: bool
    created_at: datetime


class AgentResponse(BaseModel):
    id: str
    name: str
    capabilities: list[str]
    tool_allowlist: list[str] | None = None
    lifecycle: str
    is_primary: bool
    delegates: bool


class LiveViewResponse(BaseModel):
    workflow_id: str | None = None
    events: list[dict[str, Any]]


class ConfirmationResponse(BaseModel):
    """A delegation waiting for a human decision."""

    id: str
    workflow_id: str
    agent_id: str
    operation: str
    message: str
    risk_level: str
    details: dict[str, Any]
    created_at: datetime


class ConfirmationDecisionRequest(BaseModel):
    approved: bool = Field(..., description="True approves, False rejects the delegation")
