"""
Workflow API Routes
===================

Start, observe and cancel background workflows.

Endpoints:
- POST /api/v1/workflows - Start a workflow
- GET /api/v1/workflows - List workflow states
- GET /api/v1/workflows/{workflow_id} - Accumulated state of one workflow
- GET /api/v1/workflows/{workflow_id}/report - Final report
- GET /api/v1/workflows/{workflow_id}/stream - Live events via SSE
- POST /api/v1/workflows/{workflow_id}/view - Make a workflow the viewed one
- GET /api/v1/workflows/view/events - Recent events of the viewed workflow
- DELETE /api/v1/workflows/view - Clear the viewed workflow
- POST /api/v1/workflows/{workflow_id}/cancel - Cancel a running workflow
- GET /api/v1/notifications - Active notifications
- DELETE /api/v1/notifications/{notification_id} - Dismiss a notification
- GET /api/v1/confirmations - Pending delegation confirmations
- POST /api/v1/confirmations/{request_id} - Approve or reject a delegation
"""

import json

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response, StreamingResponse

from conductor.api.dependencies import get_runtime
from conductor.api.schemas.workflow_schemas import (
    ConfirmationDecisionRequest,
    ConfirmationResponse,
    LiveViewResponse,
    NotificationResponse,
    ReportResponse,
    StartWorkflowRequest,
    StartWorkflowResponse,
    WorkflowListResponse,
    WorkflowStateResponse,
)
from conductor.application.factory import ConductorRuntime
from conductor.core.domain.events import StreamEvent, workflow_complete
from conductor.core.domain.models import WorkflowStreamState

router = APIRouter()


def _state_response(state: WorkflowStreamState) -> WorkflowStateResponse:
    return WorkflowStateResponse(**state.to_dict())


def _sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.to_dict(), default=str)}\n\n"


def _require_state(runtime: ConductorRuntime, workflow_id: str) -> WorkflowStreamState:
    state = runtime.background.get_state(workflow_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")
    return state


@router.post(
    "/workflows",
    response_model=StartWorkflowResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_workflow(
    request: StartWorkflowRequest,
    runtime: ConductorRuntime = Depends(get_runtime),
) -> StartWorkflowResponse:
    """
    Start a workflow in the background.

    Raises:
        AgentNotFoundError: Mapped to HTTP 404
        AdmissionRejectedError: Mapped to HTTP 429 when the workflow limit is reached
    """
    workflow_id = await runtime.workflows.start(
        request.agent_id, request.task, name=request.name, context=request.context
    )
    return StartWorkflowResponse(workflow_id=workflow_id, status="running")


@router.get("/workflows", response_model=WorkflowListResponse)
def list_workflows(runtime: ConductorRuntime = Depends(get_runtime)) -> WorkflowListResponse:
    return WorkflowListResponse(
        workflows=[_state_response(s) for s in runtime.background.list_states()],
        running=runtime.gate.running_count(),
        max_concurrent=runtime.gate.max_concurrent(),
    )


@router.delete("/workflows/view", status_code=status.HTTP_204_NO_CONTENT)
def clear_view(runtime: ConductorRuntime = Depends(get_runtime)) -> Response:
    runtime.background.set_viewed(None)
    runtime.live_view.clear()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/workflows/view/events", response_model=LiveViewResponse)
def get_view_events(runtime: ConductorRuntime = Depends(get_runtime)) -> LiveViewResponse:
    """Recent events forwarded for the viewed workflow."""
    workflow_id = runtime.background.viewed_workflow_id
    if workflow_id is None:
        return LiveViewResponse(workflow_id=None, events=[])
    return LiveViewResponse(
        workflow_id=workflow_id,
        events=[e.to_dict() for e in runtime.live_view.events(workflow_id)],
    )


@router.get("/workflows/{workflow_id}", response_model=WorkflowStateResponse)
def get_workflow(
    workflow_id: str, runtime: ConductorRuntime = Depends(get_runtime)
) -> WorkflowStateResponse:
    return _state_response(_require_state(runtime, workflow_id))


@router.get("/workflows/{workflow_id}/report", response_model=ReportResponse)
def get_report(workflow_id: str, runtime: ConductorRuntime = Depends(get_runtime)) -> ReportResponse:
    """Final report of a finished workflow. 409 while the workflow still runs."""
    report = runtime.workflows.reports.get(workflow_id)
    if report is None:
        if runtime.workflows.is_running(workflow_id):
            raise HTTPException(status_code=409, detail=f"Workflow still running: {workflow_id}")
        raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")
    data = report.to_dict()
    return ReportResponse(
        task_id=data["task_id"],
        agent_id=data["agent_id"],
        status=data["status"],
        content=data["content"],
        error_message=data["error_message"],
        metrics=data["metrics"],
    )


@router.post("/workflows/{workflow_id}/view", response_model=WorkflowStateResponse)
def view_workflow(
    workflow_id: str, runtime: ConductorRuntime = Depends(get_runtime)
) -> WorkflowStateResponse:
    """Switch the viewed workflow and return its accumulated state."""
    state = runtime.background.set_viewed(workflow_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Workflow not found: {workflow_id}")
    return _state_response(state)


@router.post("/workflows/{workflow_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
def cancel_workflow(workflow_id: str, runtime: ConductorRuntime = Depends(get_runtime)) -> dict:
    _require_state(runtime, workflow_id)
    if not runtime.workflows.cancel(workflow_id):
        raise HTTPException(status_code=409, detail=f"Workflow not running: {workflow_id}")
    return {"workflow_id": workflow_id, "status": "cancelling"}


@router.get("/workflows/{workflow_id}/stream")
async def stream_workflow(workflow_id: str, runtime: ConductorRuntime = Depends(get_runtime)):
    """
    Stream the workflow's events via SSE until it completes.

    A workflow that already finished gets a single workflow_complete event.
    """
    state = _require_state(runtime, workflow_id)
    events = runtime.bus.open_stream(workflow_id)
    report = runtime.workflows.reports.get(workflow_id)
    if report is not None:
        events.close()

        async def final_event():
            event = workflow_complete(state.status.value, report.content, agent_id=state.agent_id)
            yield _sse(event)

        return StreamingResponse(final_event(), media_type="text/event-stream")

    async def event_generator():
        try:
            async for event in events:
                yield _sse(event)
        finally:
            events.close()

    return StreamingResponse(event_generator(), media_type="text/event-stream")


@router.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(runtime: ConductorRuntime = Depends(get_runtime)) -> list[NotificationResponse]:
    return [
        NotificationResponse(
            id=n.id,
            kind=n.kind.value,
            title=n.title,
            message=n.message,
            workflow_id=n.workflow_id,
            persistent=n.persistent,
            created_at=n.created_at,
        )
        for n in runtime.notifier.active()
    ]


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def dismiss_notification(
    notification_id: str, runtime: ConductorRuntime = Depends(get_runtime)
) -> Response:
    if not runtime.notifier.dismiss(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/confirmations", response_model=list[ConfirmationResponse])
def list_confirmations(
    workflow_id: str | None = None, runtime: ConductorRuntime = Depends(get_runtime)
) -> list[ConfirmationResponse]:
    return [ConfirmationResponse(**r.to_dict()) for r in runtime.confirmations.pending(workflow_id)]


@router.post("/confirmations/{request_id}")
def resolve_confirmation(
    request_id: str,
    decision: ConfirmationDecisionRequest,
    runtime: ConductorRuntime = Depends(get_runtime),
) -> dict:
    if not runtime.confirmations.resolve(request_id, decision.approved):
        raise HTTPException(status_code=404, detail=f"Confirmation not pending: {request_id}")
    return {"request_id": request_id, "approved": decision.approved}
