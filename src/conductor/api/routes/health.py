from fastapi import APIRouter, Depends

from conductor import __version__
from conductor.api.dependencies import get_runtime
from conductor.application.factory import ConductorRuntime

router = APIRouter()


@router.get("/health")
def health(runtime: ConductorRuntime = Depends(get_runtime)) -> dict:
    """Liveness check with workflow capacity."""
    return {
        "status": "ok",
        "version": __version__,
        "policy_mode": runtime.policy.current_mode().value,
        "running_workflows": runtime.gate.running_count(),
        "max_concurrent_workflows": runtime.gate.max_concurrent(),
    }
