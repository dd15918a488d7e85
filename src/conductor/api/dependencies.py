"""FastAPI dependencies."""

from fastapi import Request

from conductor.application.factory import ConductorRuntime


def get_runtime(request: Request) -> ConductorRuntime:
    """Return the runtime attached to the application at startup."""
    return request.app.state.runtime
