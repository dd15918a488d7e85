from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from conductor import __version__
from conductor.api.routes import agents, health, workflows
from conductor.application.factory import ConductorFactory, ConductorRuntime
from conductor.core.domain.errors import (
    AdmissionRejectedError,
    AgentNotFoundError,
    CircuitOpenError,
    ConductorError,
    PermissionDeniedError,
)

logger = structlog.get_logger()

_STATUS_CODES: list[tuple[type[ConductorError], int]] = [
    (AgentNotFoundError, 404),
    (PermissionDeniedError, 403),
    (AdmissionRejectedError, 429),
    (CircuitOpenError, 503),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI startup/shutdown events."""
    if app.state.runtime is None:
        factory = ConductorFactory(config_dir=app.state.config_dir)
        app.state.runtime = factory.create_runtime(profile=app.state.profile)

    await logger.ainfo("fastapi.startup", message="Conductor API starting...")
    yield
    await logger.ainfo("fastapi.shutdown", message="Conductor API shutting down...")

    await app.state.runtime.workflows.shutdown()


async def conductor_error_handler(request: Request, exc: ConductorError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _STATUS_CODES if isinstance(exc, error_type)), 400
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "retriable": exc.retriable},
    )


def create_app(
    runtime: ConductorRuntime | None = None,
    profile: str = "dev",
    config_dir: str = "configs",
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        runtime: Pre-built runtime; built from the profile at startup if None
        profile: Configuration profile used when no runtime is given
        config_dir: Directory with profiles and agent definitions
    """
    app = FastAPI(
        title="Conductor API",
        description="Hierarchical task execution with background workflows",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    app.state.profile = profile
    app.state.config_dir = config_dir

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure based on environment
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ConductorError, conductor_error_handler)

    # Include routers
    app.include_router(workflows.router, prefix="/api/v1", tags=["workflows"])
    app.include_router(agents.router, prefix="/api/v1", tags=["agents"])
    app.include_router(health.router, tags=["health"])

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8070)
