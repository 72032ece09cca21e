import os
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskpilot import __version__
from taskpilot.api.routes import capabilities, chat, sessions
from taskpilot.application.executor import GoalExecutor
from taskpilot.application.factory import EngineFactory

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine on startup (unless one was injected) and stop all sessions on shutdown."""
    owns_executor = app.state.executor is None
    if owns_executor:
        factory = EngineFactory(config_dir=app.state.config_dir)
        app.state.executor = factory.create_executor(profile=app.state.profile)

    await logger.ainfo(
        "fastapi.startup",
        message="Taskpilot API starting...",
        profile=app.state.profile,
        capabilities=len(app.state.executor.capabilities),
    )
    yield
    await logger.ainfo("fastapi.shutdown", message="Taskpilot API shutting down...")

    await app.state.executor.close()
    if owns_executor:
        app.state.executor = None


def create_app(
    executor: Optional[GoalExecutor] = None,
    profile: Optional[str] = None,
    config_dir: Optional[str] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        executor: Pre-wired executor; when omitted one is built from the
            profile at startup
        profile: Configuration profile (default: ``TASKPILOT_PROFILE`` or ``dev``)
        config_dir: Configuration directory (default: ``TASKPILOT_CONFIG_DIR`` or ``configs``)
    """
    app = FastAPI(
        title="Taskpilot API",
        description="Autonomous goal execution over a registry of capabilities",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.executor = executor
    app.state.profile = profile or os.getenv("TASKPILOT_PROFILE", "dev")
    app.state.config_dir = config_dir or os.getenv("TASKPILOT_CONFIG_DIR", "configs")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sessions.router, prefix="/api/v1", tags=["sessions"])
    app.include_router(chat.router, prefix="/api/v1", tags=["chat"])
    app.include_router(capabilities.router, prefix="/api/v1", tags=["capabilities"])
    app.include_router(capabilities.health_router, tags=["health"])

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8070)
