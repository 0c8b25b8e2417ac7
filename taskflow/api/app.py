"""FastAPI application factory.

Run with:
    uvicorn taskflow.api.app:create_app --factory --port 8000
or through the CLI:
    taskflow serve
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskflow import __version__
from taskflow.api.router import router
from taskflow.config import Settings
from taskflow.errors import AuthenticationError, TaskFlowError
from taskflow.logging_setup import install_access_log_filter
from taskflow.manager import WorkspaceManager

logger = logging.getLogger("taskflow.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    manager: WorkspaceManager = app.state.manager
    logger.info(f"Backend ready, workspace at {manager.store_path}")
    yield


async def _taskflow_error_handler(request: Request, exc: TaskFlowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def create_app(
    settings: Optional[Settings] = None,
    manager: Optional[WorkspaceManager] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()
    manager = manager or WorkspaceManager(settings=settings)

    application = FastAPI(
        title="TaskFlow API",
        version=__version__,
        description="Projects, kanban boards, comments and notifications",
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.manager = manager

    # ── CORS ───────────────────────────────────────────────────────────────
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(TaskFlowError, _taskflow_error_handler)

    # ── Register all API routes under /api ─────────────────────────────────
    application.include_router(router, prefix="/api")

    install_access_log_filter()

    return application
