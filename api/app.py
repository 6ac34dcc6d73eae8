# api/app.py
"""
FastAPI application entry point for the story workflow gateway.

Usage:
    uvicorn api.app:app --port 8090
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from api.routes import router
from config import settings
from core.retry_policy import RetryPolicy
from core.workflow_transport import WorkflowTransport
from orchestration.workflow_orchestrator import WorkflowOrchestrator

logger = structlog.get_logger(__name__)


def create_app(
    transport: WorkflowTransport | None = None,
    retry_policy: RetryPolicy | None = None,
    orchestrator: WorkflowOrchestrator | None = None,
) -> FastAPI:
    """Build the app; collaborators may be injected for tests."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_transport = transport is None
        app.state.transport = transport or WorkflowTransport()
        app.state.orchestrator = orchestrator or WorkflowOrchestrator(
            app.state.transport, retry_policy=retry_policy
        )
        logger.info(
            f"Story gateway ready; forwarding to {app.state.orchestrator.target_url}"
        )
        try:
            yield
        finally:
            if owns_transport:
                await app.state.transport.aclose()

    app = FastAPI(
        title="Story Workflow Gateway",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router, prefix=settings.API_PREFIX)
    return app


app = create_app()
