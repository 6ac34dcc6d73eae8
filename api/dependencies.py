# api/dependencies.py
"""Dependency wiring for the FastAPI app."""

from __future__ import annotations

from fastapi import Request

from core.workflow_transport import WorkflowTransport
from orchestration.workflow_orchestrator import WorkflowOrchestrator


def get_orchestrator(request: Request) -> WorkflowOrchestrator:
    """Return the orchestrator created for this application instance."""
    return request.app.state.orchestrator


def get_transport(request: Request) -> WorkflowTransport:
    return request.app.state.transport
