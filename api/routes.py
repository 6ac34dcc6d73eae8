# api/routes.py
"""HTTP routes for story generation and health checks."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.dependencies import get_orchestrator, get_transport
from config import settings
from core.workflow_transport import WorkflowTransport
from models.orchestration_models import OrchestrationResult
from models.story_models import StoryRequest, validate_story_request
from orchestration.workflow_orchestrator import (
    RequestEncodingError,
    WorkflowOrchestrator,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def _bad_request(details: list[Any]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request body",
            "status": "error",
            "details": details,
        },
    )


def result_to_response(result: OrchestrationResult) -> JSONResponse:
    return JSONResponse(status_code=result.http_status, content=result.to_payload())


async def _watch_disconnect(
    request: Request, cancel_event: asyncio.Event, interval: float
) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling story generation")
            cancel_event.set()
            return
        await asyncio.sleep(interval)


async def parse_story_request(request: Request) -> StoryRequest | JSONResponse:
    """Decode the inbound body, or return the 400 response to send back."""
    try:
        payload = await request.json()
    except (ValueError, RecursionError) as exc:
        logger.warning(f"Error parsing request body: {exc}")
        return _bad_request([f"body is not valid JSON: {exc}"])

    if not isinstance(payload, dict):
        return _bad_request(["body must be a JSON object"])

    try:
        story_request = StoryRequest.model_validate(payload)
    except ValidationError as exc:
        logger.warning(f"Error parsing request body: {exc.error_count()} validation error(s)")
        return _bad_request(
            [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
        )

    if settings.STRICT_STORY_VALIDATION:
        issues = validate_story_request(story_request)
        if issues:
            logger.warning(f"Story request rejected by validation: {issues}")
            return _bad_request(issues)

    return story_request


@router.post("/generate-story")
async def generate_story(
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    parsed = await parse_story_request(request)
    if isinstance(parsed, JSONResponse):
        return parsed

    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(
        _watch_disconnect(
            request, cancel_event, settings.DISCONNECT_POLL_INTERVAL_SECONDS
        )
    )
    try:
        result = await orchestrator.generate_story(
            parsed,
            cancel_event=cancel_event,
            timeout=settings.STORY_OPERATION_TIMEOUT_SECONDS,
        )
    except RequestEncodingError as exc:
        logger.error(f"Error marshaling JSON: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to prepare request", "status": "error"},
        )
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)

    return result_to_response(result)


@router.get("/health")
async def health(
    check_target: bool = False,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    transport: WorkflowTransport = Depends(get_transport),
) -> JSONResponse:
    """Report service status, optionally checking the workflow endpoint."""
    body: dict[str, Any] = {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "target_url": orchestrator.target_url,
        "max_attempts": orchestrator.max_attempts,
    }
    if not check_target:
        return JSONResponse(status_code=200, content=body)

    target_status = await transport.ping(orchestrator.target_url)
    body["target_status"] = target_status
    body["target_reachable"] = target_status is not None
    if target_status is None:
        body["status"] = "degraded"
        return JSONResponse(status_code=503, content=body)
    return JSONResponse(status_code=200, content=body)
