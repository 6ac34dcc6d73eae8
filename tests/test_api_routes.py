# tests/test_api_routes.py
import asyncio
import json
import sys

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.routes import _watch_disconnect
from config import settings
from core.retry_policy import FixedDelayRetryPolicy
from core.workflow_transport import TransportResponse
from models.orchestration_models import (
    ControlFlowExcludedResult,
    FailureKind,
    FailureResult,
    StoryResult,
)
from orchestration.workflow_orchestrator import (
    RequestEncodingError,
    WorkflowOrchestrator,
)


class FakeTransport:
    def __init__(self, responses=None, ping_status=200):
        self.responses = list(responses or [])
        self.ping_status = ping_status
        self.posted: list[bytes] = []

    async def post(self, url, body, headers=None):
        self.posted.append(body)
        return self.responses.pop(0)

    async def ping(self, url, timeout=None):
        return self.ping_status

    async def aclose(self):
        pass


class FakeOrchestrator:
    target_url = "http://workflow.test/run"
    max_attempts = 3

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def generate_story(self, request, *, target_url=None, cancel_event=None, timeout=None):
        self.calls.append({"request": request, "cancel_event": cancel_event, "timeout": timeout})
        if self.error:
            raise self.error
        return self.result


def _client(orchestrator=None, transport=None) -> TestClient:
    return TestClient(
        create_app(
            transport=transport or FakeTransport(),
            orchestrator=orchestrator or FakeOrchestrator(),
        )
    )


def test_generate_story_end_to_end(story_payload):
    envelope = {"output": {"type": "string", "value": json.dumps({"title": "X"})}}
    transport = FakeTransport(
        [
            TransportResponse(status_code=500, body=b"busy"),
            TransportResponse(status_code=200, body=json.dumps(envelope).encode()),
        ]
    )
    orchestrator = WorkflowOrchestrator(
        transport,
        retry_policy=FixedDelayRetryPolicy(delay_seconds=0),
        target_url="http://workflow.test/run",
    )
    with _client(orchestrator, transport) as client:
        response = client.post("/api/generate-story", json=story_payload)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["story"] == {"title": "X"}
    assert body["raw_data"] == envelope
    assert body["attempts"] == 2
    assert json.loads(transport.posted[0]) == story_payload


def test_orchestrator_receives_cancel_event_and_deadline(story_payload):
    orchestrator = FakeOrchestrator(
        StoryResult(attempts=1, message="ok", http_status=200, story={"title": "X"})
    )
    with _client(orchestrator) as client:
        client.post("/api/generate-story", json=story_payload)

    call = orchestrator.calls[0]
    assert call["request"].n_chapters == story_payload["n_chapters"]
    assert call["cancel_event"] is not None
    assert not call["cancel_event"].is_set()
    assert call["timeout"] == settings.STORY_OPERATION_TIMEOUT_SECONDS


def test_invalid_json_body_returns_400():
    orchestrator = FakeOrchestrator()
    with _client(orchestrator) as client:
        response = client.post(
            "/api/generate-story",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"
    assert orchestrator.calls == []


@pytest.mark.parametrize(
    "content",
    [
        pytest.param(
            b'{"n_chapters": ' + b"1" * 5000 + b"}",
            id="oversized-integer",
            marks=pytest.mark.skipif(
                not hasattr(sys, "get_int_max_str_digits"),
                reason="interpreter has no integer string conversion limit",
            ),
        ),
        pytest.param(b"[" * 100000 + b"]" * 100000, id="deep-nesting"),
    ],
)
def test_body_json_cannot_decode_returns_400(content):
    orchestrator = FakeOrchestrator()
    with _client(orchestrator) as client:
        response = client.post(
            "/api/generate-story",
            content=content,
            headers={"Content-Type": "application/json"},
        )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"
    assert orchestrator.calls == []


class DisconnectingRequest:
    def __init__(self, polls_before_disconnect: int):
        self.polls = 0
        self.polls_before_disconnect = polls_before_disconnect

    async def is_disconnected(self) -> bool:
        self.polls += 1
        return self.polls > self.polls_before_disconnect


@pytest.mark.asyncio
async def test_disconnect_watcher_sets_cancel_event():
    request = DisconnectingRequest(polls_before_disconnect=2)
    cancel_event = asyncio.Event()

    await asyncio.wait_for(_watch_disconnect(request, cancel_event, 0), timeout=1)

    assert cancel_event.is_set()
    assert request.polls == 3


@pytest.mark.asyncio
async def test_disconnect_watcher_stops_once_event_is_set():
    request = DisconnectingRequest(polls_before_disconnect=100)
    cancel_event = asyncio.Event()
    cancel_event.set()

    await asyncio.wait_for(_watch_disconnect(request, cancel_event, 0), timeout=1)

    assert request.polls == 0


def test_non_object_body_returns_400():
    with _client() as client:
        response = client.post("/api/generate-story", json=[1, 2, 3])
    assert response.status_code == 400


def test_missing_field_returns_400(story_payload):
    story_payload.pop("l_chapter")
    with _client() as client:
        response = client.post("/api/generate-story", json=story_payload)
    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "error"
    assert any("l_chapter" in detail for detail in body["details"])


def test_strict_validation_rejects_out_of_bounds(monkeypatch, story_payload):
    monkeypatch.setattr(settings, "STRICT_STORY_VALIDATION", True)
    story_payload["n_chapters"] = 50
    orchestrator = FakeOrchestrator()
    with _client(orchestrator) as client:
        response = client.post("/api/generate-story", json=story_payload)
    assert response.status_code == 400
    assert response.json()["details"] == ["n_chapters must be at most 20"]
    assert orchestrator.calls == []


def test_bounds_not_enforced_by_default(story_payload):
    story_payload["n_chapters"] = 50
    orchestrator = FakeOrchestrator(
        StoryResult(attempts=1, message="ok", http_status=200, story={})
    )
    with _client(orchestrator) as client:
        response = client.post("/api/generate-story", json=story_payload)
    assert response.status_code == 200


def test_service_failure_maps_to_bad_gateway(story_payload):
    result = FailureResult(
        attempts=3,
        message="upstream exploded",
        http_status=502,
        kind=FailureKind.SERVICE,
        error="Target API returned an error after all retries",
        target_status=500,
        target_url="http://workflow.test/run",
    )
    with _client(FakeOrchestrator(result)) as client:
        response = client.post("/api/generate-story", json=story_payload)
    assert response.status_code == 502
    body = response.json()
    assert body["status"] == "error"
    assert body["target_status"] == 500
    assert body["attempts"] == 3


def test_control_flow_excluded_is_soft_success(story_payload):
    result = ControlFlowExcludedResult(
        attempts=3,
        message="excluded",
        http_status=200,
        envelope={"output": {"type": "control-flow-excluded"}},
    )
    with _client(FakeOrchestrator(result)) as client:
        response = client.post("/api/generate-story", json=story_payload)
    assert response.status_code == 200
    assert response.json()["status"] == "control_flow_excluded"


def test_encoding_error_returns_500(story_payload):
    orchestrator = FakeOrchestrator(error=RequestEncodingError("bad value"))
    with _client(orchestrator) as client:
        response = client.post("/api/generate-story", json=story_payload)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to prepare request", "status": "error"}


def test_health_without_target_check():
    with _client() as client:
        response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["target_url"] == "http://workflow.test/run"
    assert "target_reachable" not in body


@pytest.mark.parametrize(
    "ping_status, expected_code, expected_status",
    [(200, 200, "ok"), (None, 503, "degraded")],
)
def test_health_with_target_check(ping_status, expected_code, expected_status):
    with _client(transport=FakeTransport(ping_status=ping_status)) as client:
        response = client.get("/api/health", params={"check_target": "true"})
    assert response.status_code == expected_code
    body = response.json()
    assert body["status"] == expected_status
    assert body["target_reachable"] is (ping_status is not None)
