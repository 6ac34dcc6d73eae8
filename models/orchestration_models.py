# models/orchestration_models.py
"""Attempt records and result variants produced by the workflow orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AttemptOutcome(str, Enum):
    """How a single call to the workflow endpoint ended."""

    TRANSPORT_ERROR = "transport_error"
    READ_ERROR = "read_error"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"
    CONTROL_FLOW_EXCLUDED = "control_flow_excluded"
    SUCCESS = "success"


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    READ = "read"
    SERVICE = "service"


@dataclass
class Attempt:
    """One pass through the retry loop."""

    number: int
    outcome: AttemptOutcome
    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    envelope: dict[str, Any] | None = None
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def body_text(self) -> str:
        if self.body is None:
            return ""
        return self.body.decode("utf-8", errors="replace")


@dataclass
class OrchestrationResult:
    """Common shape of every orchestration outcome."""

    attempts: int
    message: str
    http_status: int
    status: str = "success"
    success: bool = True
    envelope: dict[str, Any] | None = None
    attempt_log: list[Attempt] = field(default_factory=list, repr=False)
    duration_seconds: float = 0.0

    def to_payload(self) -> dict[str, Any]:
        """Render the JSON body returned to the caller."""
        payload: dict[str, Any] = {
            "message": self.message,
            "status": self.status,
            "attempts": self.attempts,
        }
        payload.update(self._extra_payload())
        return payload

    def _extra_payload(self) -> dict[str, Any]:
        return {}


@dataclass
class StoryResult(OrchestrationResult):
    """Nested story content decoded into structured data."""

    story: Any = None

    def _extra_payload(self) -> dict[str, Any]:
        return {"story": self.story, "raw_data": self.envelope}


@dataclass
class StoryTextResult(OrchestrationResult):
    """Story content that could not be decoded, returned as raw text."""

    story_text: str = ""
    parse_note: str = "Story content returned as raw text (JSON parse failed)"
    parse_error: str | None = None

    def _extra_payload(self) -> dict[str, Any]:
        return {
            "story_text": self.story_text,
            "data": self.envelope,
            "parse_note": self.parse_note,
        }


@dataclass
class EnvelopeResult(OrchestrationResult):
    """Successful reply without a string output; the envelope is passed on."""

    def _extra_payload(self) -> dict[str, Any]:
        return {"data": self.envelope}


@dataclass
class UnparsedResponseResult(OrchestrationResult):
    """The call went through but the body never decoded as a JSON object."""

    raw_response: str = ""
    parse_error: str = ""

    def _extra_payload(self) -> dict[str, Any]:
        return {"raw_response": self.raw_response, "parse_error": self.parse_error}


@dataclass
class ControlFlowExcludedResult(OrchestrationResult):
    """The workflow kept declining to produce output."""

    status: str = "control_flow_excluded"
    info: str = (
        "The workflow returned control-flow-excluded. This might indicate a "
        "configuration issue with the flow."
    )

    def _extra_payload(self) -> dict[str, Any]:
        return {"data": self.envelope, "info": self.info}


@dataclass
class FailureResult(OrchestrationResult):
    """Retries exhausted on transport, read or service errors."""

    status: str = "error"
    success: bool = False
    kind: FailureKind = FailureKind.TRANSPORT
    error: str = ""
    target_status: int | None = None
    target_body: str | None = None
    target_url: str | None = None

    def _extra_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error, "failure_kind": self.kind.value}
        if self.kind is FailureKind.SERVICE:
            payload["target_status"] = self.target_status
            payload["target_url"] = self.target_url
        return payload


@dataclass
class CancelledResult(OrchestrationResult):
    """The caller cancelled or the operation deadline passed."""

    status: str = "cancelled"
    success: bool = False
    reason: str = ""

    def _extra_payload(self) -> dict[str, Any]:
        return {"error": self.reason}


@dataclass
class RetriesExhaustedResult(OrchestrationResult):
    """Fallback after the loop; every branch above returns before this."""

    status: str = "completed_with_retries"

    def _extra_payload(self) -> dict[str, Any]:
        return {"data": self.envelope}
