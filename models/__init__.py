"""Central package for gateway data models."""

from .orchestration_models import (
    Attempt,
    AttemptOutcome,
    CancelledResult,
    ControlFlowExcludedResult,
    EnvelopeResult,
    FailureKind,
    FailureResult,
    OrchestrationResult,
    RetriesExhaustedResult,
    StoryResult,
    StoryTextResult,
    UnparsedResponseResult,
)
from .story_models import STORY_FIELD_BOUNDS, StoryRequest, validate_story_request

__all__ = [
    "Attempt",
    "AttemptOutcome",
    "FailureKind",
    "OrchestrationResult",
    "StoryResult",
    "StoryTextResult",
    "EnvelopeResult",
    "UnparsedResponseResult",
    "ControlFlowExcludedResult",
    "FailureResult",
    "CancelledResult",
    "RetriesExhaustedResult",
    "StoryRequest",
    "STORY_FIELD_BOUNDS",
    "validate_story_request",
]
